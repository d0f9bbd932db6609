import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Annotated, Awaitable, Callable, Optional, TypeVar

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import ORJSONResponse

from .core.config import UntisConfig, load_config, load_settings
from .core.constants import SESSION_REJECTED_STATUSES
from .core.errors import (AuthenticationError, ConfigurationError,
                          NotAuthenticatedError, UntisHttpError, UntisRpcError,
                          UntisTransportError)
from .core.homework import format_homework_report, list_homework
from .core.service import check_upcoming_homework, get_timetable_lessons
from .core.session import SessionCache, UntisSession
from .core.transport import create_transport
from .models.api_models import (HomeworkListResponse, HomeworkReportResponse,
                                SessionResetResponse, TimetableResponse,
                                UpcomingHomeworkResponse)

settings = load_settings()

# Configure basic logging
logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger(__name__)

T = TypeVar("T")


# --- Lifespan Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Lifespan: Application startup sequence initiated.")

    # --- WebUntis Configuration ---
    try:
        app.state.untis_config = load_config()
    except ConfigurationError as e:
        # Endpoints answer 503 until the environment is fixed
        log.error(f"Lifespan startup: WebUntis configuration unavailable: {e}")
        app.state.untis_config = None

    # --- Transport and Session Cache ---
    transport = create_transport(mode=settings.transport, timeout=settings.timeout)
    app.state.transport = transport
    app.state.session_cache = SessionCache(
        transport,
        save_debug_payloads=settings.save_debug_payloads,
        debug_dir=settings.debug_dir,
    )
    log.info("Lifespan: Application startup sequence complete. Yielding control.")
    yield
    log.info("Lifespan: Application shutdown sequence initiated.")

    try:
        await app.state.session_cache.clear_cached_session()
    except Exception as e:
        log.error(f"Lifespan shutdown: Error clearing cached sessions: {e}", exc_info=True)
    try:
        await transport.close()
        log.info("Lifespan shutdown: Transport closed.")
    except Exception as e:
        log.error(f"Lifespan shutdown: Error closing transport: {e}", exc_info=True)

    log.info("Lifespan: Application shutdown sequence complete.")


app = FastAPI(
    title="WebUntis Homework API",
    description="API for fetching normalized WebUntis homework and timetable data.",
    version="0.1.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)


# --- Dependency Functions ---

async def get_session_cache(request: Request) -> SessionCache:
    """Dependency function to get the session cache from app state."""
    cache = getattr(request.app.state, "session_cache", None)
    if cache is None:
        log.error("Dependency Error: Session cache not found in application state.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Session service unavailable.")
    return cache


async def get_untis_config(request: Request) -> UntisConfig:
    """Dependency function to get the WebUntis configuration from app state."""
    config = getattr(request.app.state, "untis_config", None)
    if config is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="WebUntis is not configured.")
    return config


async def _authenticated_session(cache: SessionCache, config: UntisConfig) -> UntisSession:
    """Returns an authenticated (possibly reused) session."""
    try:
        return await cache.get_or_create_session(config)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e


def _is_session_rejected(e: Exception) -> bool:
    if isinstance(e, NotAuthenticatedError):
        return True
    return isinstance(e, UntisHttpError) and e.status_code in SESSION_REJECTED_STATUSES


async def run_with_session(
    cache: SessionCache,
    config: UntisConfig,
    action: str,
    operation: Callable[[UntisSession], Awaitable[T]],
) -> T:
    """
    Runs ``operation`` with a cached session.

    If WebUntis no longer accepts the cached session, the cache entry is
    invalidated and the operation is retried once on a fresh login.
    Every other failure is mapped to an HTTPException.
    """
    for attempt in (1, 2):
        session = await _authenticated_session(cache, config)
        try:
            return await operation(session)
        except Exception as e:
            if not _is_session_rejected(e):
                raise _to_http_exception(e, action) from e
            cache.invalidate(config)
            if attempt == 2:
                raise _to_http_exception(e, action) from e
            log.warning(f"WebUntis rejected the cached session while {action}, re-authenticating.")


def _to_http_exception(e: Exception, action: str) -> HTTPException:
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, NotAuthenticatedError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Session lost while {action}.")
    if isinstance(e, (UntisHttpError, UntisRpcError)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"WebUntis error while {action}: {e}")
    if isinstance(e, UntisTransportError):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=f"Network error while {action}: {e}")
    log.error(f"Unexpected internal error while {action}", exc_info=e)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"An unexpected internal server error occurred ({type(e).__name__}).",
    )


# --- Endpoints ---

@app.get("/")
async def read_root():
    """Returns a simple message indicating the API is running."""
    return {"message": "WebUntis Homework API is running"}


@app.get(
    "/homework",
    response_model=HomeworkListResponse,
    response_model_by_alias=True,
    summary="List homework due in the next N days",
    tags=["Homework"],
)
async def get_homework(
    cache: Annotated[SessionCache, Depends(get_session_cache)],
    config: Annotated[UntisConfig, Depends(get_untis_config)],
    days: Annotated[int, Query(ge=1, le=90)] = 7,
    only_incomplete: Annotated[bool, Query()] = True,
    exclude_today: Annotated[bool, Query()] = False,
):
    homework = await run_with_session(
        cache,
        config,
        "fetching homework",
        lambda session: list_homework(
            session, days=days, only_incomplete=only_incomplete, exclude_today=exclude_today
        ),
    )

    return HomeworkListResponse(
        days=days,
        only_incomplete=only_incomplete,
        exclude_today=exclude_today,
        count=len(homework) if homework else 0,
        homework=homework,
    )


@app.get(
    "/homework/report",
    response_model=HomeworkReportResponse,
    summary="Plain-text homework report",
    tags=["Homework"],
)
async def get_homework_report(
    cache: Annotated[SessionCache, Depends(get_session_cache)],
    config: Annotated[UntisConfig, Depends(get_untis_config)],
    days: Annotated[int, Query(ge=1, le=90)] = 7,
    only_incomplete: Annotated[bool, Query()] = True,
    exclude_today: Annotated[bool, Query()] = False,
):
    homework = await run_with_session(
        cache,
        config,
        "fetching homework",
        lambda session: list_homework(
            session, days=days, only_incomplete=only_incomplete, exclude_today=exclude_today
        ),
    )

    return HomeworkReportResponse(
        report=format_homework_report(homework, days, only_incomplete),
        empty=homework is None,
    )


@app.get(
    "/homework/upcoming",
    response_model=UpcomingHomeworkResponse,
    response_model_by_alias=True,
    summary="Open homework due within the next N hours",
    tags=["Homework"],
)
async def get_upcoming_homework(
    cache: Annotated[SessionCache, Depends(get_session_cache)],
    config: Annotated[UntisConfig, Depends(get_untis_config)],
    hours_ahead: Annotated[int, Query(ge=1, le=24 * 14)] = 24,
):
    upcoming = await run_with_session(
        cache,
        config,
        "checking upcoming homework",
        lambda session: check_upcoming_homework(session, hours_ahead=hours_ahead),
    )
    return UpcomingHomeworkResponse(hours_ahead=hours_ahead, homework=upcoming)


@app.get(
    "/timetable",
    response_model=TimetableResponse,
    response_model_by_alias=True,
    summary="Flattened timetable for the next N days",
    tags=["Timetable"],
)
async def get_timetable(
    cache: Annotated[SessionCache, Depends(get_session_cache)],
    config: Annotated[UntisConfig, Depends(get_untis_config)],
    days: Annotated[int, Query(ge=1, le=31)] = 7,
    skip_cancelled: Annotated[bool, Query()] = False,
    include_notes: Annotated[bool, Query()] = True,
    resource_id: Annotated[Optional[str], Query(description="Student resource id; defaults to UNTIS_RESOURCE_ID")] = None,
):
    result = await run_with_session(
        cache,
        config,
        "fetching the timetable",
        lambda session: get_timetable_lessons(
            session,
            days=days,
            skip_cancelled=skip_cancelled,
            include_notes=include_notes,
            resource_id=resource_id,
        ),
    )

    return TimetableResponse(
        start_date=result.start_date,
        end_date=result.end_date,
        count=len(result.lessons) if result.lessons else 0,
        skipped_cancelled=result.stats.skipped_cancelled,
        failed_entries=result.stats.failed,
        lessons=result.lessons,
    )


@app.post(
    "/session/reset",
    response_model=SessionResetResponse,
    summary="Log out and forget cached WebUntis sessions",
    tags=["Session Management"],
)
async def reset_session(cache: Annotated[SessionCache, Depends(get_session_cache)]):
    had_sessions = len(cache) > 0
    await cache.clear_cached_session()
    return SessionResetResponse(cleared=had_sessions, reset_at=datetime.now())
