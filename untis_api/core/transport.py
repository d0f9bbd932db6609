# untis_api/core/transport.py
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
from httpx import Limits

from .constants import DEFAULT_HEADERS, DEFAULT_TIMEOUT
from .errors import UnsupportedEnvironmentError, UntisTransportError

log = logging.getLogger(__name__)

Body = Optional[Union[str, bytes]]
FetchCallable = Callable[..., Awaitable[Any]]

_UNSET = object()


@dataclass
class TransportResponse:
    """Uniform response shape returned by every Transport implementation."""
    status: int
    text: str
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    _json: Any = field(default=_UNSET, init=False, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status <= 299

    def json(self) -> Any:
        """Parses the body as JSON on first access and caches the result."""
        if self._json is _UNSET:
            self._json = json.loads(self.text)
        return self._json


class Transport:
    """
    Sends a single HTTP request and returns a TransportResponse.

    Implementations never raise on non-2xx statuses; callers inspect
    ``response.ok`` / ``response.status`` and raise their own errors.
    Failures to complete the request at all raise UntisTransportError.
    """

    name = "abstract"

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Body = None,
    ) -> TransportResponse:
        raise NotImplementedError

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


class HttpxTransport(Transport):
    """Transport backed by an ``httpx.AsyncClient`` (direct network access)."""

    name = "httpx"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        external_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            timeout: Request timeout in seconds for the internally created client.
            external_client: Optional pre-configured client. If provided, it is
                             NOT closed by this transport.
        """
        self._is_external_client = external_client is not None
        if self._is_external_client:
            self.client = external_client
            log.info("HttpxTransport initialized using external httpx client.")
        else:
            limits = Limits(max_keepalive_connections=20, max_connections=100)
            self.client = httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                headers=DEFAULT_HEADERS.copy(),
                limits=limits,
                http2=True,
            )
            log.info(f"HttpxTransport initialized with internal httpx client (timeout={timeout}s).")

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Body = None,
    ) -> TransportResponse:
        endpoint = url.split("?")[0]
        request_headers = DEFAULT_HEADERS.copy()
        if headers:
            request_headers.update(headers)
        try:
            response = await self.client.request(method, url, headers=request_headers, content=body)
        except httpx.TimeoutException as e:
            log.warning(f"{method} {endpoint} timed out: {type(e).__name__}")
            raise UntisTransportError(f"Timeout occurred requesting {endpoint}", original_exception=e) from e
        except httpx.RequestError as e:
            log.warning(f"{method} {endpoint} failed: {type(e).__name__}")
            raise UntisTransportError(f"Connection error requesting {endpoint}: {e}", original_exception=e) from e

        log.debug(f"{method} {endpoint} -> {response.status_code}")
        return TransportResponse(
            status=response.status_code,
            text=response.text,
            url=str(response.url),
            headers=dict(response.headers),
        )

    async def close(self) -> None:
        """Closes the underlying httpx client, ONLY if it was created internally."""
        if not self._is_external_client and not self.client.is_closed:
            await self.client.aclose()
            log.info("HttpxTransport closed its internally managed client.")
        elif self._is_external_client:
            log.debug("HttpxTransport close() called, but using external client (not closing).")


class FetchTransport(Transport):
    """
    Transport for sandboxed hosts that only expose a fetch-like coroutine,
    e.g. ``pyodide.http.pyfetch`` in a browser/worker runtime.

    The coroutine is called as ``await fetch(url, method=..., headers=..., body=...)``
    and must return an object with a ``status`` attribute and an awaitable
    ``string()`` method.
    """

    name = "fetch"

    def __init__(self, fetch: FetchCallable):
        self._fetch = fetch

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Body = None,
    ) -> TransportResponse:
        request_headers = DEFAULT_HEADERS.copy()
        if headers:
            request_headers.update(headers)
        kwargs: Dict[str, Any] = {"method": method, "headers": request_headers}
        if body is not None:
            kwargs["body"] = body.decode("utf-8") if isinstance(body, bytes) else body

        endpoint = url.split("?")[0]
        try:
            response = await self._fetch(url, **kwargs)
            text = await response.string()
        except Exception as e:
            # Sandboxed hosts surface network failures as generic JS/OS errors
            log.warning(f"{method} {endpoint} failed in fetch transport: {type(e).__name__}")
            raise UntisTransportError(f"Fetch failed for {endpoint}: {e}", original_exception=e) from e

        status = int(getattr(response, "status", 0))
        log.debug(f"{method} {endpoint} -> {status}")
        return TransportResponse(
            status=status,
            text=text,
            url=getattr(response, "url", url) or url,
        )


def _load_pyodide_fetch() -> FetchCallable:
    try:
        from pyodide.http import pyfetch
    except ImportError as e:
        raise UnsupportedEnvironmentError(
            "Unsupported environment: running under emscripten but pyodide.http.pyfetch is unavailable.",
            original_exception=e,
        ) from e
    return pyfetch


def create_transport(
    mode: str = "auto",
    client: Optional[httpx.AsyncClient] = None,
    fetch: Optional[FetchCallable] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Transport:
    """
    Chooses the Transport implementation once, at startup.

    Args:
        mode: "auto", "httpx" or "fetch".
        client: Optional external httpx client for the httpx transport.
        fetch: Optional fetch coroutine for the fetch transport.
        timeout: Timeout for an internally created httpx client.

    Raises:
        UnsupportedEnvironmentError: If no transport can be built for this host.
    """
    mode = (mode or "auto").lower()
    sandboxed = sys.platform == "emscripten"

    if mode == "auto":
        if fetch is not None:
            mode = "fetch"
        elif client is not None:
            mode = "httpx"
        else:
            mode = "fetch" if sandboxed else "httpx"

    if mode == "fetch":
        transport: Transport = FetchTransport(fetch or _load_pyodide_fetch())
    elif mode == "httpx":
        if sandboxed and client is None:
            raise UnsupportedEnvironmentError(
                "Unsupported environment: direct sockets are not available under emscripten."
            )
        transport = HttpxTransport(timeout=timeout, external_client=client)
    else:
        raise UnsupportedEnvironmentError(f"Unsupported transport mode: {mode!r}")

    log.info(f"Selected '{transport.name}' transport.")
    return transport
