# untis_api/core/session.py
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import quote, urlencode

import aiofiles
from cachetools import LRUCache

from .config import UntisConfig
from .constants import (DEFAULT_DEBUG_DIR, FORM_CONTENT_TYPE,
                        JSON_CONTENT_TYPE, JSONRPC_PATH, RPC_CLIENT_NAME,
                        SESSION_COOKIE_NAME, TOKEN_PATH)
from .errors import (AuthenticationError, NotAuthenticatedError, UntisError,
                     UntisHttpError, UntisRpcError)
from .transport import Transport

log = logging.getLogger(__name__)


@dataclass
class SessionInfo:
    """Upstream session state. Valid only while session_id is set."""
    session_id: Optional[str] = None
    person_id: Optional[int] = None
    person_type: Optional[int] = None
    bearer_token: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.session_id)

    def clear(self) -> None:
        self.session_id = None
        self.person_id = None
        self.person_type = None
        self.bearer_token = None


@dataclass
class AuthResult:
    """Outcome of an authentication attempt. Failures are values, not exceptions."""
    success: bool
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success


class UntisSession:
    """
    One authenticated WebUntis session: JSON-RPC handshake, optional bearer
    token, and authenticated GETs against the REST endpoints.
    """

    def __init__(
        self,
        config: UntisConfig,
        transport: Transport,
        save_debug_payloads: bool = False,
        debug_dir: Union[str, Path] = DEFAULT_DEBUG_DIR,
    ):
        """
        Args:
            config: The account configuration this session belongs to.
            transport: The Transport used for every upstream request.
            save_debug_payloads: If True, raw JSON responses of data fetches are
                                 written to debug_dir.
            debug_dir: Directory for debug payload dumps.
        """
        self.config = config
        self.transport = transport
        self.info = SessionInfo()
        self.save_debug_payloads = save_debug_payloads
        self.debug_dir = Path(debug_dir)
        self.fingerprint = config.fingerprint()

    # --- URLs ---

    @property
    def server_url(self) -> str:
        return f"https://{self.config.server}"

    def _rpc_url(self, method: str) -> str:
        query = urlencode({"school": self.config.school})
        if method == "authenticate" or not self.info.session_id:
            return f"{self.server_url}{JSONRPC_PATH}?{query}"
        return f"{self.server_url}{JSONRPC_PATH};jsessionid={quote(self.info.session_id)}?{query}"

    # --- Convenience accessors ---

    @property
    def is_authenticated(self) -> bool:
        return self.info.is_valid

    @property
    def session_id(self) -> Optional[str]:
        return self.info.session_id

    @property
    def bearer_token(self) -> Optional[str]:
        return self.info.bearer_token

    def _session_headers(self) -> Dict[str, str]:
        headers = {}
        if self.info.session_id:
            headers["Cookie"] = f"{SESSION_COOKIE_NAME}={self.info.session_id}"
        return headers

    # --- JSON-RPC ---

    async def rpc(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Sends a JSON-RPC 2.0 call and returns the decoded response body.

        Raises:
            UntisHttpError: On a non-2xx status.
            UntisRpcError: If the response carries an ``error`` member.
            UntisTransportError: If the request could not be completed.
        """
        request_data = {
            "id": str(int(time.time() * 1000)),
            "method": method,
            "params": params or {},
            "jsonrpc": "2.0",
        }
        headers = {"Content-Type": JSON_CONTENT_TYPE}
        headers.update(self._session_headers())

        url = self._rpc_url(method)
        response = await self.transport.request(url, method="POST", headers=headers, body=json.dumps(request_data))
        if not response.ok:
            raise UntisHttpError(response.status, url)

        data = response.json()
        if isinstance(data, dict) and data.get("error"):
            error = data["error"] if isinstance(data["error"], dict) else {"message": str(data["error"])}
            raise UntisRpcError(error.get("message", "Unknown error"), error.get("code"))
        return data if isinstance(data, dict) else {}

    # --- Lifecycle ---

    async def authenticate(self) -> AuthResult:
        """
        Performs the authentication handshake.

        On success the session fields are stored and a bearer token is
        requested (best-effort). Never raises for upstream failures.
        """
        log.info(f"Authenticating user '{self.config.username}' at school '{self.config.school}'...")
        try:
            response = await self.rpc("authenticate", {
                "user": self.config.username,
                "password": self.config.password,
                "client": RPC_CLIENT_NAME,
            })
        except UntisRpcError as e:
            log.error(f"Authentication rejected by WebUntis: {e}")
            return AuthResult(success=False, error_type="RpcError", error_message=str(e))
        except UntisError as e:
            log.error(f"Authentication request failed: {e}")
            return AuthResult(success=False, error_type=type(e).__name__, error_message=str(e))
        except ValueError as e:
            log.error(f"Authentication response was not valid JSON: {e}")
            return AuthResult(success=False, error_type="InvalidResponse", error_message=str(e))

        result = response.get("result")
        if not isinstance(result, dict) or not result.get("sessionId"):
            log.error("Authentication failed: response contained no session result.")
            return AuthResult(success=False, error_type="NoResult", error_message="Response contained no result.")

        self.info.session_id = str(result["sessionId"])
        self.info.person_id = result.get("personId")
        self.info.person_type = result.get("personType")
        log.info(f"Authentication successful (personType={self.info.person_type}, personId={self.info.person_id}).")

        await self.acquire_bearer_token()
        return AuthResult(success=True)

    async def acquire_bearer_token(self) -> bool:
        """
        Requests a bearer token for the REST API. Many deployments answer 403
        here; the session cookie alone still works, so failure is only logged.
        """
        if not self.info.session_id:
            return False

        headers = {"Content-Type": FORM_CONTENT_TYPE}
        headers.update(self._session_headers())
        body = urlencode({"school": self.config.school})
        try:
            response = await self.transport.request(
                f"{self.server_url}{TOKEN_PATH}", method="POST", headers=headers, body=body
            )
            if not response.ok:
                log.warning(f"Could not get bearer token (HTTP {response.status}), using session-based auth.")
                return False
            token = response.json().get("access_token")
        except (UntisError, ValueError, AttributeError) as e:
            log.warning(f"Bearer token request failed: {e}")
            return False

        if not token:
            log.warning("Token response contained no access_token, using session-based auth.")
            return False
        self.info.bearer_token = token
        log.info("Bearer token obtained successfully.")
        return True

    async def logout(self) -> bool:
        """
        Ends the upstream session (best-effort) and always clears local state.

        Returns:
            True if there was nothing to do or the upstream call succeeded.
        """
        if not self.info.session_id:
            return True
        try:
            await self.rpc("logout", {})
            log.info("Logout successful.")
            return True
        except (UntisError, ValueError) as e:
            log.warning(f"Logout failed upstream, clearing local session anyway: {e}")
            return False
        finally:
            self.info.clear()

    # --- Authenticated REST access ---

    def require_authenticated(self) -> None:
        if not self.info.is_valid:
            raise NotAuthenticatedError()

    async def get_json(self, url: str, kind: str = "payload") -> Any:
        """
        Authenticated GET returning the decoded JSON body.

        Raises:
            NotAuthenticatedError: Before any I/O if there is no session.
            UntisHttpError: On a non-2xx status.
        """
        self.require_authenticated()

        headers = self._session_headers()
        if self.info.bearer_token:
            headers["Authorization"] = f"Bearer {self.info.bearer_token}"

        response = await self.transport.request(url, method="GET", headers=headers)
        if self.save_debug_payloads:
            await self._save_debug_payload(kind, response.status, response.text, url)
        if not response.ok:
            log.error(f"GET {url.split('?')[0]} failed with HTTP {response.status}")
            raise UntisHttpError(response.status, url)
        return response.json()

    async def _save_debug_payload(self, kind: str, status: int, text: str, url: str) -> None:
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        filename = self.debug_dir / f"{kind}_{timestamp}_{status}.json"
        try:
            self.debug_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(filename, "w", encoding="utf-8") as f:
                await f.write(text)
            log.info(f"Saved debug payload for {url.split('?')[0]} to {filename}")
        except OSError as save_err:
            log.error(f"Failed to save debug payload to {filename}: {save_err}")


class SessionCache:
    """
    Holds authenticated sessions keyed by configuration fingerprint.

    Replaces a module-level singleton: the owner (application lifespan, a
    script, a test) creates one and passes it to whoever needs sessions.
    Not guarded by a lock; callers serialize their own use.
    """

    def __init__(
        self,
        transport: Transport,
        max_sessions: int = 1,
        save_debug_payloads: bool = False,
        debug_dir: Union[str, Path] = DEFAULT_DEBUG_DIR,
    ):
        if max_sessions < 1:
            raise ValueError(f"max_sessions must be at least 1, got {max_sessions}")
        self.transport = transport
        self.save_debug_payloads = save_debug_payloads
        self.debug_dir = debug_dir
        self._sessions: LRUCache = LRUCache(maxsize=max_sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, config: UntisConfig) -> Optional[UntisSession]:
        """Returns the cached session for config without authenticating, if any."""
        return self._sessions.get(config.fingerprint())

    async def get_or_create_session(self, config: UntisConfig) -> UntisSession:
        """
        Returns an authenticated session for config, reusing the cached one
        when its fingerprint matches and it still holds a session id.

        Raises:
            AuthenticationError: If a new session fails to authenticate.
        """
        fingerprint = config.fingerprint()
        cached: Optional[UntisSession] = self._sessions.get(fingerprint)
        if cached is not None and cached.is_authenticated:
            log.debug("Reusing cached WebUntis session.")
            return cached

        if cached is not None:
            log.info("Cached WebUntis session is no longer valid, re-authenticating.")
            self._sessions.pop(fingerprint, None)

        # Evict least recently used sessions to make room
        while len(self._sessions) >= self._sessions.maxsize:
            _, stale = self._sessions.popitem()
            log.info("Discarding cached WebUntis session for a different configuration.")
            await self._discard(stale)

        session = UntisSession(
            config,
            self.transport,
            save_debug_payloads=self.save_debug_payloads,
            debug_dir=self.debug_dir,
        )
        result = await session.authenticate()
        if not result:
            raise AuthenticationError(
                f"Failed to authenticate with WebUntis: {result.error_message or 'unknown error'}"
            )
        self._sessions[fingerprint] = session
        return session

    def invalidate(self, config: UntisConfig) -> None:
        """Drops the cached session for config without an upstream logout."""
        if self._sessions.pop(config.fingerprint(), None) is not None:
            log.info("Invalidated cached WebUntis session.")

    async def clear_cached_session(self) -> None:
        """Logs out every cached session (errors are logged) and empties the cache."""
        while self._sessions:
            _, session = self._sessions.popitem()
            await self._discard(session)
        log.info("Cleared cached WebUntis sessions.")

    @staticmethod
    async def _discard(session: UntisSession) -> None:
        try:
            await session.logout()
        except Exception as e:
            log.warning(f"Error while logging out discarded session: {e}", exc_info=True)
