import json
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

# Add project root to sys.path to allow imports like 'from untis_api...'
# This assumes pytest is run from the project root directory
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import pytest
import pytest_asyncio

from untis_api.core.config import UntisConfig
from untis_api.core.session import UntisSession
from untis_api.core.transport import Transport, TransportResponse


@dataclass
class RecordedRequest:
    url: str
    method: str
    headers: Dict[str, str]
    body: Optional[str]

    @property
    def rpc_method(self) -> Optional[str]:
        if "jsonrpc.do" not in self.url or not self.body:
            return None
        return json.loads(self.body).get("method")


def json_response(payload: Any, status: int = 200) -> TransportResponse:
    return TransportResponse(status=status, text=json.dumps(payload))


class FakeTransport(Transport):
    """Records every request and answers through a handler function."""

    name = "fake"

    def __init__(self, handler: Callable[[RecordedRequest], TransportResponse]):
        self.handler = handler
        self.calls: List[RecordedRequest] = []
        self.closed = False

    async def request(self, url, method="GET", headers=None, body=None):
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        recorded = RecordedRequest(url=url, method=method, headers=dict(headers or {}), body=body)
        self.calls.append(recorded)
        return self.handler(recorded)

    async def close(self):
        self.closed = True

    def rpc_calls(self, method: str) -> List[RecordedRequest]:
        return [call for call in self.calls if call.rpc_method == method]


class FakeUntisServer:
    """
    Minimal stand-in for the WebUntis endpoints used by the package.
    Attributes can be changed per test to script other responses.
    """

    def __init__(self):
        self.auth_response: Any = {
            "id": "1",
            "jsonrpc": "2.0",
            "result": {"sessionId": "SESSION123", "personId": 42, "personType": 5, "klasseId": 7},
        }
        self.auth_status = 200
        self.token_status = 403
        self.token_response: Any = {"access_token": "TOKEN-XYZ"}
        self.logout_status = 200
        self.homework_payload: Any = {"data": {"homeworks": [], "lessons": [], "teachers": []}}
        self.homework_status = 200
        self.timetable_payload: Any = {"days": []}
        self.timetable_status = 200
        # When set, data requests need one of these session ids in their cookie
        self.accepted_session_ids: Optional[Set[str]] = None
        self.transport = FakeTransport(self.handle)

    def handle(self, request: RecordedRequest) -> TransportResponse:
        if "jsonrpc.do" in request.url:
            method = request.rpc_method
            if method == "authenticate":
                return json_response(self.auth_response, self.auth_status)
            if method == "logout":
                return json_response({"id": "2", "jsonrpc": "2.0", "result": None}, self.logout_status)
            return json_response({"error": {"message": f"unknown method {method}", "code": -32601}})
        if request.url.endswith("/WebUntis/api/token"):
            return json_response(self.token_response, self.token_status)
        if self._rejects_session(request):
            return TransportResponse(status=401, text="session expired")
        if "/homeworks/lessons" in request.url:
            return json_response(self.homework_payload, self.homework_status)
        if "/timetable/entries" in request.url:
            return json_response(self.timetable_payload, self.timetable_status)
        return TransportResponse(status=404, text="not found")

    def _rejects_session(self, request: RecordedRequest) -> bool:
        if self.accepted_session_ids is None:
            return False
        if "/homeworks/lessons" not in request.url and "/timetable/entries" not in request.url:
            return False
        cookie = request.headers.get("Cookie", "")
        session_id = cookie.partition("=")[2]
        return session_id not in self.accepted_session_ids


@pytest.fixture
def untis_config() -> UntisConfig:
    return UntisConfig(
        school="demo-school",
        username="student",
        password="secret",
        server="demo.webuntis.com",
        resource_id="1234",
    )


@pytest.fixture
def fake_server() -> FakeUntisServer:
    return FakeUntisServer()


@pytest.fixture
def fake_transport(fake_server: FakeUntisServer) -> FakeTransport:
    return fake_server.transport


@pytest_asyncio.fixture
async def authenticated_session(untis_config, fake_server) -> UntisSession:
    session = UntisSession(untis_config, fake_server.transport)
    result = await session.authenticate()
    assert result.success
    return session
