"""Pytest configuration and fixtures for graphql-container tests."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from graphql_container.config import ContainerSettings
from graphql_container.reconciler.state import LocalState


class FakeHandle:
    """Subscription handle handed out by FakeClient."""

    def __init__(self, handle_id: int, document: str, variables: Optional[Dict[str, Any]], callback) -> None:
        self.id = handle_id
        self.document = document
        self.variables = variables
        self.callback = callback
        self.live = True

    def deliver(self, data: Any = None, error: Optional[BaseException] = None) -> None:
        self.callback(error, data)


class FakeClient:
    """In-memory data-access client that records every call in order."""

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[tuple] = []
        self.handles: List[FakeHandle] = []
        self.pending: List[asyncio.Future] = []
        self.manual = False

    def set_response(self, response: Any) -> None:
        """Queue a response envelope or an exception to raise."""
        self.responses.append(response)

    async def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append(("query", document, variables))

        if self.manual:
            future = asyncio.get_running_loop().create_future()
            self.pending.append(future)
            return await future

        response = self.responses.pop(0) if self.responses else {"data": {}}
        if isinstance(response, BaseException):
            raise response
        return response

    def subscribe(self, document: str, variables: Optional[Dict[str, Any]], callback) -> FakeHandle:
        handle = FakeHandle(len(self.handles) + 1, document, variables, callback)
        self.handles.append(handle)
        self.calls.append(("subscribe", document, variables))
        return handle

    def unsubscribe(self, handle: FakeHandle) -> None:
        assert handle.live, f"handle {handle.id} disposed twice"
        handle.live = False
        self.calls.append(("unsubscribe", handle.id))

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]


class GatedClient(FakeClient):
    """FakeClient whose unsubscribe waits until ``gate`` is set."""

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        super().__init__(responses)
        self.gate = asyncio.Event()

    @property
    def live(self) -> set:
        return {handle.id for handle in self.handles if handle.live}

    async def unsubscribe(self, handle: FakeHandle) -> None:
        self.calls.append(("unsubscribe", handle.id))
        await self.gate.wait()
        handle.live = False


class QueryOnlyClient:
    """Client without subscription support."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    async def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append(("query", document, variables))
        return {"data": {}}


@pytest.fixture
def fake_client():
    """Provide a recording fake client."""
    return FakeClient()


@pytest.fixture
def query_only_client():
    """Provide a client that cannot subscribe."""
    return QueryOnlyClient()


@pytest.fixture
def gated_client():
    """Provide a fake client whose unsubscribe blocks until released."""
    return GatedClient()


@pytest.fixture
def container_settings():
    """Provide test container settings."""
    return ContainerSettings(
        log_level="DEBUG",
        metrics_enabled=False,
    )


@pytest.fixture
def local_state():
    """Provide a LocalState instance for testing."""
    return LocalState("test-container")


@pytest.fixture
def sample_graphql_response():
    """Provide sample GraphQL response data."""
    return {
        "data": {
            "user": {
                "id": 1,
                "name": "Ada",
            }
        }
    }
