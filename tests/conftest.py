"""Shared fixtures: fake backend, scripted transport, a recording realtime handle and a fake socket client."""

import asyncio
import inspect
from typing import Any

import pytest
from socketio import exceptions as socketio_exceptions

from fake_backend import BackendState, ScriptedTransport, at, create_app
from modules.chat.service import ChatSyncService
from modules.realtime.transport import RealtimeManager
from utils.api_client import ChatApiClient

USER_ID = "u1"
OTHER_ID = "u2"
THIRD_ID = "u3"


class FakeHandle:
    """Realtime handle that records emits and lets tests push events."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.has_core_listeners = False
        self.connected = False
        self.listeners: dict[str, Any] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.on_calls: list[str] = []
        self.connects = 0
        self.disconnects = 0

    async def connect(self, access_token: str = None) -> bool:
        self.connected = True
        self.connects += 1
        return True

    async def disconnect(self) -> None:
        self.connected = False
        self.disconnects += 1
        self.listeners.clear()

    def on(self, event: str, fn) -> None:
        self.on_calls.append(str(event))
        self.listeners[str(event)] = fn

    def off(self, event: str) -> None:
        self.listeners.pop(str(event), None)

    async def emit(self, event: str, payload: Any = None) -> bool:
        if not self.connected:
            return False
        self.emitted.append((str(event), payload))
        return True

    async def push(self, event: str, payload: Any = None) -> None:
        fn = self.listeners.get(str(event))
        if fn is None:
            return
        result = fn(payload)
        if inspect.isawaitable(result):
            await result

    def emitted_events(self, event: str) -> list[Any]:
        return [payload for name, payload in self.emitted if name == str(event)]


class FakeSocketClient:
    """Stands in for socketio.AsyncClient: records calls, replays server events."""

    def __init__(self, fail_connect: bool = False, fail_emit: bool = False):
        self.connected = False
        self.handlers: dict[str, Any] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.connect_kwargs: dict[str, Any] = {}
        self.connect_attempts = 0
        self.fail_connect = fail_connect
        self.fail_emit = fail_emit

    def on(self, event, handler=None):
        self.handlers[str(event)] = handler

    async def connect(self, url, **kwargs):
        self.connect_attempts += 1
        if self.fail_connect:
            raise socketio_exceptions.ConnectionError("Connection refused by the server")
        self.connect_kwargs = {"url": url, **kwargs}
        self.connected = True
        await self.handlers["connect"]()

    async def disconnect(self):
        self.connected = False

    async def emit(self, event, data=None):
        if self.fail_emit:
            raise socketio_exceptions.BadNamespaceError("/ is not a connected namespace.")
        self.emitted.append((str(event), data))

    async def server_event(self, event, *args):
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)

    async def drop(self, reason: str):
        """Lose the connection the way the client library reports it."""
        self.connected = False
        await self.server_event("disconnect", reason)


def message_payload(
    message_id: str,
    conversation_id: str,
    sender_id: str = OTHER_ID,
    content: str = "hello",
    seconds: int = 1000,
    sender_name: str = "Other User",
) -> dict:
    """Wire-shaped message as the gateway pushes it."""
    return {
        "_id": message_id,
        "conversation": conversation_id,
        "sender": {"_id": sender_id, "fullName": sender_name, "avatar": None},
        "content": content,
        "isRead": False,
        "createdAt": at(seconds),
        "updatedAt": at(seconds),
    }


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run


@pytest.fixture
def backend() -> BackendState:
    state = BackendState()
    state.add_user(USER_ID, "Current User", role="employer")
    state.add_user(OTHER_ID, "Other User")
    state.add_user(THIRD_ID, "Third User")
    return state


@pytest.fixture
def transport(backend) -> ScriptedTransport:
    return ScriptedTransport(create_app(backend))


@pytest.fixture
def api(transport) -> ChatApiClient:
    return ChatApiClient(base_url="http://testserver/api", access_token=USER_ID, transport=transport)


@pytest.fixture
def realtime() -> RealtimeManager:
    return RealtimeManager(handle_factory=FakeHandle)


@pytest.fixture
def service(api, realtime) -> ChatSyncService:
    return ChatSyncService(
        user_id=USER_ID,
        api_client=api,
        realtime=realtime,
        page_size=50,
        fallback_delay=0.05,
    )
