"""
Realtime transport handle for the chat gateway.

This module wraps a python-socketio AsyncClient behind the small contract
the synchronization service relies on: on/off/emit plus connection
lifecycle. A single handle per signed-in user is kept by RealtimeManager.
Nothing here promises delivery or ordering; callers deduplicate by id.
"""

import asyncio
import inspect
from typing import Any, Callable, Optional

import socketio
from socketio import exceptions as socketio_exceptions

from config import settings
from schemas.events import RealtimeEvent
from utils.logging import get_logger, log_realtime_event

logger = get_logger("realtime.transport")

Listener = Callable[..., Any]

# Disconnect reason python-socketio reports when the server closed the session;
# the client library does not reconnect on its own in that case
SERVER_DISCONNECT = "server disconnect"


class RealtimeHandle:
    """
    One Socket.IO connection for one user.

    Listeners are kept in a local table and reached through a forwarder
    registered once per event on the socket, so off() only has to drop
    the table entry.
    """

    def __init__(self, user_id: str, url: str = None, client: Optional[socketio.AsyncClient] = None):
        """
        Initialize the handle (does not connect).

        Args:
            user_id: User whose personal room is joined on every connect
            url: Socket.IO server URL (defaults to config)
            client: Preconfigured socket client (optional)
        """
        self.user_id = user_id
        self.url = url or settings.socket_url
        # Set by the chat service once its listeners are attached to this handle
        self.has_core_listeners = False

        self._sio = client or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=settings.socket_reconnection_attempts,
            reconnection_delay=settings.socket_reconnection_delay,
            reconnection_delay_max=settings.socket_reconnection_delay_max,
        )
        self._listeners: dict[str, Listener] = {}
        self._forwarded: set[str] = set()
        self._access_token: Optional[str] = None
        self._closing = False
        self._reconnect_task: Optional[asyncio.Task] = None

        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)

    def __repr__(self):
        return f"<RealtimeHandle(user={self.user_id}, connected={self.connected})>"

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    async def connect(self, access_token: str = None) -> bool:
        """
        Open the Socket.IO connection.

        A refused first attempt is retried with the configured backoff
        before giving up.

        Args:
            access_token: Bearer token forwarded to the gateway (defaults to
                the token of the previous connect)

        Returns:
            bool: True if connected
        """
        if self.connected:
            return True

        self._closing = False
        if access_token:
            self._access_token = access_token
        token = self._access_token
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            await self._sio.connect(
                self.url,
                headers=headers,
                transports=["websocket", "polling"],
                socketio_path=settings.socketio_path,
                wait_timeout=settings.socket_connect_timeout,
                retry=True,
            )
        except socketio_exceptions.ConnectionError as e:
            logger.warning(f"Realtime connection to {self.url} failed: {e}")
            log_realtime_event("connect", success=False, user_id=self.user_id, error=str(e))
            return False

        log_realtime_event("connect", success=True, user_id=self.user_id)
        return True

    async def disconnect(self) -> None:
        """Close the connection and forget every listener."""
        self._closing = True
        self._listeners.clear()
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        if self.connected:
            await self._sio.disconnect()
        log_realtime_event("disconnect", success=True, user_id=self.user_id)

    def on(self, event: str, fn: Listener) -> None:
        """
        Attach the listener for an event, replacing any previous one.

        Args:
            event: Event name
            fn: Sync or async callable receiving the event payload
        """
        self._listeners[event] = fn
        if event not in self._forwarded:
            self._sio.on(event, self._make_forwarder(event))
            self._forwarded.add(event)

    def off(self, event: str) -> None:
        """Detach the listener for an event, if any."""
        self._listeners.pop(event, None)

    async def emit(self, event: str, payload: Any = None) -> bool:
        """
        Best-effort emit. Failures are logged, never raised.

        Args:
            event: Event name
            payload: JSON-serialisable payload

        Returns:
            bool: True if the event was handed to the socket
        """
        if not self.connected:
            logger.warning(f"Realtime not connected, dropping '{event}'")
            log_realtime_event("emit", success=False, emitted=event, reason="not_connected")
            return False

        try:
            await self._sio.emit(event, payload)
        except socketio_exceptions.SocketIOError as e:
            logger.warning(f"Failed to emit '{event}': {e}")
            log_realtime_event("emit", success=False, emitted=event, error=str(e))
            return False

        return True

    def _make_forwarder(self, event: str):
        async def forward(*args):
            await self._dispatch(event, *args)
        return forward

    async def _dispatch(self, event: str, *args) -> None:
        fn = self._listeners.get(event)
        if fn is None:
            return
        result = fn(*args)
        if inspect.isawaitable(result):
            await result

    async def _on_connect(self) -> None:
        # Runs again after every automatic reconnection
        await self._sio.emit(RealtimeEvent.JOIN, self.user_id)

    async def _on_disconnect(self, *args) -> None:
        reason = args[0] if args else None
        log_realtime_event("connection_lost", success=False, user_id=self.user_id, reason=reason)

        if reason == SERVER_DISCONNECT and not self._closing:
            self._reconnect_task = asyncio.create_task(
                self._reconnect(),
                name=f"realtime_reconnect_{self.user_id}",
            )

    async def _reconnect(self) -> None:
        logger.info(f"Server closed the realtime session of user {self.user_id}, reconnecting")
        try:
            await self.connect()
        finally:
            self._reconnect_task = None


class RealtimeManager:
    """
    Process-wide registry of the realtime handle.

    The handle's lifetime follows the signed-in session: initialize() on
    login, teardown() on logout. A new handle is a new object, so its
    has_core_listeners flag always starts out False.
    """

    def __init__(self, handle_factory: Callable[[str], RealtimeHandle] = RealtimeHandle):
        self._handle_factory = handle_factory
        self._handle: Optional[RealtimeHandle] = None

    def get_handle(self) -> Optional[RealtimeHandle]:
        """Return the current handle, or None before initialize()."""
        return self._handle

    async def initialize(self, user_id: str, access_token: str = None) -> RealtimeHandle:
        """
        Create and connect the handle for a user.

        Calling it again for the same user returns the existing handle.
        Calling it for another user tears the old handle down first.

        Args:
            user_id: Signed-in user id
            access_token: Bearer token forwarded to the gateway (optional)

        Returns:
            RealtimeHandle: The user's handle (possibly not connected)
        """
        if self._handle is not None:
            if self._handle.user_id == user_id:
                if not self._handle.connected:
                    await self._handle.connect(access_token)
                return self._handle
            logger.info(f"Replacing realtime handle of user {self._handle.user_id} with {user_id}")
            await self.teardown()

        handle = self._handle_factory(user_id)
        self._handle = handle
        await handle.connect(access_token)
        return handle

    async def teardown(self) -> None:
        """Disconnect and drop the current handle."""
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            await handle.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting realtime handle: {e}", exc_info=True)


# Global manager instance
_realtime_manager: Optional[RealtimeManager] = None


def get_realtime_manager() -> RealtimeManager:
    """
    Get or create the global realtime manager.

    Returns:
        RealtimeManager: Manager instance
    """
    global _realtime_manager
    if _realtime_manager is None:
        _realtime_manager = RealtimeManager()
    return _realtime_manager


async def cleanup_realtime_manager() -> None:
    """Tear down the global handle and forget the manager."""
    global _realtime_manager
    if _realtime_manager:
        await _realtime_manager.teardown()
        _realtime_manager = None
