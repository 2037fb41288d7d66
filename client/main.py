"""
Session bootstrap for the chat synchronization client.

This module wires logging, the REST client, the realtime handle and the
chat service together for one signed-in user, and tears them down again
on logout.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from config import settings
from modules.chat.service import ChatSyncService
from modules.realtime.transport import RealtimeManager, get_realtime_manager
from utils.api_client import ChatApiClient
from utils.logging import setup_logging


@asynccontextmanager
async def chat_session(
    user_id: str,
    access_token: str = None,
    api_client: Optional[ChatApiClient] = None,
    realtime: Optional[RealtimeManager] = None,
) -> AsyncIterator[ChatSyncService]:
    """
    Run a chat session for a signed-in user.

    The realtime handle is torn down on exit, so the next session starts
    with a fresh handle and reinstalls its listeners.

    Args:
        user_id: Signed-in user id
        access_token: Bearer token for REST and realtime (optional)
        api_client: REST client (defaults to a new client from config)
        realtime: Realtime manager (defaults to the global one)

    Yields:
        ChatSyncService: Service ready for list/select/send calls
    """
    # Startup
    setup_logging(settings.log_level)
    logging.info(f"Starting chat session for user {user_id}")

    api = api_client or ChatApiClient(access_token=access_token)
    manager = realtime or get_realtime_manager()

    await manager.initialize(user_id, access_token)
    service = ChatSyncService(user_id, api_client=api, realtime=manager)
    await service.init_realtime_listeners()

    try:
        yield service
    finally:
        # Shutdown
        logging.info(f"Closing chat session for user {user_id}")
        await service.close()
        await manager.teardown()
        await api.close()
        logging.info("Chat session closed")
