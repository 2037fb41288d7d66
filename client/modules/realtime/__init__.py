"""
Realtime transport for the chat gateway (Socket.IO).
"""

from .transport import RealtimeHandle, RealtimeManager, cleanup_realtime_manager, get_realtime_manager

__all__ = [
    "RealtimeHandle",
    "RealtimeManager",
    "cleanup_realtime_manager",
    "get_realtime_manager",
]
