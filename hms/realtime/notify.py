"""Synchronous helpers for pushing events to ``UpdatesConsumer``."""
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from hms.realtime.consumers import UpdatesConsumer

logger = logging.getLogger(__name__)


def broadcast(event_type: str, **payload) -> bool:
    """Send ``{"type": event_type, ...}`` to the updates group.

    Returns False when no channel layer is configured or the send fails;
    notifications are best effort and never break the calling request.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    try:
        async_to_sync(channel_layer.group_send)(UpdatesConsumer.GROUP, {"type": event_type, **payload})
    except Exception:
        logger.warning("Broadcast of %s failed", event_type, exc_info=True)
        return False
    return True
