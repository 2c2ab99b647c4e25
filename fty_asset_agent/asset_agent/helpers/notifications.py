# asset_agent/helpers/notifications.py
"""
JSON notifications of asset changes on the new-generation message bus.
Provides one function per change type; a failed send is logged and never
propagated, the database stays the reference.
"""
import json
from typing import Any, Dict, Optional

from asset_agent.bus.message_bus import (
    SUBJECT_CREATED,
    SUBJECT_DELETED,
    SUBJECT_UPDATED,
    TOPIC_CREATED,
    TOPIC_DELETED,
    TOPIC_UPDATED,
    Message,
    MessageBus,
)
from asset_agent.core.errors import BusError
from asset_agent.core.logger import app_logger
from asset_agent.helpers.asset_impl import AssetImpl


def send_notification(
    bus: Optional[MessageBus],
    topic: str,
    subject: str,
    payload: Dict[str, Any],
) -> bool:
    """
    Publish one notification.

    Args:
        bus: Connected message bus client (None disables notifications)
        topic: Topic the message is published on
        subject: CREATED / UPDATED / DELETED
        payload: JSON body

    Returns:
        True when the message was handed to the bus
    """
    if bus is None:
        return False

    message = Message()
    message.meta.subject = subject
    message.set_data(json.dumps(payload, ensure_ascii=False))
    try:
        bus.publish(topic, message)
    except BusError as e:
        app_logger.error("Failed to send asset notification", extra={"topic": topic, "error": str(e)})
        return False
    return True


def notify_created(bus: Optional[MessageBus], after: AssetImpl) -> bool:
    return send_notification(bus, TOPIC_CREATED, SUBJECT_CREATED, after.to_dto())


def notify_updated(bus: Optional[MessageBus], before: AssetImpl, after: AssetImpl) -> bool:
    return send_notification(
        bus,
        TOPIC_UPDATED,
        SUBJECT_UPDATED,
        {"before": before.to_dto(), "after": after.to_dto()},
    )


def notify_deleted(bus: Optional[MessageBus], before: AssetImpl) -> bool:
    return send_notification(bus, TOPIC_DELETED, SUBJECT_DELETED, before.to_dto())
