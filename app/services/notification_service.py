"""
Notification Service - fire-and-forget event publishing.

Services hand notifications to `notify_after_commit`, which holds them on
the session until its transaction commits. A rolled back change never
reaches the payer.
"""

import logging
import uuid
from typing import Any, Dict, Union

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_notifications"
_HOOKED_KEY = "notification_hooks"


class NotificationEvent:
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_REFUNDED = "payment.refunded"
    SETTLEMENT_PROCESSED = "settlement.processed"


class NotificationService:
    """Queues notifications for the Celery worker. Never raises."""

    def notify(
        self,
        event: str,
        user_id: Union[str, uuid.UUID],
        payload: Dict[str, Any],
    ) -> bool:
        from app.workers.notifications import deliver_notification

        try:
            deliver_notification.delay(event, str(user_id), _jsonable(payload))
            logger.info(f"Queued {event} notification for {user_id}")
            return True
        except Exception as e:
            # The financial change is already made; a lost notification is acceptable
            logger.warning(f"Failed to queue {event} notification for {user_id}: {e}")
            return False


def notify_after_commit(
    db: AsyncSession,
    notifier: NotificationService,
    event_name: str,
    user_id: Union[str, uuid.UUID],
    payload: Dict[str, Any],
) -> None:
    """Send a notification once `db` commits; drop it if the transaction rolls back."""
    session = db.sync_session
    if not session.info.get(_HOOKED_KEY):
        event.listen(session, "after_commit", _send_pending)
        event.listen(session, "after_rollback", _drop_pending)
        session.info[_HOOKED_KEY] = True

    session.info.setdefault(_PENDING_KEY, []).append((notifier, event_name, user_id, payload))


def _send_pending(session: Session) -> None:
    for notifier, event_name, user_id, payload in session.info.pop(_PENDING_KEY, []):
        notifier.notify(event_name, user_id, payload)


def _drop_pending(session: Session) -> None:
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.info(f"Dropped {len(dropped)} notification(s) after rollback")


def _jsonable(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
        for key, value in payload.items()
    }
