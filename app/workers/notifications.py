"""
Notification delivery worker.

Relays payment and settlement events to the external email/SMS service.
"""

import logging
from typing import Any, Dict

import httpx

from app.config import settings
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def deliver_notification(self, event: str, user_id: str, payload: Dict[str, Any]):
    """
    POST one event to the notification relay.

    Retries with backoff; the money movement that produced the event is
    already committed, so a final failure is only logged.
    """
    import asyncio

    if not settings.notification_webhook_url:
        logger.info(f"Notification relay not configured, dropping {event} for {user_id}")
        return {"success": False, "reason": "not_configured"}

    async def run():
        async with httpx.AsyncClient() as client:
            response = await client.post(
                settings.notification_webhook_url,
                json={"event": event, "user_id": user_id, "data": payload},
                timeout=10.0,
            )
            response.raise_for_status()
            return response.status_code

    try:
        status_code = asyncio.run(run())
        logger.info(f"Delivered {event} notification for {user_id}")
        return {"success": True, "status_code": status_code}
    except httpx.HTTPError as e:
        logger.error(f"Notification delivery failed for {event}/{user_id}: {e}")
        raise self.retry(exc=e, countdown=60 * (self.request.retries + 1))
