import asyncio
import logging

from celery import Celery
from order_engine.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "order_engine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_BACKEND,
)
celery_app.conf.task_routes = {"order_engine.services.tasks.deliver_signal": {"queue": "signals"}}


@celery_app.task(bind=True, max_retries=3)
def deliver_signal(self, signal: str, envelope: dict):
    from order_engine.services.webhook import send_webhook

    try:
        delivered = asyncio.run(send_webhook(envelope))
    except Exception as e:
        retry_kwargs = {"countdown": 2 ** self.request.retries}
        raise self.retry(exc=e, **retry_kwargs)

    if not delivered:
        logger.error(f"Signal {signal} was not delivered")
    return delivered
