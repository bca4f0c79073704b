import httpx
import asyncio
import logging
import time
from order_engine.core.config import settings
from order_engine.core.metrics import signal_deliveries, webhook_duration

logger = logging.getLogger(__name__)


async def send_webhook(envelope: dict, retries: int | None = None) -> bool:

    if retries is None:
        retries = settings.WEBHOOK_RETRIES

    signal = envelope.get("signal")
    backoff = 1.0

    for attempt in range(1, retries + 1):
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT) as client:
                response = await client.post(settings.WEBHOOK_URL, json=envelope)

                if 200 <= response.status_code < 300:
                    webhook_duration.labels(status="success").observe(time.time() - start_time)
                    signal_deliveries.labels(status="success").inc()
                    logger.info(f"Webhook delivery succeeded for signal {signal}")
                    return True
                else:
                    logger.warning(
                        f"Webhook delivery failed (attempt {attempt}/{retries}): "
                        f"Status {response.status_code} for signal {signal}"
                    )
        except httpx.TimeoutException:
            logger.warning(
                f"Webhook timeout (attempt {attempt}/{retries}) for signal {signal}"
            )
        except httpx.HTTPError as e:
            logger.warning(
                f"Webhook delivery error (attempt {attempt}/{retries}): {e} "
                f"for signal {signal}"
            )

        webhook_duration.labels(status="failure").observe(time.time() - start_time)
        signal_deliveries.labels(status="failure").inc()

        if attempt < retries:
            await asyncio.sleep(backoff)
            backoff *= 2.0

    logger.error(f"Webhook delivery failed after {retries} attempts for signal {signal}")
    return False
