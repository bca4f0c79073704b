"""Client for the service catalog.

Only a frozen snapshot of a service is ever needed here: title, description,
price, currency and owning freelancer.
"""
import logging
from typing import Optional, Protocol

import httpx

from order_engine.core.config import settings
from order_engine.core.exceptions import CatalogUnavailable
from order_engine.schemas.catalog import ServiceSnapshot

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    async def get_service(self, service_id: int) -> Optional[ServiceSnapshot]:
        ...


class CatalogClient:

    def __init__(self, base_url: str | None = None, timeout: int | None = None):
        self.base_url = base_url or settings.CATALOG_URL
        self.timeout = timeout or settings.CATALOG_TIMEOUT

    async def get_service(self, service_id: int) -> Optional[ServiceSnapshot]:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                response = await client.get(f"/services/{service_id}")
        except httpx.HTTPError as e:
            logger.error(f"Catalog lookup failed for service {service_id}: {e}")
            raise CatalogUnavailable() from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.error(f"Catalog returned {response.status_code} for service {service_id}")
            raise CatalogUnavailable(f"Catalog returned status {response.status_code}")

        return ServiceSnapshot.model_validate(response.json())


def get_catalog() -> Catalog:
    return CatalogClient()
