"""ShipStation v2 connector — paginated catalog, inventory and warehouse reads.

Stateless apart from the underlying httpx connection pool. Every listing is
paged with ?page=N&page_size=M and ends at the first short page. There is no
retry: a failed page raises ProviderError and the calling sync stage ends.

Called by: services/reconciler.py, services/maintenance_service.py
Depends on: config.py (base URL, timeout, page size)
"""

from typing import Any, Iterator

import httpx
from loguru import logger

from ..config import settings
from ..errors import ProviderError

# resource path -> key holding the record list in the response body
RESOURCES = {
    "warehouses": "warehouses",
    "inventory_warehouses": "inventory_warehouses",
    "inventory_locations": "inventory_locations",
    "products": "products",
    "inventory": "inventory",
}


class ShipStationClient:
    """API-key authenticated client for the ShipStation v2 REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        page_size: int | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.shipstation_base_url).rstrip("/")
        self.page_size = page_size or settings.sync_page_size
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout or settings.shipstation_timeout_seconds,
            headers={"api-key": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── Paging ────────────────────────────────────────────────────────

    def fetch_page(self, resource: str, page: int, page_size: int | None = None) -> list[dict]:
        """Fetch one page of a listing. Raises ProviderError on any failure."""
        if resource not in RESOURCES:
            raise ValueError(f"Unknown ShipStation resource: {resource}")
        size = page_size or self.page_size
        try:
            r = self._http.get(f"/{resource}", params={"page": page, "page_size": size})
        except httpx.HTTPError as e:
            raise ProviderError(
                f"ShipStation request failed for {resource} page {page}: {e}",
                resource=resource,
            ) from e

        if r.status_code == 429:
            retry_after = r.headers.get("Retry-After", "?")
            raise ProviderError(
                f"ShipStation rate limit hit on {resource} page {page} (retry after {retry_after}s)",
                status_code=429,
                resource=resource,
            )
        if r.status_code >= 400:
            raise ProviderError(
                f"ShipStation API error: {r.status_code} {r.reason_phrase} ({resource} page {page})",
                status_code=r.status_code,
                resource=resource,
            )

        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(
                f"ShipStation returned invalid JSON for {resource} page {page}",
                status_code=r.status_code,
                resource=resource,
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ProviderError(
                f"ShipStation {resource} payload is not an object",
                status_code=r.status_code,
                resource=resource,
            )
        records = data.get(RESOURCES[resource]) or []
        if not isinstance(records, list):
            raise ProviderError(
                f"ShipStation {resource} payload is not a list",
                status_code=r.status_code,
                resource=resource,
            )
        return records

    def iter_pages(self, resource: str) -> Iterator[list[dict]]:
        """Yield pages in order until a page comes back short."""
        page = 1
        while True:
            records = self.fetch_page(resource, page)
            logger.debug("ShipStation {} page {} -> {} records", resource, page, len(records))
            yield records
            if len(records) < self.page_size:
                return
            page += 1

    def fetch_all(self, resource: str) -> list[dict]:
        out: list[dict] = []
        for records in self.iter_pages(resource):
            out.extend(records)
        return out

    def test_connection(self) -> bool:
        """Cheap credential check: one single-record warehouse page."""
        try:
            self.fetch_page("warehouses", 1, page_size=1)
            return True
        except ProviderError as e:
            logger.warning("ShipStation connection test failed: {}", e)
            return False


def sum_available_by_sku(records: list[dict[str, Any]]) -> dict[str, int]:
    """Sum `available` per SKU across warehouse/location entries."""
    totals: dict[str, int] = {}
    for item in records:
        sku = item.get("sku")
        if not sku:
            continue
        totals[sku] = totals.get(sku, 0) + _as_int(item.get("available"))
    return totals


def _as_int(v) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0
