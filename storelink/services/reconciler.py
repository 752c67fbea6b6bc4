"""
reconciler.py — Idempotent upsert of provider entities into local storage

One EntityReconciler subclass per entity type. Each run pages through the
provider listing and merges every record by (store_id, external_id):
update when the row exists, insert with a fresh UUID when it does not.

Business Rules:
- Pages are fetched one at a time; each page is upserted before the next
  page is requested
- Each record is committed on its own; there is no batch transaction and
  no rollback of earlier records when a later one fails
- A failing record yields an error UpsertOutcome, is logged as a failure
  event, and the loop moves on
- A failing page fetch raises out of run(); the orchestrator handles it
- Products resolve their category by trimmed name, creating it once per
  run, and take stock_quantity from the summed inventory listing

Called by: services/sync_service.py
Depends on: connectors/shipstation.py, models, services/monitoring_service.py
"""

import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.shipstation import ShipStationClient, sum_available_by_sku
from ..errors import ProviderError, RecordUpsertError
from ..models import (
    Category,
    InventoryItem,
    InventoryLocation,
    InventoryWarehouse,
    Product,
    Warehouse,
)
from .monitoring_service import log_integration_event

DEFAULT_CATEGORY = "Other"
ADDRESS_FIELDS = {
    "address_line1": "address_line1",
    "address_line2": "address_line2",
    "address_line3": "address_line3",
    "city_locality": "city_locality",
    "state_province": "state_province",
    "postal_code": "postal_code",
    "country_code": "country_code",
    "address_residential_indicator": "residential_indicator",
}


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "-", (value or "").lower())


# ── Results ───────────────────────────────────────────────────────────


@dataclass
class UpsertOutcome:
    """Result of merging one provider record: an action or an error."""

    external_id: str | None
    action: str | None = None  # "added" | "updated"
    error: RecordUpsertError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncResult:
    total_count: int = 0
    added_count: int = 0
    updated_count: int = 0
    errors: list[UpsertOutcome] = field(default_factory=list, repr=False)
    # Set when the whole stage failed rather than individual records
    stage_error: str | None = None

    def record(self, outcome: UpsertOutcome) -> None:
        if outcome.action == "added":
            self.added_count += 1
        elif outcome.action == "updated":
            self.updated_count += 1
        else:
            self.errors.append(outcome)

    def merge(self, other: "SyncResult") -> "SyncResult":
        return SyncResult(
            total_count=self.total_count + other.total_count,
            added_count=self.added_count + other.added_count,
            updated_count=self.updated_count + other.updated_count,
            errors=self.errors + other.errors,
            stage_error=self.stage_error or other.stage_error,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "totalCount": self.total_count,
            "addedCount": self.added_count,
            "updatedCount": self.updated_count,
        }


# ── Base reconciler ───────────────────────────────────────────────────


class EntityReconciler(ABC):
    entity_type: str
    resource: str
    operation: str
    model: type

    def __init__(
        self,
        db: Session,
        client: ShipStationClient,
        store_id: str,
        integration_type: str | None = None,
    ):
        self.db = db
        self.client = client
        self.store_id = store_id
        self.integration_type = integration_type or settings.default_integration_type

    @abstractmethod
    def external_id(self, record: dict[str, Any]) -> str | None:
        ...

    @abstractmethod
    def apply(self, row, record: dict[str, Any], created: bool) -> None:
        """Copy provider fields onto the local row."""

    def prepare(self) -> None:
        pass

    def on_page(self, records: list[dict[str, Any]]) -> None:
        pass

    def finish(self, result: SyncResult) -> None:
        pass

    def run(self) -> SyncResult:
        started = time.perf_counter()
        result = SyncResult()
        logger.info("Syncing {} for store {}", self.entity_type, self.store_id)

        self.prepare()
        for page in self.client.iter_pages(self.resource):
            result.total_count += len(page)
            self.on_page(page)
            for record in page:
                result.record(self.reconcile(record))
        self.finish(result)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "{} sync completed: {} total, {} added, {} updated, {} failed",
            self.entity_type,
            result.total_count,
            result.added_count,
            result.updated_count,
            len(result.errors),
        )
        log_integration_event(
            self.db,
            self.operation,
            "success",
            {
                "request": {"resource": self.resource, "page_size": self.client.page_size},
                "response": result.to_dict(),
                "metrics": {
                    "records_processed": result.total_count,
                    "success_count": result.added_count + result.updated_count,
                    "error_count": len(result.errors),
                },
            },
            store_id=self.store_id,
            integration_type=self.integration_type,
            execution_time_ms=elapsed_ms,
        )
        return result

    def find(self, external_id: str):
        return (
            self.db.query(self.model)
            .filter_by(store_id=self.store_id, external_id=external_id)
            .first()
        )

    def reconcile(self, record: dict[str, Any]) -> UpsertOutcome:
        external_id = None
        try:
            external_id = self.external_id(record)
            if not external_id:
                raise ValueError(f"{self.entity_type} record has no external id")
            row = self.find(external_id)
            if row is None:
                row = self.model(store_id=self.store_id, external_id=external_id)
                self.apply(row, record, created=True)
                self.db.add(row)
                action = "added"
            else:
                self.apply(row, record, created=False)
                action = "updated"
            self.db.commit()
            return UpsertOutcome(external_id, action=action)
        except Exception as e:
            self.db.rollback()
            err = RecordUpsertError(external_id, e)
            logger.warning("Error syncing {} {}: {}", self.entity_type, external_id, e)
            log_integration_event(
                self.db,
                self.operation,
                "failure",
                {"request": {"resource": self.resource, "external_id": external_id}},
                store_id=self.store_id,
                integration_type=self.integration_type,
                error_message=str(err),
            )
            return UpsertOutcome(external_id, error=err)


# ── Warehouses & locations ────────────────────────────────────────────


class WarehouseReconciler(EntityReconciler):
    entity_type = "warehouses"
    resource = "warehouses"
    operation = "warehouse_sync"
    model = Warehouse

    def external_id(self, record):
        return _str_or_none(record.get("warehouse_id"))

    def apply(self, row, record, created):
        origin = record.get("origin_address") or {}
        ret = record.get("return_address") or {}
        row.name = record.get("name") or row.name or ""
        row.company_name = record.get("company_name")
        row.phone = origin.get("phone") or ""
        row.email = record.get("email")
        row.is_default = bool(record.get("is_default", False))
        for src, dest in ADDRESS_FIELDS.items():
            setattr(row, f"origin_{dest}", origin.get(src))
            setattr(row, f"return_{dest}", ret.get(src))
        row.instructions = record.get("instructions")


class InventoryWarehouseReconciler(EntityReconciler):
    entity_type = "inventory-warehouses"
    resource = "inventory_warehouses"
    operation = "inventory_warehouse_sync"
    model = InventoryWarehouse

    def external_id(self, record):
        return _str_or_none(record.get("inventory_warehouse_id"))

    def apply(self, row, record, created):
        row.name = record.get("name") or row.name or ""
        row.is_active = record.get("is_active", True) is not False


class InventoryLocationReconciler(EntityReconciler):
    entity_type = "inventory-locations"
    resource = "inventory_locations"
    operation = "inventory_location_sync"
    model = InventoryLocation

    def external_id(self, record):
        return _str_or_none(record.get("inventory_location_id"))

    def apply(self, row, record, created):
        row.inventory_warehouse_id = _str_or_none(record.get("inventory_warehouse_id"))
        row.name = record.get("name") or row.name or ""
        row.is_active = record.get("is_active", True) is not False


# ── Products ──────────────────────────────────────────────────────────


class CategoryResolver:
    """Map provider category names to local Category ids for one run.

    Names are trimmed and matched exactly within the store. New categories
    are committed immediately so a later record rollback cannot orphan a
    cached id.
    """

    def __init__(self, db: Session, store_id: str):
        self.db = db
        self.store_id = store_id
        self._cache: dict[str, str] = {}

    def resolve(self, name: str | None) -> str:
        clean = (name or "").strip() or DEFAULT_CATEGORY
        if clean in self._cache:
            return self._cache[clean]

        category = (
            self.db.query(Category).filter_by(store_id=self.store_id, name=clean).first()
        )
        if category is None:
            category = Category(store_id=self.store_id, name=clean, slug=slugify(clean))
            self.db.add(category)
            self.db.commit()
            logger.info("Created category '{}' for store {}", clean, self.store_id)

        self._cache[clean] = category.id
        return category.id


class ProductReconciler(EntityReconciler):
    entity_type = "products"
    resource = "products"
    operation = "product_sync"
    model = Product

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.categories = CategoryResolver(self.db, self.store_id)
        self.stock_by_sku: dict[str, int] | None = None

    def prepare(self):
        # Stock comes from a second, independently paged listing
        try:
            self.stock_by_sku = sum_available_by_sku(self.client.fetch_all("inventory"))
        except ProviderError as e:
            # Keep existing stock levels rather than zeroing them
            logger.warning("Inventory listing unavailable, stock left unchanged: {}", e)
            self.stock_by_sku = None
        self.categories.resolve(DEFAULT_CATEGORY)

    def external_id(self, record):
        return _str_or_none(record.get("product_id"))

    def apply(self, row, record, created):
        sku = record.get("sku")
        if not sku:
            raise ValueError("product has no sku")
        category_name = (record.get("product_category") or {}).get("name") or record.get("category")
        category_id = self.categories.resolve(category_name)

        row.sku = sku
        row.name = record.get("name") or sku
        row.short_description = record.get("description")
        row.base_price = float((record.get("customs_value") or {}).get("amount") or 0)
        row.featured_image_url = record.get("thumbnail_url")
        row.is_active = record.get("active") is not False
        row.category_id = category_id
        if self.stock_by_sku is not None:
            row.stock_quantity = self.stock_by_sku.get(sku, 0)
        elif created:
            row.stock_quantity = 0
        if created:
            row.slug = slugify(sku)


# ── Inventory ─────────────────────────────────────────────────────────


class InventoryReconciler(EntityReconciler):
    entity_type = "inventory"
    resource = "inventory"
    operation = "inventory_sync"
    model = InventoryItem

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.available_by_sku: dict[str, int] = {}

    def external_id(self, record):
        sku = _str_or_none(record.get("sku"))
        if not sku:
            return None
        place = _str_or_none(record.get("inventory_location_id")) or _str_or_none(
            record.get("inventory_warehouse_id")
        )
        return f"{sku}@{place}" if place else sku

    def apply(self, row, record, created):
        row.sku = record["sku"]
        row.inventory_warehouse_id = _str_or_none(record.get("inventory_warehouse_id"))
        row.inventory_location_id = _str_or_none(record.get("inventory_location_id"))
        row.available = _int(record.get("available"))
        row.on_hand = _int(record.get("on_hand"))
        row.allocated = _int(record.get("allocated"))

    def on_page(self, records):
        for sku, qty in sum_available_by_sku(records).items():
            self.available_by_sku[sku] = self.available_by_sku.get(sku, 0) + qty

    def finish(self, result):
        """Push summed availability onto matching products."""
        if not self.available_by_sku:
            return
        try:
            for sku, qty in self.available_by_sku.items():
                self.db.query(Product).filter(
                    Product.store_id == self.store_id, Product.sku == sku
                ).update({Product.stock_quantity: qty}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error updating product stock for store {}: {}", self.store_id, e)
            log_integration_event(
                self.db,
                self.operation,
                "failure",
                {"request": {"step": "product_stock_update"}},
                store_id=self.store_id,
                integration_type=self.integration_type,
                error_message=str(e),
            )


RECONCILERS: dict[str, type[EntityReconciler]] = {
    cls.entity_type: cls
    for cls in (
        WarehouseReconciler,
        InventoryWarehouseReconciler,
        InventoryLocationReconciler,
        ProductReconciler,
        InventoryReconciler,
    )
}


def _str_or_none(v) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _int(v) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0
