"""Catalog models — entities reconciled from the fulfillment provider.

Every provider-sourced row is owned by one store and unique on
(store_id, external_id). Rows are only written by the reconcilers.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..database import UTCDateTime, utcnow
from .base import Base, new_id


class Category(Base):
    __tablename__ = "categories"
    id = Column(String(36), primary_key=True, default=new_id)
    store_id = Column(String(36), nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("store_id", "name", name="uq_category_store_name"),
    )


class Product(Base):
    __tablename__ = "products"
    id = Column(String(36), primary_key=True, default=new_id)
    store_id = Column(String(36), nullable=False)
    external_id = Column(String(100), nullable=False)
    sku = Column(String(255), nullable=False)
    name = Column(String(500), nullable=False)
    slug = Column(String(500))
    short_description = Column(Text)
    base_price = Column(Float, default=0)
    featured_image_url = Column(String(1000))
    is_active = Column(Boolean, default=True)
    stock_quantity = Column(Integer, default=0)
    category_id = Column(String(36), ForeignKey("categories.id"))
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    category = relationship("Category", foreign_keys=[category_id])

    __table_args__ = (
        UniqueConstraint("store_id", "external_id", name="uq_product_store_external"),
        Index("ix_products_sku_store", "sku", "store_id"),
    )


class Warehouse(Base):
    """Ship-from location."""

    __tablename__ = "shipfroms"
    id = Column(String(36), primary_key=True, default=new_id)
    store_id = Column(String(36), nullable=False)
    external_id = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    company_name = Column(String(255))
    phone = Column(String(50))
    email = Column(String(255))
    is_default = Column(Boolean, default=False)

    origin_address_line1 = Column(String(255))
    origin_address_line2 = Column(String(255))
    origin_address_line3 = Column(String(255))
    origin_city_locality = Column(String(100))
    origin_state_province = Column(String(50))
    origin_postal_code = Column(String(20))
    origin_country_code = Column(String(10))
    origin_residential_indicator = Column(String(20))

    return_address_line1 = Column(String(255))
    return_address_line2 = Column(String(255))
    return_address_line3 = Column(String(255))
    return_city_locality = Column(String(100))
    return_state_province = Column(String(50))
    return_postal_code = Column(String(20))
    return_country_code = Column(String(10))
    return_residential_indicator = Column(String(20))

    instructions = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("store_id", "external_id", name="uq_shipfrom_store_external"),
    )


class InventoryWarehouse(Base):
    __tablename__ = "inventory_warehouses"
    id = Column(String(36), primary_key=True, default=new_id)
    store_id = Column(String(36), nullable=False)
    external_id = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("store_id", "external_id", name="uq_invwh_store_external"),
    )


class InventoryLocation(Base):
    __tablename__ = "inventory_locations"
    id = Column(String(36), primary_key=True, default=new_id)
    store_id = Column(String(36), nullable=False)
    external_id = Column(String(100), nullable=False)
    inventory_warehouse_id = Column(String(100))
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("store_id", "external_id", name="uq_invloc_store_external"),
        Index("ix_invloc_store_warehouse", "store_id", "inventory_warehouse_id"),
    )


class InventoryItem(Base):
    """Stock level for one SKU at one provider location.

    external_id is "<sku>@<location or warehouse id>", or the bare SKU when
    the provider reports no placement.
    """

    __tablename__ = "inventory"
    id = Column(String(36), primary_key=True, default=new_id)
    store_id = Column(String(36), nullable=False)
    external_id = Column(String(255), nullable=False)
    sku = Column(String(255), nullable=False)
    inventory_warehouse_id = Column(String(100))
    inventory_location_id = Column(String(100))
    available = Column(Integer, default=0)
    on_hand = Column(Integer, default=0)
    allocated = Column(Integer, default=0)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("store_id", "external_id", name="uq_inventory_store_external"),
        Index("ix_inventory_store_sku", "store_id", "sku"),
    )
