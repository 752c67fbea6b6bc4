"""Database models — re-exports all models.

Import from here:  from storelink.models import Product, IntegrationLog, ...
Or from submodules: from storelink.models.catalog import Product
"""

from .base import Base  # noqa: F401

# Provider-sourced catalog
from .catalog import (  # noqa: F401
    Category,
    InventoryItem,
    InventoryLocation,
    InventoryWarehouse,
    Product,
    Warehouse,
)

# Integration log, alerts, credentials
from .integration import IntegrationAlert, IntegrationLog, StoreIntegration  # noqa: F401

# Job queue
from .jobs import Job  # noqa: F401

# Background sync runs
from .sync import SyncRun  # noqa: F401
