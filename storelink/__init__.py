"""storelink — fulfillment-provider reconciliation and integration monitoring."""

__version__ = "0.1.0"
