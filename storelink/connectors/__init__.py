"""connectors/ — outbound clients for external fulfillment providers."""
