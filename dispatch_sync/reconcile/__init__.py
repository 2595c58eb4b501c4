"""StopSuite completion -> Shopify fulfillment."""
