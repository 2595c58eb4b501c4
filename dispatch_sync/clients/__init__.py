"""Remote API clients: StopSuite (signed) and Shopify Admin (token)."""
