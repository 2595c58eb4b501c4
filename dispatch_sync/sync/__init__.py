"""Shopify order -> StopSuite sync pipeline."""
