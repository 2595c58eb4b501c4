"""Inbound webhooks from Shopify and StopSuite.

Each webhook is signature-verified before any processing.
"""
