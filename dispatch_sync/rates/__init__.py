"""Checkout-time geofenced carrier rates."""
