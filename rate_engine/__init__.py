"""Shipping rate calculation engine."""
