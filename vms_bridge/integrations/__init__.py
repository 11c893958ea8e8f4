"""Vendor integrations."""
