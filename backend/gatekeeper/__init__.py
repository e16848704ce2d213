"""Gatekeeper - access-control core: tokens, devices, rate limits and permissions."""

__version__ = "1.0.0"
