"""Request utility functions for handling common request operations."""

import ipaddress
import logging

from starlette.requests import HTTPConnection

from gatekeeper.core.config import settings

logger = logging.getLogger(__name__)


def _is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(conn: HTTPConnection, trusted_proxies: set[str] | None = None) -> str:
    """Get the client IP address from a request.

    X-Forwarded-For and X-Real-IP can be spoofed by clients, so they are
    only honoured when the direct peer is one of ``TRUSTED_PROXY_IPS``.
    Otherwise the direct connection address is used.

    Args:
        conn: The incoming request (or websocket)
        trusted_proxies: Override for the configured trusted proxy set

    Returns:
        Client IP address, or "unknown" if not available
    """
    if trusted_proxies is None:
        trusted_proxies = settings.trusted_proxy_ips_set
    direct_ip = conn.client.host if conn.client else None

    if trusted_proxies and direct_ip and direct_ip in trusted_proxies:
        forwarded = conn.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if _is_valid_ip(client_ip):
                return client_ip
            logger.warning(f"Invalid IP in X-Forwarded-For header: {client_ip}")

        real_ip = conn.headers.get("X-Real-IP")
        if real_ip:
            ip = real_ip.strip()
            if _is_valid_ip(ip):
                return ip
            logger.warning(f"Invalid IP in X-Real-IP header: {real_ip}")
    elif conn.headers.get("X-Forwarded-For"):
        logger.debug(f"Ignoring X-Forwarded-For from untrusted source: {direct_ip}")

    return direct_ip or "unknown"
