"""
HTTP client for Omics AI Explorer networks.

Responsibility: Resolve a network name to a base URL and build an httpx client
with the right headers. A bearer token is passed through as given.
"""

import logging
from urllib.parse import quote

import httpx

from omics_mcp.core.config import EXPLORER_HTTP_TIMEOUT, KNOWN_NETWORKS, USER_AGENT

logger = logging.getLogger(__name__)


def resolve_network_url(network: str) -> str:
    """Map a short network name (or a bare host, or a URL) to a base URL without trailing slash."""
    network = (network or "").strip()
    if not network:
        raise ValueError("network is required")
    network = KNOWN_NETWORKS.get(network, network)
    if not network.startswith(("http://", "https://")):
        network = f"https://{network}"
    return network.rstrip("/")


def build_client(
    network: str,
    access_token: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create a client scoped to one network. Caller closes it (use as a context manager)."""
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    base_url = resolve_network_url(network)
    logger.info("[explorer_client:build_client] base_url=%s auth=%s", base_url, bool(access_token))
    return httpx.Client(
        base_url=base_url,
        headers=headers,
        timeout=EXPLORER_HTTP_TIMEOUT,
        transport=transport,
    )


def segment(value: str) -> str:
    """URL-encode one path segment."""
    return quote(str(value), safe="")
