"""OpenID Connect discovery for the authorization endpoint.

Providers publish their endpoints at
``https://provider/.well-known/openid-configuration``. :func:`discover_endpoints`
fetches that document so the CLI can be pointed at an issuer instead of a
hard-coded authorization URL.
"""

from __future__ import annotations

from typing import Any

import httpx

from loopauth.exceptions import DiscoveryError

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def discovery_url_for(issuer: str) -> str:
    """Return the discovery document URL for *issuer*.

    URLs already ending in the well-known path are returned unchanged.
    """
    if issuer.rstrip("/").endswith(WELL_KNOWN_PATH):
        return issuer
    return issuer.rstrip("/") + WELL_KNOWN_PATH


def discover_endpoints(url: str, timeout: float = 30.0) -> dict[str, Any]:
    """Fetch and return the OpenID Connect discovery document.

    Args:
        url: Issuer URL or full discovery document URL.
        timeout: Request timeout in seconds.

    Returns:
        The parsed JSON discovery document.

    Raises:
        DiscoveryError: If the document cannot be fetched or parsed, or has
            no ``authorization_endpoint``.
    """
    try:
        response = httpx.get(
            discovery_url_for(url),
            headers={"Accept": "application/json"},
            timeout=timeout,
            follow_redirects=True,
        )
        response.raise_for_status()
        doc: dict[str, Any] = response.json()
    except httpx.HTTPStatusError as exc:
        raise DiscoveryError(
            f"OpenID discovery failed with status {exc.response.status_code}: "
            f"{exc.response.text}"
        ) from exc
    except httpx.HTTPError as exc:
        raise DiscoveryError(f"OpenID discovery failed: {exc}") from exc
    except ValueError as exc:
        raise DiscoveryError(f"OpenID discovery returned invalid JSON: {exc}") from exc

    if not isinstance(doc, dict) or "authorization_endpoint" not in doc:
        raise DiscoveryError("OpenID discovery document missing 'authorization_endpoint'")
    return doc
