"""
Outbound HTTP helpers shared by connectors and API clients.

All provider calls go through :func:`provider_request`, which turns every
flavour of remote failure (transport error, non-JSON body, error payload,
HTTP error status) into a single ``ProviderError`` carrying the provider's
own message.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from config.settings import config
from connectors.errors import ProviderError


def build_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=transport, timeout=config.http_timeout_seconds)


def extract_error(data: Any) -> Optional[str]:
    """
    Return the provider's error message from a JSON body, or None.

    Understands the three shapes in use:
      • Graph / Google APIs:   {"error": {"message": ..., "code": ...}}
      • OAuth token endpoints: {"error": "invalid_grant", "error_description": ...}
      • TikTok v2:             {"error": {"code": "ok", ...}} means success
    """
    if not isinstance(data, dict):
        return None
    err = data.get("error")
    if not err:
        return None
    if isinstance(err, dict):
        code = err.get("code")
        if code == "ok":
            return None
        return err.get("message") or (str(code) if code else "Unknown provider error")
    return data.get("error_description") or str(err)


async def provider_request(
    http: httpx.AsyncClient,
    platform: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Perform one request and return the decoded JSON object."""
    try:
        resp = await http.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise ProviderError(platform, f"{platform} request failed: {exc}") from exc

    try:
        data = resp.json()
    except ValueError as exc:
        raise ProviderError(
            platform,
            f"{platform} returned a non-JSON response (HTTP {resp.status_code})",
            resp.status_code,
        ) from exc

    message = extract_error(data)
    if message:
        raise ProviderError(platform, message, resp.status_code)
    if resp.is_error:
        raise ProviderError(platform, f"{platform} returned HTTP {resp.status_code}", resp.status_code)
    if not isinstance(data, dict):
        raise ProviderError(platform, f"{platform} returned an unexpected payload", resp.status_code)
    return data
