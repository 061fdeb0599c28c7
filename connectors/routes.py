"""
Account-linking API routes — OAuth start/callback, manual sync, list and
deactivate connections.

Route prefix: /api/v1
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

from auth.dependencies import get_current_user_id
from config.settings import config
from connectors.base import BaseConnector
from connectors.errors import ConnectionNotFound, OAuthStateError
from connectors.registry import PLATFORMS, ConnectorRegistry
from connectors.state import (
    create_csrf_token,
    encode_state,
    generate_code_challenge,
    generate_code_verifier,
    validate_state,
)
from connectors.token_manager import (
    deactivate_connection,
    get_active_connection,
    get_user_connections,
    store_connection,
)
from sync.background import schedule_sync
from sync.base import get_sync_engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connections"])


# ── Cookie helpers ─────────────────────────────────────────────────────


def csrf_cookie_name(platform: str) -> str:
    return f"{platform}_oauth_csrf"


def verifier_cookie_name(platform: str) -> str:
    return f"{platform}_oauth_verifier"


def _set_oauth_cookie(response: Response, name: str, value: str) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=config.oauth_state_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=config.is_production,
        path="/",
    )


def _dashboard_redirect(params: Dict[str, str]) -> RedirectResponse:
    return RedirectResponse(
        url=f"{config.app_url}/dashboard?{urlencode(params)}",
        status_code=status.HTTP_302_FOUND,
    )


def _get_connector(platform: str) -> BaseConnector:
    connector = ConnectorRegistry().get(platform) if platform in PLATFORMS else None
    if not connector:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Platform '{platform}' not found or not configured",
        )
    return connector


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/connections")
async def list_connections(user_id: str = Depends(get_current_user_id)) -> list[dict]:
    """List the caller's connections on every platform (no token material)."""
    return await get_user_connections(user_id)


@router.get("/auth/{platform}")
async def start_oauth(
    platform: str,
    response: Response,
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, str]:
    """
    Begin linking an account.

    Returns the provider's authorization URL; the frontend navigates the
    browser there.  The CSRF nonce (and PKCE verifier, where the platform
    uses one) travel back to the callback in httpOnly cookies.
    """
    connector = _get_connector(platform)

    csrf = create_csrf_token()
    state = encode_state(user_id, csrf)

    code_challenge: Optional[str] = None
    if connector.uses_pkce:
        verifier = generate_code_verifier()
        code_challenge = generate_code_challenge(verifier)
        _set_oauth_cookie(response, verifier_cookie_name(platform), verifier)

    _set_oauth_cookie(response, csrf_cookie_name(platform), csrf)
    return {"authUrl": connector.get_auth_url(state, code_challenge)}


@router.get("/auth/{platform}/callback")
async def oauth_callback(
    platform: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    error_reason: Optional[str] = None,
) -> RedirectResponse:
    """
    Provider redirects here after consent.

    Validates state, exchanges the code, resolves the platform account,
    stores the connection and kicks off the first sync in the background.
    Always answers with a redirect to the dashboard.
    """
    if platform not in PLATFORMS:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Platform '{platform}' not found")

    if error:
        reason = error_description or error_reason or error
        logger.warning("%s OAuth denied by provider: %s", platform, reason)
        return _dashboard_redirect({f"{platform}_error": reason})

    if not code or not state:
        return _dashboard_redirect({f"{platform}_error": "missing_params"})

    connector = ConnectorRegistry().get(platform)
    if not connector:
        return _dashboard_redirect({f"{platform}_error": "not_configured"})

    try:
        # 1. State + CSRF (+ PKCE verifier); nothing is exchanged before this passes
        oauth_state = validate_state(state, request.cookies.get(csrf_cookie_name(platform)))
        code_verifier: Optional[str] = None
        if connector.uses_pkce:
            code_verifier = request.cookies.get(verifier_cookie_name(platform))
            if not code_verifier:
                raise OAuthStateError("Missing PKCE code verifier")

        # 2. Code → tokens
        tokens = await connector.exchange_code(code, code_verifier)

        # 3. Platform account
        account = await connector.resolve_account(tokens.access_token, tokens)

        # 4. Persist
        connection = await store_connection(connector, oauth_state.user_id, tokens, account)
    except Exception as exc:
        logger.error("%s OAuth callback failed: %s", platform, exc)
        return _dashboard_redirect({f"{platform}_error": "callback_failed"})

    schedule_sync(platform, str(connection["id"]))

    response = _dashboard_redirect({f"{platform}_connected": "true"})
    response.delete_cookie(csrf_cookie_name(platform), path="/")
    if connector.uses_pkce:
        response.delete_cookie(verifier_cookie_name(platform), path="/")
    return response


@router.post("/{platform}/sync")
async def sync_now(
    platform: str,
    user_id: str = Depends(get_current_user_id),
) -> Any:
    """Run a sync pass for the caller's active connection and return its result."""
    connector = _get_connector(platform)

    try:
        connection = await get_active_connection(connector, user_id)
        if not connection:
            raise ConnectionNotFound(message=f"No active {connector.display_name} connection")
        result = await get_sync_engine(platform).sync_account(str(connection["id"]))
    except ConnectionNotFound:
        raise
    except Exception as exc:
        logger.exception("Manual %s sync failed for user %s", platform, user_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Sync failed", "details": str(exc)},
        )

    return result.to_response()


@router.delete("/{platform}/connections/{connection_id}")
async def delete_connection(
    platform: str,
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    """Deactivate a connection; its history is kept."""
    connector = _get_connector(platform)
    deactivated = await deactivate_connection(connector, user_id, connection_id)
    if not deactivated:
        raise ConnectionNotFound(connection_id)
    return {"status": "disconnected", "connection_id": connection_id}
