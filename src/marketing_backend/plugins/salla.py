"""Salla plugin module.

This module provides the API endpoints for the Salla integration in the
marketing backend:

- the browser-facing OAuth endpoints (``/auth`` and ``/callback``), which
  always answer with redirects so the browser never sees a raw error;
- the JSON endpoints the dashboard uses to list, inspect, connect and
  disconnect the caller's Salla stores. Access tokens never appear in their
  responses.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from marketing_backend.core import connections, oauth_flow
from marketing_backend.core.auth import TokenData, decode_access_token, get_current_user
from marketing_backend.core.database import get_db
from marketing_backend.core.errors import NotAuthenticated
from marketing_backend.core.models import (
    AuthUrl,
    ConnectionSummary,
    ConnectResult,
    ConnectWithTokenRequest,
    DisconnectResult,
    PagedResult,
    StoreStats,
)
from marketing_backend.core.settings import SallaSettings

# Setup module-level logger
logger = logging.getLogger("salla")


def _request_origin(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def create_salla_router(settings: SallaSettings) -> APIRouter:
    """Create a router for the Salla integration."""

    router = APIRouter(tags=["salla"])

    @router.get("/auth")
    async def initiate_oauth(
        request: Request,
        origin: Optional[str] = None,
        token: Optional[str] = None,
    ) -> RedirectResponse:
        """
        Initiate OAuth flow.

        Browser navigations carry no Authorization header, so the dashboard
        passes its JWT as ``token``. The user signed into the state always
        comes from that token.
        """
        try:
            current_user = decode_access_token(token or "")
        except HTTPException:
            logger.warning("Rejected Salla OAuth start without a valid dashboard token")
            url = oauth_flow.redirect_url(oauth_flow.Errored(NotAuthenticated.code), settings)
            return RedirectResponse(url=url, status_code=302)

        started = oauth_flow.start(origin or _request_origin(request), current_user.user_id, settings)
        logger.info(
            "Redirecting user %s to Salla consent, callback %s",
            current_user.user_id,
            started.redirect_uri,
        )
        return RedirectResponse(started.url, status_code=302)

    @router.get("/callback")
    async def oauth_callback(
        request: Request,
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        db: Session = Depends(get_db),
    ) -> RedirectResponse:
        """
        Handle the OAuth callback from Salla.

        On success the new connection replaces the user's active one and the
        browser is sent to the connect page with the store name. Any failure
        is reported to the connect page as an ``error`` code.
        """
        outcome = await oauth_flow.run_callback(
            code, state, error, _request_origin(request), db, settings
        )
        url = oauth_flow.redirect_url(outcome, settings)
        logger.info("OAuth callback finished: %s", type(outcome).__name__)
        return RedirectResponse(url=url, status_code=302)

    @router.get("/auth-url", response_model=AuthUrl)
    async def get_auth_url(
        origin: str,
        current_user: TokenData = Depends(get_current_user),
    ) -> AuthUrl:
        """Consent URL for the dashboard's connect button, with state signed for the caller."""
        return connections.get_auth_url(origin, settings, user_id=current_user.user_id)

    @router.get("/connections", response_model=list[ConnectionSummary])
    async def get_connections(
        current_user: TokenData = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> list[ConnectionSummary]:
        """List the caller's active connections with credentials redacted."""
        return connections.get_connections(db, current_user.user_id)

    @router.get("/connections/{connection_id}/stats", response_model=Optional[StoreStats])
    async def get_store_stats(
        connection_id: int,
        current_user: TokenData = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> Optional[StoreStats]:
        return await connections.get_store_stats(db, current_user.user_id, connection_id, settings)

    @router.get("/connections/{connection_id}/products", response_model=PagedResult)
    async def get_products(
        connection_id: int,
        page: int = Query(1, ge=1),
        per_page: int = Query(10, ge=1, le=100, alias="perPage"),
        current_user: TokenData = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> PagedResult:
        return await connections.get_products(
            db, current_user.user_id, connection_id, page, per_page, settings
        )

    @router.get("/connections/{connection_id}/orders", response_model=PagedResult)
    async def get_orders(
        connection_id: int,
        page: int = Query(1, ge=1),
        per_page: int = Query(10, ge=1, le=100, alias="perPage"),
        current_user: TokenData = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> PagedResult:
        return await connections.get_orders(
            db, current_user.user_id, connection_id, page, per_page, settings
        )

    @router.get("/connections/{connection_id}/customers", response_model=PagedResult)
    async def get_customers(
        connection_id: int,
        page: int = Query(1, ge=1),
        per_page: int = Query(10, ge=1, le=100, alias="perPage"),
        current_user: TokenData = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> PagedResult:
        return await connections.get_customers(
            db, current_user.user_id, connection_id, page, per_page, settings
        )

    @router.get("/connections/{connection_id}/store")
    async def get_store_info(
        connection_id: int,
        current_user: TokenData = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> Optional[dict]:
        """Live store details from Salla."""
        return await connections.get_store_info(db, current_user.user_id, connection_id, settings)

    @router.post("/connect-token", response_model=ConnectResult)
    async def connect_with_token(
        payload: ConnectWithTokenRequest,
        current_user: TokenData = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> ConnectResult:
        """
        Connect a store with a token copied from the Salla partner portal.

        Meant for testing; the regular path is the OAuth flow.
        """
        logger.info("Manual Salla connect for user %s", current_user.user_id)
        return await connections.connect_with_token(
            db, current_user.user_id, payload.access_token, payload.refresh_token
        )

    @router.post("/connections/{connection_id}/disconnect", response_model=DisconnectResult)
    async def disconnect(
        connection_id: int,
        current_user: TokenData = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> DisconnectResult:
        return connections.disconnect(db, current_user.user_id, connection_id)

    return router
