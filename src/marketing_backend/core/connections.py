"""Dashboard operations over a user's Salla connections.

Lookups are always scoped to the calling user. A missing connection is not an
error here: reads return None or an empty page so the dashboard can render
an empty state.
"""

import logging
import math
import re
from typing import Any

import anyio
from sqlalchemy.orm import Session

from marketing_backend.core.credentials import (
    connection_from_store_info,
    deactivate_connection,
    get_connection,
    list_active_connections,
    set_active_connection,
)
from marketing_backend.core.errors import InvalidCredential, SallaError
from marketing_backend.core.models import (
    AuthUrl,
    ConnectionSummary,
    ConnectResult,
    DisconnectResult,
    PagedResult,
    StoreStats,
    StoreSummary,
)
from marketing_backend.core.oauth_flow import build_auth_url, build_redirect_uri, encode_state
from marketing_backend.core.settings import SallaSettings
from marketing_backend.core.tokens import ensure_fresh_token
from marketing_backend.plugins import salla_api

# Setup module-level logger
logger = logging.getLogger("connections")

UNSPECIFIED_STATUS = "unspecified"
STATS_ORDER_LIMIT = 100
DEFAULT_CURRENCY = "SAR"


def get_auth_url(origin: str, settings: SallaSettings, user_id: int | None = None) -> AuthUrl:
    """
    Consent URL for the dashboard's connect button.

    With an authenticated ``user_id`` the URL carries a state signed for that
    user, so the callback can store the connection. Without one no state is
    attached.
    """
    redirect_uri = build_redirect_uri(origin)
    state = encode_state(origin, user_id, settings) if user_id is not None else None
    return AuthUrl(url=build_auth_url(settings, redirect_uri, state), redirect_uri=redirect_uri)


def get_connections(db: Session, user_id: int) -> list[ConnectionSummary]:
    return [ConnectionSummary.from_connection(c) for c in list_active_connections(db, user_id)]


_LEADING_NUMBER = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _order_amount(order: Any) -> float:
    """Order total, reading a leading number from strings such as ``"12.50 SAR"``."""
    try:
        raw = order["amounts"]["total"]["amount"]
    except (KeyError, TypeError):
        return 0.0
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        amount = float(raw)
    elif isinstance(raw, str):
        match = _LEADING_NUMBER.match(raw)
        amount = float(match.group(1)) if match else 0.0
    else:
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def _order_status(order: Any) -> str:
    status = order.get("status") if isinstance(order, dict) else None
    if isinstance(status, dict) and status.get("name"):
        return str(status["name"])
    return UNSPECIFIED_STATUS


def summarize_orders(orders: list[Any]) -> tuple[float, dict[str, int]]:
    """
    Total revenue and per-status order counts.

    Amounts that are missing or do not start with a number count as zero.
    """
    revenue = 0.0
    by_status: dict[str, int] = {}
    for order in orders:
        revenue += _order_amount(order)
        status = _order_status(order)
        by_status[status] = by_status.get(status, 0) + 1
    return revenue, by_status


def _pagination_total(body: dict[str, Any]) -> int:
    pagination = body.get("pagination")
    if isinstance(pagination, dict):
        try:
            return int(pagination.get("total") or 0)
        except (TypeError, ValueError):
            return 0
    return 0


async def get_store_stats(
    db: Session, user_id: int, connection_id: int, settings: SallaSettings
) -> StoreStats | None:
    """
    Aggregate product, order and revenue numbers for one connected store.

    Products and the latest orders are fetched concurrently.

    Returns:
        StoreStats | None: None when the user has no such active connection.
    """
    connection = get_connection(db, connection_id, user_id, active_only=True)
    if connection is None:
        return None

    token = await ensure_fresh_token(db, connection, settings)

    results: dict[str, dict[str, Any]] = {}
    failures: list[SallaError] = []

    async def _fetch(key: str, path: str, params: dict[str, Any]) -> None:
        try:
            results[key] = await salla_api.acall_api(path, token, params)
        except SallaError as e:
            failures.append(e)

    async with anyio.create_task_group() as tg:
        tg.start_soon(_fetch, "products", "/products", {"per_page": 1})
        tg.start_soon(_fetch, "orders", "/orders", {"per_page": STATS_ORDER_LIMIT})

    if failures:
        raise failures[0]

    products, orders = results["products"], results["orders"]
    orders_data = orders.get("data") if isinstance(orders.get("data"), list) else []
    revenue, by_status = summarize_orders(orders_data)

    return StoreStats(
        store_name=connection.store_name,
        store_domain=connection.store_domain,
        store_avatar=connection.store_avatar,
        store_plan=connection.store_plan,
        total_products=_pagination_total(products),
        total_orders=_pagination_total(orders),
        total_revenue=f"{revenue:.2f}",
        currency=DEFAULT_CURRENCY,
        orders_by_status=by_status,
    )


async def _get_page(
    db: Session,
    user_id: int,
    connection_id: int,
    path: str,
    page: int,
    per_page: int,
    settings: SallaSettings,
) -> PagedResult:
    connection = get_connection(db, connection_id, user_id, active_only=True)
    if connection is None or not connection.access_token:
        return PagedResult()

    token = await ensure_fresh_token(db, connection, settings)
    body = await salla_api.acall_api(path, token, {"page": page, "per_page": per_page})
    data = body.get("data")
    pagination = body.get("pagination")
    return PagedResult(
        data=data if isinstance(data, list) else [],
        pagination=pagination if isinstance(pagination, dict) else {"total": 0},
    )


async def get_products(
    db: Session, user_id: int, connection_id: int, page: int, per_page: int, settings: SallaSettings
) -> PagedResult:
    return await _get_page(db, user_id, connection_id, "/products", page, per_page, settings)


async def get_orders(
    db: Session, user_id: int, connection_id: int, page: int, per_page: int, settings: SallaSettings
) -> PagedResult:
    return await _get_page(db, user_id, connection_id, "/orders", page, per_page, settings)


async def get_customers(
    db: Session, user_id: int, connection_id: int, page: int, per_page: int, settings: SallaSettings
) -> PagedResult:
    return await _get_page(db, user_id, connection_id, "/customers", page, per_page, settings)


async def get_store_info(
    db: Session, user_id: int, connection_id: int, settings: SallaSettings
) -> dict[str, Any] | None:
    """Live store details from Salla, or None without an active connection."""
    connection = get_connection(db, connection_id, user_id, active_only=True)
    if connection is None:
        return None
    token = await ensure_fresh_token(db, connection, settings)
    return await salla_api.afetch_store_info(token)


async def connect_with_token(
    db: Session, user_id: int, access_token: str, refresh_token: str | None = None
) -> ConnectResult:
    """
    Connect a store from a token pasted into the dashboard.

    Raises:
        InvalidCredential: If Salla does not accept the token.
    """
    store_info = await salla_api.afetch_store_info(access_token)
    if not store_info:
        raise InvalidCredential()

    connection = connection_from_store_info(
        user_id,
        {"access_token": access_token, "refresh_token": refresh_token},
        store_info,
    )
    set_active_connection(db, user_id, connection)

    return ConnectResult(
        success=True,
        store=StoreSummary(
            name=store_info.get("name"),
            email=store_info.get("email"),
            domain=store_info.get("domain"),
            plan=store_info.get("plan"),
            type=store_info.get("type"),
        ),
    )


def disconnect(db: Session, user_id: int, connection_id: int) -> DisconnectResult:
    deactivate_connection(db, connection_id, user_id)
    return DisconnectResult(success=True)
