"""Tests for the dashboard operations over Salla connections."""

from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import anyio
import pytest
from sqlalchemy.orm import Session

from conftest import utc_in
from marketing_backend.core import connections
from marketing_backend.core.credentials import set_active_connection
from marketing_backend.core.errors import InvalidCredential, UpstreamUnavailable
from marketing_backend.core.models import PagedResult, SallaConnection
from marketing_backend.core.oauth_flow import decode_state
from marketing_backend.plugins import salla_api

ORDERS = [
    {"id": 1, "amounts": {"total": {"amount": "150.50"}}, "status": {"name": "completed"}},
    {"id": 2, "amounts": {"total": {"amount": 49.5}}, "status": {"name": "completed"}},
    {"id": 3, "amounts": {"total": {"amount": "n/a"}}, "status": {"name": "pending"}},
    {"id": 4, "amounts": {}, "status": None},
]


def _salla_pages(path: str, token: str, params=None) -> dict:
    if path == "/products":
        return {"status": 200, "data": [{"id": 9}], "pagination": {"total": 37}}
    if path == "/orders":
        return {"status": 200, "data": ORDERS, "pagination": {"total": 212}}
    raise AssertionError(f"unexpected path {path}")


def test_summarize_orders() -> None:
    revenue, by_status = connections.summarize_orders(ORDERS)
    assert revenue == pytest.approx(200.0)
    assert by_status == {"completed": 2, "pending": 1, "unspecified": 1}


def test_summarize_orders_reads_leading_number() -> None:
    orders = [
        {"amounts": {"total": {"amount": "12.50 SAR"}}},
        {"amounts": {"total": {"amount": " 7"}}},
        {"amounts": {"total": {"amount": True}}},
        {"amounts": {"total": {"amount": "SAR 5"}}},
        {"amounts": {"total": {"amount": None}}},
        {"amounts": {"total": {"amount": "1e999"}}},
    ]
    revenue, by_status = connections.summarize_orders(orders)
    assert revenue == pytest.approx(19.5)
    assert by_status == {"unspecified": 6}


def test_get_auth_url_is_pure(settings) -> None:
    result = connections.get_auth_url("https://app.example", settings)
    assert result.redirect_uri == "https://app.example/api/salla/callback"
    assert "client_id=test_client_id" in result.url
    assert "state=" not in result.url


def test_get_auth_url_for_user_carries_signed_state(settings) -> None:
    result = connections.get_auth_url("https://app.example", settings, user_id=5)
    state = parse_qs(urlparse(result.url).query)["state"][0]
    assert decode_state(state, settings) == ("https://app.example", 5)


def test_get_connections_redacts_tokens(db: Session, make_connection) -> None:
    make_connection(user_id=5, refresh_token="refresh-secret", is_active=False)
    active = make_connection(user_id=5, access_token="access-secret", refresh_token="refresh-2")
    make_connection(user_id=6)

    summaries = connections.get_connections(db, 5)

    assert [s.id for s in summaries] == [active.id]
    assert summaries[0].has_refresh_token is True
    dumped = str([s.model_dump(by_alias=True) for s in summaries])
    assert "access-secret" not in dumped
    assert "refresh-2" not in dumped
    assert "hasRefreshToken" in dumped


def test_get_store_stats_aggregates_orders(db: Session, make_connection, settings) -> None:
    connection = make_connection(user_id=5)
    with patch.object(salla_api, "call_api", side_effect=_salla_pages) as mock_call:
        stats = anyio.run(connections.get_store_stats, db, 5, connection.id, settings)

    assert stats is not None
    assert stats.total_products == 37
    assert stats.total_orders == 212
    assert stats.total_revenue == "200.00"
    assert stats.currency == "SAR"
    assert stats.orders_by_status == {"completed": 2, "pending": 1, "unspecified": 1}
    assert stats.store_name == "Test Store"
    called = sorted((c.args[0], c.args[2]["per_page"]) for c in mock_call.call_args_list)
    assert called == [("/orders", 100), ("/products", 1)]


def test_get_store_stats_for_other_users_connection_is_none(
    db: Session, make_connection, settings
) -> None:
    connection = make_connection(user_id=5)
    with patch.object(salla_api, "call_api") as mock_call:
        assert anyio.run(connections.get_store_stats, db, 6, connection.id, settings) is None
    mock_call.assert_not_called()


def test_get_store_stats_refreshes_expired_token(db: Session, make_connection, settings) -> None:
    connection = make_connection(user_id=5, refresh_token="ref", expires_at=utc_in(-10))
    with patch.object(
        salla_api, "refresh_token", return_value={"access_token": "fresh", "expires_in": 3600}
    ) as mock_refresh, patch.object(salla_api, "call_api", side_effect=_salla_pages) as mock_call:
        anyio.run(connections.get_store_stats, db, 5, connection.id, settings)

    mock_refresh.assert_called_once()
    assert {c.args[1] for c in mock_call.call_args_list} == {"fresh"}


@pytest.mark.parametrize("read", [connections.get_products, connections.get_orders])
def test_page_reads_refresh_expired_token_once(
    read, db: Session, make_connection, settings
) -> None:
    connection = make_connection(user_id=5, refresh_token="ref", expires_at=utc_in(-10))
    with patch.object(
        salla_api, "refresh_token", return_value={"access_token": "fresh", "expires_in": 3600}
    ) as mock_refresh, patch.object(
        salla_api, "call_api", return_value={"status": 200, "data": []}
    ) as mock_call:
        anyio.run(read, db, 5, connection.id, 1, 10, settings)
        anyio.run(read, db, 5, connection.id, 1, 10, settings)

    mock_refresh.assert_called_once_with("ref", "test_client_id", "test_client_secret")
    assert [c.args[1] for c in mock_call.call_args_list] == ["fresh", "fresh"]


def test_get_store_stats_surfaces_upstream_failure(db: Session, make_connection, settings) -> None:
    connection = make_connection(user_id=5)
    with patch.object(salla_api, "call_api", side_effect=UpstreamUnavailable()):
        with pytest.raises(UpstreamUnavailable):
            anyio.run(connections.get_store_stats, db, 5, connection.id, settings)


def test_get_products_passes_through_page(db: Session, make_connection, settings) -> None:
    connection = make_connection(user_id=5)
    body = {"status": 200, "data": [{"id": 1}], "pagination": {"total": 1, "currentPage": 2}}
    with patch.object(salla_api, "call_api", return_value=body) as mock_call:
        result = anyio.run(connections.get_products, db, 5, connection.id, 2, 25, settings)

    assert result == PagedResult(data=[{"id": 1}], pagination={"total": 1, "currentPage": 2})
    mock_call.assert_called_once_with("/products", connection.access_token, {"page": 2, "per_page": 25})


def test_get_orders_and_customers_use_their_endpoints(db: Session, make_connection, settings) -> None:
    connection = make_connection(user_id=5)
    with patch.object(salla_api, "call_api", return_value={"status": 200}) as mock_call:
        orders = anyio.run(connections.get_orders, db, 5, connection.id, 1, 10, settings)
        customers = anyio.run(connections.get_customers, db, 5, connection.id, 1, 10, settings)

    assert orders == PagedResult()
    assert customers.pagination == {"total": 0}
    assert [c.args[0] for c in mock_call.call_args_list] == ["/orders", "/customers"]


def test_disconnected_connection_reads_as_empty_page(db: Session, make_connection, settings) -> None:
    connection = make_connection(user_id=5)
    assert connections.disconnect(db, 5, connection.id).success is True
    # Idempotent
    assert connections.disconnect(db, 5, connection.id).success is True

    with patch.object(salla_api, "call_api") as mock_call:
        result = anyio.run(connections.get_products, db, 5, connection.id, 1, 10, settings)

    assert result.model_dump() == {"data": [], "pagination": {"total": 0}}
    mock_call.assert_not_called()


def test_disconnect_ignores_other_users_connection(db: Session, make_connection) -> None:
    connection = make_connection(user_id=5)
    connections.disconnect(db, 6, connection.id)
    db.expire_all()
    assert connection.is_active is True


def test_connect_with_token_replaces_active_connection(db: Session, make_connection) -> None:
    previous = make_connection(user_id=5)
    store = {
        "id": 321,
        "name": "Oud House",
        "email": "hi@oud.example",
        "domain": "https://oud.salla.sa",
        "plan": "plus",
        "type": "store",
        "avatar": "https://cdn.example/oud.png",
    }
    with patch.object(salla_api, "fetch_store_info", return_value=store):
        result = anyio.run(connections.connect_with_token, db, 5, "manual-token-123", "manual-ref")

    assert result.success is True
    assert result.store.name == "Oud House"
    assert result.store.type == "store"

    active = connections.get_connections(db, 5)
    assert len(active) == 1
    assert active[0].merchant_id == "321"
    assert active[0].has_refresh_token is True
    db.expire_all()
    assert previous.is_active is False


def test_connect_with_invalid_token_raises(db: Session, make_connection) -> None:
    previous = make_connection(user_id=5)
    with patch.object(salla_api, "fetch_store_info", return_value=None):
        with pytest.raises(InvalidCredential):
            anyio.run(connections.connect_with_token, db, 5, "bad-token-123", None)

    db.expire_all()
    assert previous.is_active is True


def test_connect_then_stats_round_trip(db: Session, settings) -> None:
    with patch.object(salla_api, "fetch_store_info", return_value={"id": 1, "name": "S"}):
        anyio.run(connections.connect_with_token, db, 9, "manual-token-123", None)
    connection_id = connections.get_connections(db, 9)[0].id

    with patch.object(salla_api, "call_api", side_effect=_salla_pages):
        stats = anyio.run(connections.get_store_stats, db, 9, connection_id, settings)

    assert stats.total_revenue == "200.00"


def test_set_active_connection_reactivates_existing_row(db: Session, make_connection) -> None:
    old = make_connection(user_id=5, is_active=False)
    current = make_connection(user_id=5)

    set_active_connection(db, 5, old)

    db.expire_all()
    rows = {c.id: c.is_active for c in db.query(SallaConnection).filter_by(user_id=5)}
    assert rows == {old.id: True, current.id: False}
