"""Tests for the Salla REST API client."""

from unittest.mock import patch

import anyio
import pytest
import requests  # type: ignore

from conftest import json_response
from marketing_backend.core.errors import UpstreamUnavailable
from marketing_backend.plugins import salla_api


def test_call_api_sends_bearer_and_accept_headers() -> None:
    """call_api issues an authenticated GET and returns the body unmodified."""
    body = {"status": 200, "success": True, "data": [{"id": 1}], "pagination": {"total": 1}}
    with patch.object(salla_api.requests, "get", return_value=json_response(body)) as mock_get:
        result = salla_api.call_api("/products", "tok-abc", {"per_page": 1})

    assert result == body
    args, kwargs = mock_get.call_args
    assert args[0] == "https://api.salla.dev/admin/v2/products"
    assert kwargs["headers"] == {
        "Authorization": "Bearer tok-abc",
        "Accept": "application/json",
    }
    assert kwargs["params"] == {"per_page": 1}
    assert kwargs["timeout"] == 30.0


def test_call_api_returns_error_envelopes() -> None:
    body = {"status": 401, "success": False, "error": {"code": "Unauthorized"}}
    with patch.object(salla_api.requests, "get", return_value=json_response(body, 401)):
        assert salla_api.call_api("/orders", "expired") == body


def test_call_api_timeout_raises_upstream_unavailable() -> None:
    with patch.object(salla_api.requests, "get", side_effect=requests.Timeout("slow")):
        with pytest.raises(UpstreamUnavailable):
            salla_api.call_api("/store/info", "tok")


def test_call_api_non_json_body_raises_upstream_unavailable() -> None:
    response = json_response(None, 502)
    response.json.side_effect = ValueError("not json")
    with patch.object(salla_api.requests, "get", return_value=response):
        with pytest.raises(UpstreamUnavailable):
            salla_api.call_api("/store/info", "tok")


def test_exchange_authorization_code_posts_form() -> None:
    token_body = {"access_token": "new", "refresh_token": "ref", "expires_in": 1209600}
    with patch.object(salla_api.requests, "post", return_value=json_response(token_body)) as mock_post:
        result = salla_api.exchange_authorization_code(
            "code-1", "client", "secret", "https://app.example/api/salla/callback"
        )

    assert result == token_body
    args, kwargs = mock_post.call_args
    assert args[0] == "https://accounts.salla.sa/oauth2/token"
    assert kwargs["data"] == {
        "grant_type": "authorization_code",
        "code": "code-1",
        "client_id": "client",
        "client_secret": "secret",
        "redirect_uri": "https://app.example/api/salla/callback",
    }
    assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"


def test_refresh_token_posts_refresh_grant() -> None:
    with patch.object(
        salla_api.requests, "post", return_value=json_response({"access_token": "rotated"})
    ) as mock_post:
        result = salla_api.refresh_token("ref-1", "client", "secret")

    assert result == {"access_token": "rotated"}
    assert mock_post.call_args.kwargs["data"] == {
        "grant_type": "refresh_token",
        "refresh_token": "ref-1",
        "client_id": "client",
        "client_secret": "secret",
    }


def test_fetch_store_info() -> None:
    store = {"id": 7, "name": "Dates Shop", "domain": "https://dates.salla.sa"}
    with patch.object(salla_api, "call_api", return_value={"status": 200, "data": store}):
        assert salla_api.fetch_store_info("tok") == store
    with patch.object(salla_api, "call_api", return_value={"status": 401, "error": {}}):
        assert salla_api.fetch_store_info("tok") is None


def test_async_wrapper_runs_blocking_call() -> None:
    with patch.object(salla_api, "call_api", return_value={"status": 200}) as mock_call:
        result = anyio.run(salla_api.acall_api, "/orders", "tok", {"page": 2})

    assert result == {"status": 200}
    mock_call.assert_called_once_with("/orders", "tok", {"page": 2})
