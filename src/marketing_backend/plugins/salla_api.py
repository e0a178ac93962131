"""Salla REST API client.

Thin protocol layer over the Salla admin API and its OAuth token endpoint.
Functions here perform no persistence and do not interpret Salla error codes;
callers inspect the returned JSON envelope themselves.

The blocking ``requests`` calls have async counterparts (``a``-prefixed) that
run them in a worker thread, so FastAPI handlers can await them and issue
independent reads concurrently.
"""

import logging
from functools import partial
from typing import Any

import anyio
import requests  # type: ignore

from marketing_backend.core.dependencies import get_salla_api_url, get_salla_settings
from marketing_backend.core.errors import UpstreamUnavailable

# Setup module-level logger
logger = logging.getLogger("salla_api")


def _timeout() -> float:
    return get_salla_settings().salla_request_timeout


def _parse_json(response: requests.Response, what: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as e:
        logger.error("%s returned a non-JSON body (HTTP %s)", what, response.status_code)
        raise UpstreamUnavailable(f"Salla returned an unreadable response for {what}") from e
    if not isinstance(body, dict):
        raise UpstreamUnavailable(f"Salla returned an unexpected response for {what}")
    return body


def call_api(path: str, token: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Issue an authenticated GET against the Salla admin API.

    Args:
        path (str): API path relative to the admin API root, e.g. "/store/info".
        token (str): Salla access token.
        params (dict | None): Optional query parameters.

    Returns:
        dict[str, Any]: The parsed JSON envelope, unmodified. Error responses are
        returned as well; their ``status`` field tells the caller what happened.

    Raises:
        UpstreamUnavailable: On network failure, timeout or a non-JSON body.
    """
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
    }
    url = f"{get_salla_api_url()}{path}"
    try:
        response = requests.get(url, headers=headers, params=params, timeout=_timeout())
    except requests.RequestException as e:
        logger.error("GET %s failed: %s: %s", path, type(e).__name__, str(e))
        raise UpstreamUnavailable(f"Could not reach Salla: {type(e).__name__}") from e

    logger.debug("GET %s -> HTTP %s", path, response.status_code)
    return _parse_json(response, path)


def _post_token_endpoint(form: dict[str, str]) -> dict[str, Any]:
    settings = get_salla_settings()
    try:
        response = requests.post(
            settings.salla_token_url,
            data=form,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            timeout=settings.salla_request_timeout,
        )
    except requests.RequestException as e:
        logger.error(
            "Token request (%s) failed: %s: %s", form["grant_type"], type(e).__name__, str(e)
        )
        raise UpstreamUnavailable(f"Could not reach Salla: {type(e).__name__}") from e

    logger.info("Token request (%s) -> HTTP %s", form["grant_type"], response.status_code)
    return _parse_json(response, "oauth2/token")


def exchange_authorization_code(
    code: str, client_id: str, client_secret: str, redirect_uri: str
) -> dict[str, Any]:
    """
    Exchange an authorization code for tokens.

    Returns:
        dict[str, Any]: Raw token response (``access_token``, ``refresh_token``,
        ``expires_in``, ``scope``) or an error payload.
    """
    return _post_token_endpoint(
        {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
        }
    )


def refresh_token(refresh_token: str, client_id: str, client_secret: str) -> dict[str, Any]:
    """
    Mint a new access token from a refresh token.

    Returns:
        dict[str, Any]: Raw token response or an error payload.
    """
    return _post_token_endpoint(
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        }
    )


def fetch_store_info(token: str) -> dict[str, Any] | None:
    """
    Retrieves the store details for an access token.

    Returns:
        dict[str, Any] | None: The store data, or None when Salla rejected the token.
    """
    body = call_api("/store/info", token)
    if body.get("status") == 200 and isinstance(body.get("data"), dict):
        return body["data"]
    logger.info("Store info lookup rejected: status=%s", body.get("status"))
    return None


async def acall_api(
    path: str, token: str, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    return await anyio.to_thread.run_sync(partial(call_api, path, token, params))


async def aexchange_authorization_code(
    code: str, client_id: str, client_secret: str, redirect_uri: str
) -> dict[str, Any]:
    return await anyio.to_thread.run_sync(
        exchange_authorization_code, code, client_id, client_secret, redirect_uri
    )


async def arefresh_token(refresh_token_value: str, client_id: str, client_secret: str) -> dict[str, Any]:
    return await anyio.to_thread.run_sync(refresh_token, refresh_token_value, client_id, client_secret)


async def afetch_store_info(token: str) -> dict[str, Any] | None:
    return await anyio.to_thread.run_sync(fetch_store_info, token)
