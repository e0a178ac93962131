"""Salla OAuth authorization-code flow.

The browser leaves the dashboard through ``start`` and comes back to the
callback, which walks through ``receive_callback`` -> ``exchange`` ->
``persist``. Every step returns the next step object or ``Errored``, and each
terminal step maps to exactly one redirect into the dashboard through
``redirect_url``.

The callback arrives without a dashboard session, so the initiating user and
origin travel in the ``state`` parameter. The state is a signed JWT and is only
issued to a user who proved who they are with a dashboard token; a state
that fails verification stops the flow instead of being trusted.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Union
from urllib.parse import quote, urlencode

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from marketing_backend.core.credentials import (
    DEFAULT_STORE_NAME,
    connection_from_store_info,
    set_active_connection,
)
from marketing_backend.core.errors import (
    AuthorizationDenied,
    InvalidState,
    MissingCode,
    SallaError,
    TokenExchangeFailed,
)
from marketing_backend.core.settings import SALLA_CALLBACK_PATH, SALLA_OAUTH_SCOPE, SallaSettings
from marketing_backend.plugins import salla_api

# Setup module-level logger
logger = logging.getLogger("oauth")

STATE_ALGORITHM = "HS256"
SERVER_ERROR = "server_error"


@dataclass(frozen=True)
class Started:
    url: str
    redirect_uri: str
    state: str


@dataclass(frozen=True)
class CodeReceived:
    code: str
    origin: str
    user_id: int | None

    @property
    def redirect_uri(self) -> str:
        return build_redirect_uri(self.origin)


@dataclass(frozen=True)
class Exchanged:
    token_data: dict[str, Any]
    origin: str
    user_id: int | None


@dataclass(frozen=True)
class Persisted:
    store_name: str
    connection_id: int | None = None


@dataclass(frozen=True)
class Errored:
    reason: str


FlowStep = Union[Started, CodeReceived, Exchanged, Persisted, Errored]


def build_redirect_uri(origin: str) -> str:
    return f"{origin.rstrip('/')}{SALLA_CALLBACK_PATH}"


def build_auth_url(settings: SallaSettings, redirect_uri: str, state: str | None = None) -> str:
    """Build the Salla consent URL for this app."""
    params = {
        "client_id": settings.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": SALLA_OAUTH_SCOPE,
    }
    if state:
        params["state"] = state
    return f"{settings.salla_auth_url}?{urlencode(params)}"


def _parse_user_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def encode_state(origin: str, user_id: int, settings: SallaSettings) -> str:
    """Sign the origin and the authenticated initiating user into an OAuth state value."""
    expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        seconds=settings.state_max_age_seconds
    )
    payload = {"origin": origin, "userId": user_id, "exp": expire}
    return jwt.encode(payload, settings.state_signing_key, algorithm=STATE_ALGORITHM)


def decode_state(state: str, settings: SallaSettings) -> tuple[str | None, int | None]:
    """
    Verify an OAuth state value.

    Returns:
        tuple[str | None, int | None]: The origin and user id it carries.

    Raises:
        InvalidState: If the signature does not match or the state expired.
    """
    try:
        payload = jwt.decode(state, settings.state_signing_key, algorithms=[STATE_ALGORITHM])
    except JWTError as e:
        raise InvalidState() from e
    origin = payload.get("origin")
    return (origin if isinstance(origin, str) and origin else None), _parse_user_id(
        payload.get("userId")
    )


def start(origin: str, user_id: int, settings: SallaSettings) -> Started:
    redirect_uri = build_redirect_uri(origin)
    state = encode_state(origin, user_id, settings)
    return Started(
        url=build_auth_url(settings, redirect_uri, state),
        redirect_uri=redirect_uri,
        state=state,
    )


def receive_callback(
    code: str | None,
    state: str | None,
    error: str | None,
    request_origin: str,
    settings: SallaSettings,
) -> CodeReceived | Errored:
    """
    Validate the callback query parameters.

    A provider ``error`` is passed through verbatim. Without a state the flow
    continues with the request's own origin and no user, so nothing will be
    stored for it.
    """
    if error:
        denied = AuthorizationDenied(error)
        logger.info(denied.message)
        return Errored(denied.code)
    if not code:
        return Errored(MissingCode.code)

    origin, user_id = request_origin, None
    if state:
        try:
            state_origin, user_id = decode_state(state, settings)
        except InvalidState as e:
            logger.warning("Rejected OAuth callback with invalid state")
            return Errored(e.code)
        origin = state_origin or request_origin

    logger.info("OAuth callback received: code=%s... user=%s", code[:5], user_id)
    return CodeReceived(code=code, origin=origin, user_id=user_id)


async def exchange(step: CodeReceived, settings: SallaSettings) -> Exchanged | Errored:
    token_data = await salla_api.aexchange_authorization_code(
        step.code, settings.client_id, settings.client_secret, step.redirect_uri
    )
    if not token_data.get("access_token"):
        logger.error(
            "Salla token exchange failed: %s",
            token_data.get("error_description") or token_data.get("error") or token_data.get("status"),
        )
        return Errored(TokenExchangeFailed.code)
    return Exchanged(token_data=token_data, origin=step.origin, user_id=step.user_id)


async def persist(step: Exchanged, db: Session) -> Persisted:
    """
    Store the new connection as the user's active one.

    Store info is best-effort: when Salla does not return it a generic store
    name is used. Without a user id nothing is written.
    """
    access_token = step.token_data["access_token"]
    try:
        store_info = await salla_api.afetch_store_info(access_token)
    except SallaError as e:
        logger.warning("Could not fetch store info after token exchange: %s", e.message)
        store_info = None

    store_name = (store_info or {}).get("name") or DEFAULT_STORE_NAME
    if step.user_id is None:
        logger.warning("OAuth callback carried no user; connection for %s not stored", store_name)
        return Persisted(store_name=store_name)

    connection = connection_from_store_info(step.user_id, step.token_data, store_info)
    connection = set_active_connection(db, step.user_id, connection)
    return Persisted(store_name=store_name, connection_id=connection.id)


def redirect_url(step: Persisted | Errored, settings: SallaSettings) -> str:
    route = settings.salla_connect_route
    if isinstance(step, Persisted):
        return f"{route}?success=true&store={quote(step.store_name, safe='')}"
    return f"{route}?error={quote(step.reason, safe='')}"


async def run_callback(
    code: str | None,
    state: str | None,
    error: str | None,
    request_origin: str,
    db: Session,
    settings: SallaSettings,
) -> Persisted | Errored:
    """Drive the callback to a terminal step. Unexpected failures end as ``server_error``."""
    received = receive_callback(code, state, error, request_origin, settings)
    if isinstance(received, Errored):
        return received

    try:
        exchanged = await exchange(received, settings)
        if isinstance(exchanged, Errored):
            return exchanged
        return await persist(exchanged, db)
    except Exception as e:
        logger.exception("Salla OAuth callback error: %s: %s", type(e).__name__, str(e))
        return Errored(SERVER_ERROR)
