"""Keep Salla access tokens fresh before they are used.

An expired access token is rotated with its refresh token right before a
read. Rotation for a given connection is serialized with a per-connection
lock inside the process and guarded by the ``token_version`` column across
processes, so a refresh token that Salla has already invalidated is never
written back over a newer one.
"""

import datetime
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import anyio
from sqlalchemy.orm import Session

from marketing_backend.core.credentials import rotate_tokens
from marketing_backend.core.errors import ReauthRequired
from marketing_backend.core.models import SallaConnection
from marketing_backend.core.settings import SallaSettings
from marketing_backend.plugins import salla_api

# Setup module-level logger
logger = logging.getLogger("tokens")

_refresh_locks: dict[int, anyio.Lock] = {}


@asynccontextmanager
async def _refresh_lock(connection_id: int) -> AsyncIterator[None]:
    """Hold the connection's refresh lock; the entry is dropped once nobody holds or waits for it."""
    lock = _refresh_locks.get(connection_id)
    if lock is None:
        lock = _refresh_locks[connection_id] = anyio.Lock()
    try:
        async with lock:
            yield
    finally:
        if not lock.locked() and not lock.statistics().tasks_waiting:
            if _refresh_locks.get(connection_id) is lock:
                del _refresh_locks[connection_id]


def is_expired(connection: SallaConnection, now: datetime.datetime | None = None) -> bool:
    """
    Whether the connection's access token has expired.

    Tokens without an expiry never expire. Naive timestamps, as read back from
    SQLite, are taken to be UTC.
    """
    expires_at = connection.expires_at
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return expires_at < now


async def ensure_fresh_token(db: Session, connection: SallaConnection, settings: SallaSettings) -> str:
    """
    Return a usable access token for the connection, refreshing it if needed.

    Args:
        db (Session): The database session the connection was loaded with.
        connection (SallaConnection): The connection about to be used.
        settings (SallaSettings): Provides the app's OAuth client credentials.

    Returns:
        str: The current access token.

    Raises:
        ReauthRequired: If the token expired and cannot be refreshed.
        UpstreamUnavailable: If Salla could not be reached for the refresh.
    """
    if not is_expired(connection):
        return connection.access_token

    if not connection.refresh_token:
        logger.info("Connection %s expired without a refresh token", connection.id)
        raise ReauthRequired()

    async with _refresh_lock(connection.id):
        # Another request may have rotated the tokens while we waited
        db.refresh(connection)
        if not is_expired(connection):
            return connection.access_token
        if not connection.refresh_token:
            raise ReauthRequired()

        expected_version = connection.token_version
        logger.info("Refreshing access token for connection %s", connection.id)
        token_data = await salla_api.arefresh_token(
            connection.refresh_token, settings.client_id, settings.client_secret
        )

        access_token = token_data.get("access_token")
        if not access_token:
            logger.warning(
                "Token refresh for connection %s was rejected: %s",
                connection.id,
                token_data.get("error") or token_data.get("status"),
            )
            raise ReauthRequired()

        rotate_tokens(
            db,
            connection,
            access_token=access_token,
            refresh_token=token_data.get("refresh_token"),
            expires_in=token_data.get("expires_in"),
            expected_version=expected_version,
        )
        return connection.access_token
