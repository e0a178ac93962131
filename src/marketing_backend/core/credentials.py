"""Access functions for stored Salla connections.

All reads and writes are scoped by the owning user id. The single active
connection per user is enforced by ``set_active_connection`` only.
"""

import datetime
import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketing_backend.core.models import SallaConnection, utcnow

# Setup module-level logger
logger = logging.getLogger("credentials")

DEFAULT_STORE_NAME = "Salla Store"


def get_connection(
    db: Session, connection_id: int, user_id: int, active_only: bool = False
) -> SallaConnection | None:
    """Return the user's connection with this id, or None if it belongs to someone else."""
    stmt = select(SallaConnection).where(
        SallaConnection.id == connection_id,
        SallaConnection.user_id == user_id,
    )
    if active_only:
        stmt = stmt.where(SallaConnection.is_active.is_(True))
    return db.scalars(stmt.limit(1)).first()


def list_active_connections(db: Session, user_id: int) -> list[SallaConnection]:
    stmt = (
        select(SallaConnection)
        .where(SallaConnection.user_id == user_id, SallaConnection.is_active.is_(True))
        .order_by(SallaConnection.id)
    )
    return list(db.scalars(stmt).all())


def set_active_connection(db: Session, user_id: int, connection: SallaConnection) -> SallaConnection:
    """
    Make ``connection`` the user's only active connection.

    Every other connection of the user is deactivated and ``connection`` is
    saved as active in a single transaction, so a failure leaves the previous
    state untouched.

    Args:
        db (Session): The database session.
        user_id (int): Owner of the connection.
        connection (SallaConnection): New or existing connection to activate.

    Returns:
        SallaConnection: The saved connection with its id populated.
    """
    connection.user_id = user_id
    connection.is_active = True
    try:
        deactivate = (
            update(SallaConnection)
            .where(SallaConnection.user_id == user_id, SallaConnection.is_active.is_(True))
            .values(is_active=False, updated_at=utcnow())
        )
        if connection.id is not None:
            deactivate = deactivate.where(SallaConnection.id != connection.id)
        db.execute(deactivate)
        db.add(connection)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to activate Salla connection for user %s", user_id)
        raise

    db.refresh(connection)
    logger.info("User %s now has active Salla connection %s", user_id, connection.id)
    return connection


def deactivate_connection(db: Session, connection_id: int, user_id: int) -> None:
    """Soft-delete the user's connection. Unknown ids and repeated calls are no-ops."""
    db.execute(
        update(SallaConnection)
        .where(SallaConnection.id == connection_id, SallaConnection.user_id == user_id)
        .values(is_active=False, updated_at=utcnow())
    )
    db.commit()
    logger.info("User %s disconnected Salla connection %s", user_id, connection_id)


def rotate_tokens(
    db: Session,
    connection: SallaConnection,
    access_token: str,
    refresh_token: str | None,
    expires_in: int | float | None,
    expected_version: int,
) -> bool:
    """
    Persist a refreshed token pair if nobody rotated the connection meanwhile.

    The previous refresh token is kept when Salla did not send a new one, and
    the previous expiry is kept when no ``expires_in`` was given.

    Returns:
        bool: False when ``token_version`` no longer matches ``expected_version``.
    """
    values: dict[str, Any] = {
        "access_token": access_token,
        "refresh_token": refresh_token or connection.refresh_token,
        "token_version": expected_version + 1,
        "updated_at": utcnow(),
    }
    if expires_in:
        values["expires_at"] = utcnow() + datetime.timedelta(seconds=float(expires_in))

    result = db.execute(
        update(SallaConnection)
        .where(
            SallaConnection.id == connection.id,
            SallaConnection.token_version == expected_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(connection)

    if result.rowcount != 1:
        logger.warning("Connection %s was rotated concurrently; keeping the newer tokens", connection.id)
        return False
    return True


def connection_from_store_info(
    user_id: int, token_data: dict[str, Any], store_info: dict[str, Any] | None
) -> SallaConnection:
    """
    Build an unsaved connection from a token payload and the store snapshot.

    Args:
        user_id (int): Owner of the new connection.
        token_data (dict): Salla token response, or a dict with at least ``access_token``.
        store_info (dict | None): Salla store info, None when it could not be fetched.
    """
    store = store_info or {}
    expires_in = token_data.get("expires_in")
    expires_at = utcnow() + datetime.timedelta(seconds=float(expires_in)) if expires_in else None
    merchant_id = store.get("id")

    return SallaConnection(
        user_id=user_id,
        merchant_id=str(merchant_id) if merchant_id is not None else None,
        store_name=store.get("name") or DEFAULT_STORE_NAME,
        store_email=store.get("email"),
        store_domain=store.get("domain"),
        store_plan=store.get("plan"),
        store_avatar=store.get("avatar"),
        access_token=token_data["access_token"],
        refresh_token=token_data.get("refresh_token") or None,
        token_type=token_data.get("token_type") or "Bearer",
        expires_at=expires_at,
        scope=token_data.get("scope") or None,
        is_active=True,
    )
