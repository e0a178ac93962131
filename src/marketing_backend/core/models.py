"""
Database models used for Salla credential storage and the API response shapes.
"""

import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, DateTime, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from marketing_backend.core.database import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class SallaConnection(Base):
    """
    Represents one user's link to a Salla store, including its OAuth credentials.

    Attributes:
        id (int): Unique identifier of the connection.
        user_id (int): Dashboard user owning the connection.
        merchant_id (str): Salla store id, captured at connect time.
        store_name (str): Store name snapshot.
        store_email (str): Store email snapshot.
        store_domain (str): Store domain snapshot.
        store_plan (str): Salla plan snapshot.
        store_avatar (str): Store avatar URL snapshot.
        access_token (str): Salla access token. Never returned to API callers.
        refresh_token (str): Salla refresh token, absent without offline access.
        token_type (str): Token type reported by Salla.
        expires_at (datetime): When the access token expires; None means it does not.
        scope (str): Scopes granted by the store owner.
        token_version (int): Bumped on every token rotation.
        is_active (bool): False once disconnected or superseded.
        connected_at (datetime): Timestamp when the connection was created.
        updated_at (datetime): Timestamp of the last update.
    """

    __tablename__ = "salla_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    merchant_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    store_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    store_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    store_domain: Mapped[str | None] = mapped_column(String(500), nullable=True)
    store_plan: Mapped[str | None] = mapped_column(String(50), nullable=True)
    store_avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_type: Mapped[str] = mapped_column(String(50), default="Bearer", nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    connected_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class ConnectionSummary(BaseModel):
    """
    Redacted view of a SallaConnection.

    Only non-secret metadata is exposed; the tokens themselves are reduced to
    the ``hasRefreshToken`` flag.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    store_name: Optional[str] = Field(None, alias="storeName")
    store_email: Optional[str] = Field(None, alias="storeEmail")
    store_domain: Optional[str] = Field(None, alias="storeDomain")
    store_plan: Optional[str] = Field(None, alias="storePlan")
    store_avatar: Optional[str] = Field(None, alias="storeAvatar")
    merchant_id: Optional[str] = Field(None, alias="merchantId")
    is_active: bool = Field(..., alias="isActive")
    connected_at: Optional[datetime.datetime] = Field(None, alias="connectedAt")
    expires_at: Optional[datetime.datetime] = Field(None, alias="expiresAt")
    has_refresh_token: bool = Field(..., alias="hasRefreshToken")

    @classmethod
    def from_connection(cls, connection: SallaConnection) -> "ConnectionSummary":
        return cls(
            id=connection.id,
            store_name=connection.store_name,
            store_email=connection.store_email,
            store_domain=connection.store_domain,
            store_plan=connection.store_plan,
            store_avatar=connection.store_avatar,
            merchant_id=connection.merchant_id,
            is_active=connection.is_active,
            connected_at=connection.connected_at,
            expires_at=connection.expires_at,
            has_refresh_token=bool(connection.refresh_token),
        )


class StoreStats(BaseModel):
    """Aggregate numbers shown on the dashboard for a connected store."""

    model_config = ConfigDict(populate_by_name=True)

    store_name: Optional[str] = Field(None, alias="storeName")
    store_domain: Optional[str] = Field(None, alias="storeDomain")
    store_avatar: Optional[str] = Field(None, alias="storeAvatar")
    store_plan: Optional[str] = Field(None, alias="storePlan")
    total_products: int = Field(0, alias="totalProducts")
    total_orders: int = Field(0, alias="totalOrders")
    total_revenue: str = Field("0.00", alias="totalRevenue")
    currency: str = "SAR"
    orders_by_status: dict[str, int] = Field(default_factory=dict, alias="ordersByStatus")


class PagedResult(BaseModel):
    """A page of Salla records passed through to the dashboard."""

    data: list[Any] = Field(default_factory=list)
    pagination: dict[str, Any] = Field(default_factory=lambda: {"total": 0})


class AuthUrl(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    redirect_uri: str = Field(..., alias="redirectUri")


class ConnectWithTokenRequest(BaseModel):
    """Manual connect payload, used for testing with a token copied from Salla."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., min_length=10, alias="accessToken")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")


class StoreSummary(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    domain: Optional[str] = None
    plan: Optional[str] = None
    type: Optional[str] = None


class ConnectResult(BaseModel):
    success: bool
    store: StoreSummary


class DisconnectResult(BaseModel):
    success: bool
