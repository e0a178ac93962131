"""
Settings for the marketing backend.
"""

from enum import Enum

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SALLA_API_URL = "https://api.salla.dev/admin/v2"
SALLA_AUTH_URL = "https://accounts.salla.sa/oauth2/auth"
SALLA_TOKEN_URL = "https://accounts.salla.sa/oauth2/token"
SALLA_CALLBACK_PATH = "/api/salla/callback"
SALLA_OAUTH_SCOPE = "offline_access"

load_dotenv()


class Provider(Enum):
    """
    Store providers the dashboard can connect to.
    """

    SALLA = "SALLA"


class SallaSettings(BaseSettings):
    """
    Settings for the Salla integration.

    The OAuth client id and secret have no defaults: building the settings
    fails when either is missing.
    """

    salla_client_id: str
    salla_client_secret: str
    salla_api_url: str = SALLA_API_URL
    salla_auth_url: str = SALLA_AUTH_URL
    salla_token_url: str = SALLA_TOKEN_URL
    salla_request_timeout: float = 30.0
    salla_connect_route: str = "/salla-connect"
    state_secret_key: str = ""
    state_max_age_seconds: int = 600
    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("salla_client_id", "salla_client_secret")
    @classmethod
    def require_client_credentials(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Salla OAuth client credentials must not be empty")
        return value

    @property
    def client_id(self) -> str:
        """Shorthand for salla_client_id."""
        return self.salla_client_id

    @property
    def client_secret(self) -> str:
        """Shorthand for salla_client_secret."""
        return self.salla_client_secret

    @property
    def state_signing_key(self) -> str:
        """Key used to sign the OAuth state; falls back to the client secret."""
        return self.state_secret_key or self.salla_client_secret
