"""
Error types raised by the Salla connection subsystem.

Each error carries a short ``code`` that is safe to put in a redirect query
string and an HTTP ``status_code`` used when the error crosses the JSON API
boundary.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("errors")


class SallaError(Exception):
    """Base class for Salla connection errors."""

    code = "salla_error"
    status_code = 500
    default_message = "Salla request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidCredential(SallaError):
    """The provider rejected an access token."""

    code = "invalid_credential"
    status_code = 400
    default_message = "The access token is invalid or has expired"


class AuthorizationDenied(SallaError):
    """
    Salla sent the user back with an ``error`` instead of a code.

    The provider's error code is kept as this error's ``code`` so it reaches
    the connect page verbatim.
    """

    code = "access_denied"
    status_code = 400
    default_message = "Salla authorization was denied"

    def __init__(self, provider_error: str | None = None) -> None:
        if provider_error:
            self.code = provider_error
        super().__init__(f"Salla authorization was denied: {self.code}")


class NotAuthenticated(SallaError):
    """The OAuth flow was started without a valid dashboard token."""

    code = "not_authenticated"
    status_code = 401
    default_message = "Sign in to the dashboard before connecting a store"


class MissingCode(SallaError):
    code = "no_code"
    status_code = 400
    default_message = "The OAuth callback did not include an authorization code"


class TokenExchangeFailed(SallaError):
    code = "token_exchange_failed"
    status_code = 502
    default_message = "Salla did not return an access token"


class InvalidState(SallaError):
    """The OAuth state parameter failed signature or expiry checks."""

    code = "invalid_state"
    status_code = 400
    default_message = "The OAuth state parameter is invalid or expired"


class ReauthRequired(SallaError):
    """The stored credentials can no longer be refreshed; the user must reconnect."""

    code = "reauth_required"
    status_code = 401
    default_message = "The store connection has expired, please reconnect the store"


class UpstreamUnavailable(SallaError):
    """Salla could not be reached, timed out or answered with a non-JSON body."""

    code = "upstream_unavailable"
    status_code = 503
    default_message = "Salla is currently unavailable"


async def salla_error_handler(request: Request, exc: SallaError) -> JSONResponse:
    """Convert a SallaError into a JSON response for API callers."""
    logger.warning(
        "%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )
