"""
FastAPI dependencies for the marketing backend.
"""

import logging
from functools import lru_cache

from .settings import Provider, SallaSettings

# Setup logger
logger = logging.getLogger("dependencies")


@lru_cache()
def get_settings(provider: Provider) -> SallaSettings:
    """
    Get the settings for a store provider.

    Raises:
        pydantic.ValidationError: If required provider credentials are missing.
    """
    if provider == Provider.SALLA:
        settings = SallaSettings()  # type: ignore[call-arg]  # Reads Salla-related vars from .env
        logger.info("get_settings returning SallaSettings for API %s", settings.salla_api_url)
        return settings
    else:
        raise ValueError(f"Invalid provider: {provider}")


def get_salla_settings() -> SallaSettings:
    """
    Injection method to get the Salla settings.
    """
    return get_settings(Provider.SALLA)


@lru_cache()
def get_salla_api_url() -> str:
    """
    Returns the Salla admin API base URL without a trailing slash.
    """
    return get_salla_settings().salla_api_url.rstrip("/")
