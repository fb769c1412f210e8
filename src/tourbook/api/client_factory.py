"""
Factory for creating provider-specific booking clients.

The provider is chosen by configuration alone; callers only ever see the
BookingClient interface.
"""

from typing import Optional

import requests

from ..config import ConfigError, ProviderSettings, load_config
from .base import BookingClient, BookingClientError


def create_client(settings: ProviderSettings, session: Optional[requests.Session] = None) -> BookingClient:
    """
    Create a booking client for the configured provider.

    Args:
        settings: Provider settings (name, api_url, credentials, timeout)
        session: Optional requests session, mainly for tests

    Returns:
        A configured BookingClient instance

    Raises:
        BookingClientError: If the provider is unknown or credentials are missing
    """
    if not settings.api_key:
        raise BookingClientError("Missing api_key in provider settings", platform=settings.name)

    if settings.name == "acuity":
        from .acuity_client import AcuityClient
        if not settings.user_id:
            raise BookingClientError("Missing user_id in provider settings", platform="acuity")
        return AcuityClient(settings, session=session)
    elif settings.name == "peek":
        from .peek_client import PeekClient
        return PeekClient(settings, session=session)
    else:
        raise BookingClientError(f"Unknown provider: {settings.name}", platform=settings.name)


def load_client_from_config(config_path: Optional[str] = None) -> BookingClient:
    """
    Load a booking client from a config file.

    The file names the provider and carries a section per provider:
        {"provider": "peek", "peek": {"api_key": "..."}}

    Raises:
        BookingClientError: If the config is invalid or lacks credentials
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise BookingClientError(str(e), platform="config") from e

    return create_client(config.provider)
