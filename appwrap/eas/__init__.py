"""Client for the Expo Application Services build API."""

from appwrap.eas.client import (
    EasClient,
    ProviderError,
    ProviderJob,
    ProviderJobNotFoundError,
    ProviderTimeoutError,
    map_provider_status,
)

__all__ = [
    "EasClient",
    "ProviderError",
    "ProviderJob",
    "ProviderJobNotFoundError",
    "ProviderTimeoutError",
    "map_provider_status",
]
