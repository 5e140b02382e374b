"""Core generation logic."""

from .config import get_settings
from .errors import (
    AllProvidersExhausted,
    BuildableError,
    ConfigurationError,
    NoConfiguredProvider,
    ProviderError,
)

__all__ = [
    "get_settings",
    "AllProvidersExhausted",
    "BuildableError",
    "ConfigurationError",
    "NoConfiguredProvider",
    "ProviderError",
]
