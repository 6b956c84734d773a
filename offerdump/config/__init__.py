"""Configuration package exports."""

from .loader import CONFIG_EXTENSIONS, ConfigLocator, ConfigRepository
from .models import (
    LOCAL_DATETIME_FORMAT,
    ApiConfig,
    Credentials,
    DateRange,
    ExportConfig,
    NormalizerConfig,
    RetryConfig,
)

__all__ = [
    "ApiConfig",
    "CONFIG_EXTENSIONS",
    "ConfigLocator",
    "ConfigRepository",
    "Credentials",
    "DateRange",
    "ExportConfig",
    "LOCAL_DATETIME_FORMAT",
    "NormalizerConfig",
    "RetryConfig",
]
