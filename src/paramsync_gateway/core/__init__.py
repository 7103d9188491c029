"""Core application functionality."""

from paramsync_gateway.core.config import Settings, setup_logging
from paramsync_gateway.core.errors import (
    MetadataError,
    MissingParameterError,
    ParameterConversionError,
    ParamSyncError,
)
from paramsync_gateway.core.models import CachedParameter, CachedParameterSet

__all__ = [
    "CachedParameter",
    "CachedParameterSet",
    "MetadataError",
    "MissingParameterError",
    "ParameterConversionError",
    "ParamSyncError",
    "Settings",
    "setup_logging",
]
