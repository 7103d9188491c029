"""Parameter metadata provider."""

from paramsync_gateway.metadata.provider import (
    DEFAULT_GROUP,
    MetadataProvider,
    ParameterMetaData,
    get_metadata_provider,
    reset_metadata_provider,
)

__all__ = [
    "DEFAULT_GROUP",
    "MetadataProvider",
    "ParameterMetaData",
    "get_metadata_provider",
    "reset_metadata_provider",
]
