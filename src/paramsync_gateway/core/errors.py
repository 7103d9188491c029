"""Exception hierarchy for the parameter gateway."""


class ParamSyncError(Exception):
    """Base exception for all gateway errors."""


class ParameterConversionError(ParamSyncError, ValueError):
    """A value could not be converted to, or validated against, a parameter type."""

    def __init__(self, message: str, *, name: str = "", value: object = None) -> None:
        self.name = name
        self.value = value
        super().__init__(message)


class MissingParameterError(ParamSyncError, LookupError):
    """A parameter was requested that does not exist.

    Callers must check ``parameter_exists()`` first; reaching this is a
    programming error rather than a recoverable condition.
    """

    def __init__(self, component_id: int, name: str) -> None:
        self.component_id = component_id
        self.name = name
        super().__init__(f"Parameter does not exist: {component_id}:{name}")


class MetadataError(ParamSyncError):
    """Parameter metadata source could not be parsed."""
