"""Data models for the parameter gateway."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from paramsync_gateway.protocol.constants import ParamType


class CachedParameter(BaseModel):
    """A single parameter as persisted in the cache file."""

    index: int = Field(..., ge=0, description="Index within the component's enumeration")
    type: int = Field(..., description="Parameter type code")
    value: int | float = Field(..., description="Raw parameter value")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: int) -> int:
        """Ensure the type code is a known parameter type."""
        ParamType(v)
        return v


class CachedParameterSet(BaseModel):
    """A complete, previously synchronized parameter set for one vehicle."""

    vehicle_id: int = Field(..., ge=0, description="Vehicle system id")
    hash: int = Field(..., ge=0, le=0xFFFFFFFF, description="Content hash of the parameter set")
    timestamp: datetime = Field(default_factory=datetime.now, description="When the set was saved")
    components: dict[int, dict[str, CachedParameter]] = Field(
        default_factory=dict, description="Parameters keyed by component id, then name"
    )

    @property
    def count(self) -> int:
        """Total number of parameters across components."""
        return sum(len(params) for params in self.components.values())

    def entries(self) -> list[tuple[int, str, int, int | float]]:
        """Flatten to ``(component_id, name, type, value)`` tuples for hashing."""
        return [
            (component_id, name, param.type, param.value)
            for component_id, params in self.components.items()
            for name, param in params.items()
        ]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "vehicle_id": 1,
                "hash": 305419896,
                "timestamp": "2026-01-13T10:30:00",
                "components": {"1": {"CRUISE_SPEED": {"index": 0, "type": 9, "value": 12.5}}},
            }
        }
    )


# ============================================================================
# API Request/Response Models
# ============================================================================


class ParameterInfo(BaseModel):
    """One parameter as exposed by the API."""

    component_id: int = Field(..., description="Owning component id")
    name: str = Field(..., description="Parameter name")
    index: int | None = Field(None, description="Index within the component, if known")
    value: Any = Field(..., description="Current raw value")
    type: int = Field(..., description="Parameter type code")
    group: str = Field(..., description="Metadata group")
    units: str = Field("", description="Display units")
    min: float | None = Field(None, description="Inclusive minimum")
    max: float | None = Field(None, description="Inclusive maximum")
    default: Any = Field(None, description="Default value, if known")
    enum: dict[str, str] | None = Field(None, description="Enum value to label mapping")
    reboot_required: bool = Field(False, description="Whether a change needs a reboot")
    pending_write: bool = Field(False, description="Whether a write is awaiting acknowledgement")


class ParametersResponse(BaseModel):
    """Response model for GET /api/parameters."""

    ready: bool = Field(..., description="Whether the initial load has completed")
    missing_parameters: bool = Field(..., description="Whether any parameter failed to load")
    parameters: list[ParameterInfo] = Field(..., description="All known parameters")


class ParameterSetRequest(BaseModel):
    """Request model for POST /api/parameters/{component_id}/{name}."""

    value: Any = Field(..., description="New parameter value")

    model_config = ConfigDict(json_schema_extra={"example": {"value": 15.0}})


class ParameterSetResponse(BaseModel):
    """Response model for an accepted parameter write.

    The write is sent but not yet acknowledged; the acknowledgement shows
    up as the parameter's ``pending_write`` flag clearing.
    """

    success: bool = Field(True, description="Operation success status")
    component_id: int = Field(..., description="Component id")
    name: str = Field(..., description="Parameter name")
    old_value: Any = Field(..., description="Previous parameter value")
    new_value: Any = Field(..., description="Coerced value sent to the vehicle")
    timestamp: datetime = Field(default_factory=datetime.now, description="Operation timestamp")


class RefreshResponse(BaseModel):
    """Response model for refresh requests."""

    success: bool = Field(True, description="Operation success status")
    requested: list[str] = Field(default_factory=list, description="Parameters requested by name")


class ImportResponse(BaseModel):
    """Response model for POST /api/import."""

    success: bool = Field(..., description="True when every line was applied")
    errors: str = Field("", description="Newline separated errors for rejected lines")


class StatusResponse(BaseModel):
    """Response model for GET /api/status."""

    state: str = Field(..., description="Synchronization state")
    ready: bool = Field(..., description="Whether the initial load has completed")
    missing_parameters: bool = Field(..., description="Whether any parameter failed to load")
    progress: float = Field(..., ge=0.0, le=1.0, description="Bulk load progress")
    default_component_id: int | None = Field(None, description="Heuristic primary component")
    parameters_count: int = Field(..., ge=0, description="Number of known parameters")
    expected_count: int = Field(..., ge=0, description="Parameters announced by the vehicle")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    success: bool = Field(False, description="Operation success status")
    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status (healthy/degraded/unhealthy)")
    vehicle_connected: bool = Field(..., description="Whether the link is connected")
    parameters_ready: bool = Field(..., description="Whether the parameter set is loaded")
    parameters_count: int = Field(..., ge=0, description="Number of known parameters")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "vehicle_connected": True,
                "parameters_ready": True,
                "parameters_count": 912,
            }
        }
    )


class PrefixRefreshRequest(BaseModel):
    """Request model for POST /api/refresh/prefix."""

    component_id: int = Field(-1, description="Component id (-1 for the default component)")
    prefix: str = Field(..., min_length=1, description="Parameter name prefix")
