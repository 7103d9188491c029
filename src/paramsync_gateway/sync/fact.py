"""Live value object for one parameter."""

import logging
from collections.abc import Callable
from typing import Any

from paramsync_gateway.metadata.provider import ParameterMetaData
from paramsync_gateway.protocol.codec import RawValue
from paramsync_gateway.protocol.constants import ParamType

logger = logging.getLogger(__name__)

FactListener = Callable[["Fact"], None]
EditHandler = Callable[[int, str, Any], RawValue]


class Fact:
    """The live, observable value of one parameter.

    The synchronization engine owns every Fact and updates it whenever the
    vehicle reports a value. User edits made through ``set_raw_value`` are
    forwarded to the engine as writes; they never bypass validation.
    """

    def __init__(
        self,
        component_id: int,
        name: str,
        param_type: ParamType,
        metadata: ParameterMetaData,
        on_edit: EditHandler | None = None,
    ):
        self.component_id = component_id
        self.name = name
        self.type = ParamType(param_type)
        self.metadata = metadata
        self.index: int | None = None
        self._value: RawValue | None = None
        self._on_edit = on_edit
        self._listeners: list[FactListener] = []

    @property
    def value(self) -> RawValue | None:
        """Current raw value (None until the first report)."""
        return self._value

    @property
    def group(self) -> str:
        return self.metadata.group

    @property
    def enum_label(self) -> str | None:
        if self._value is None:
            return None
        return self.metadata.enum_label(self._value)

    def add_listener(self, listener: FactListener) -> None:
        """Register a callback fired with this Fact after every value update."""
        self._listeners.append(listener)

    def remove_listener(self, listener: FactListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_raw_value(self, value: Any) -> RawValue:
        """Apply a user edit.

        Returns:
            The coerced value that was sent.

        Raises:
            ParameterConversionError: If the value fails validation.
        """
        if self._on_edit is None:
            raw = self.metadata.convert_and_validate(value)
            self._container_set_raw_value(raw)
            return raw
        return self._on_edit(self.component_id, self.name, value)

    def _container_set_raw_value(self, value: RawValue) -> None:
        """Store a value coming from the engine and notify listeners."""
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Listener failed for %s:%s", self.component_id, self.name)

    def __repr__(self) -> str:
        return f"Fact({self.component_id}:{self.name}={self._value!r})"
