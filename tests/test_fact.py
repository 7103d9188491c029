"""Unit tests for Fact."""

from unittest.mock import MagicMock

import pytest

from paramsync_gateway.core.errors import ParameterConversionError
from paramsync_gateway.metadata.provider import ParameterMetaData
from paramsync_gateway.protocol.constants import ParamType
from paramsync_gateway.sync.fact import Fact


def make_fact(on_edit=None) -> Fact:
    metadata = ParameterMetaData(ParamType.UINT8, "BAT_N_CELLS", group="Battery")
    metadata.raw_min = 1
    metadata.raw_max = 14
    metadata.enum = {4: "4S"}
    return Fact(1, "BAT_N_CELLS", ParamType.UINT8, metadata, on_edit=on_edit)


class TestFact:
    """Tests for the live parameter value."""

    def test_initial_state(self):
        fact = make_fact()

        assert fact.value is None
        assert fact.index is None
        assert fact.group == "Battery"
        assert fact.enum_label is None

    def test_container_update_notifies(self):
        fact = make_fact()
        listener = MagicMock()
        fact.add_listener(listener)

        fact._container_set_raw_value(4)

        assert fact.value == 4
        assert fact.enum_label == "4S"
        listener.assert_called_once_with(fact)

    def test_remove_listener(self):
        fact = make_fact()
        listener = MagicMock()
        fact.add_listener(listener)
        fact.remove_listener(listener)
        fact.remove_listener(listener)

        fact._container_set_raw_value(3)

        listener.assert_not_called()

    def test_listener_error_is_contained(self):
        """A failing listener does not stop the others."""
        fact = make_fact()
        second = MagicMock()
        fact.add_listener(MagicMock(side_effect=RuntimeError("boom")))
        fact.add_listener(second)

        fact._container_set_raw_value(3)

        second.assert_called_once_with(fact)

    def test_edit_forwards_to_handler(self):
        on_edit = MagicMock(return_value=6)
        fact = make_fact(on_edit)

        assert fact.set_raw_value("6") == 6
        on_edit.assert_called_once_with(1, "BAT_N_CELLS", "6")
        assert fact.value is None

    def test_edit_without_handler_validates(self):
        fact = make_fact()

        assert fact.set_raw_value("6") == 6
        assert fact.value == 6

        with pytest.raises(ParameterConversionError):
            fact.set_raw_value(20)
        assert fact.value == 6

    def test_repr(self):
        fact = make_fact()
        fact._container_set_raw_value(4)

        assert repr(fact) == "Fact(1:BAT_N_CELLS=4)"
