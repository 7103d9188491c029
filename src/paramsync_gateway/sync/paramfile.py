"""Tab-separated parameter file export and import.

Format: ``#`` comment lines, then one parameter per line::

    vehicle_id<TAB>component_id<TAB>name<TAB>value<TAB>type_code
"""

import logging
from typing import TYPE_CHECKING, TextIO

from paramsync_gateway.core.errors import ParameterConversionError
from paramsync_gateway.protocol.codec import format_value
from paramsync_gateway.protocol.constants import TYPE_NAMES

if TYPE_CHECKING:
    from paramsync_gateway.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

FIELD_COUNT = 5


def write_parameters(engine: "SyncEngine", stream: TextIO) -> int:
    """Write every known parameter of ``engine`` to ``stream``.

    Returns:
        Number of parameter lines written.
    """
    stream.write(f"# Onboard parameters for vehicle {engine.vehicle_id}\n")
    stream.write("#\n")
    stream.write("# Vehicle-Id\tComponent-Id\tName\tValue\tType\n")

    written = 0
    for fact in engine.iter_facts():
        if fact.value is None:
            continue
        stream.write(
            f"{engine.vehicle_id}\t{fact.component_id}\t{fact.name}\t"
            f"{format_value(fact.value, fact.type)}\t{int(fact.type)}\n"
        )
        written += 1

    logger.info("Exported %d parameters", written)
    return written


def read_parameters(engine: "SyncEngine", stream: TextIO) -> str:
    """Apply every line of a parameter file through the engine's write path.

    A line naming another vehicle is reported but still applied, so files
    can be moved between airframes.

    Returns:
        Newline-separated error descriptions (empty when every line applied).
    """
    errors: list[str] = []
    applied = 0

    for line_number, line in enumerate(stream, start=1):
        line = line.rstrip("\r\n")
        if not line.strip() or line.lstrip().startswith("#"):
            continue

        fields = line.split("\t")
        if len(fields) != FIELD_COUNT:
            errors.append(f"Line {line_number}: expected {FIELD_COUNT} tab-separated fields, got {len(fields)}")
            continue

        vehicle_text, component_text, name, value_text, type_text = fields
        try:
            vehicle_id = int(vehicle_text)
            component_id = int(component_text)
            type_code = int(type_text)
        except ValueError:
            errors.append(f"Line {line_number}: malformed numeric field")
            continue

        if vehicle_id != engine.vehicle_id:
            errors.append(
                f"Line {line_number}: vehicle id {vehicle_id} does not match vehicle {engine.vehicle_id}, "
                f"applying {name} anyway"
            )

        if not engine.parameter_exists(component_id, name):
            errors.append(f"Line {line_number}: parameter {component_id}:{name} does not exist")
            continue

        fact = engine.get_fact(component_id, name)
        if type_code != int(fact.type):
            expected = TYPE_NAMES[fact.type]
            errors.append(f"Line {line_number}: {name} has type {type_code}, expected {int(fact.type)} ({expected})")
            continue

        try:
            engine.write_parameter_raw(component_id, name, value_text)
        except ParameterConversionError as e:
            errors.append(f"Line {line_number}: {e}")
            continue
        applied += 1

    logger.info("Imported %d parameters with %d errors", applied, len(errors))
    return "\n".join(errors)
