"""Parameter metadata: types, ranges, defaults, enums and groups.

Metadata comes from a firmware ``parameters.xml`` file::

    <parameters>
      <version>3</version>
      <group name="Cruise">
        <parameter name="CRUISE_SPEED" type="FLOAT" default="12.0">
          <short_desc>Cruise speed</short_desc>
          <min>0</min>
          <max>40</max>
          <unit>m/s</unit>
          <decimal>1</decimal>
          <reboot_required>false</reboot_required>
        </parameter>
      </group>
    </parameters>

The file is parsed once, lazily, on the first lookup. Any problem with the
source degrades to "no entries known": every parameter then gets generic
metadata, which only enforces the limits of its raw type.
"""

import logging
import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from paramsync_gateway.core.errors import MetadataError, ParameterConversionError
from paramsync_gateway.protocol.codec import TYPE_LIMITS, RawValue, coerce_value, type_from_string
from paramsync_gateway.protocol.constants import TYPE_NAMES, ParamType

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "Default Group"
MIN_METADATA_VERSION = 3


class ParameterMetaData:
    """Validation rules and descriptive data for one parameter."""

    def __init__(
        self,
        param_type: ParamType,
        name: str = "",
        group: str = DEFAULT_GROUP,
        generic: bool = False,
    ):
        self.type = ParamType(param_type)
        self.name = name
        self.group = group
        self.generic = generic

        self.raw_min: RawValue | None = None
        self.raw_max: RawValue | None = None
        self.raw_default: RawValue | None = None
        self.enum: dict[RawValue, str] = {}
        self.decimal_places: int | None = None
        self.reboot_required = False
        self.units = ""
        self.short_description = ""
        self.long_description = ""

    @classmethod
    def generic_for(cls, param_type: ParamType, name: str = "") -> "ParameterMetaData":
        """Permissive metadata used when nothing better is known."""
        return cls(param_type, name=name, generic=True)

    @property
    def min(self) -> RawValue:
        """Effective inclusive minimum (type limit when unspecified)."""
        return self.raw_min if self.raw_min is not None else TYPE_LIMITS[self.type][0]

    @property
    def max(self) -> RawValue:
        """Effective inclusive maximum (type limit when unspecified)."""
        return self.raw_max if self.raw_max is not None else TYPE_LIMITS[self.type][1]

    def convert_and_validate(self, value: Any, convert_only: bool = False) -> RawValue:
        """Convert a value to this parameter's raw type and check its range.

        Args:
            value: Value to convert (number or numeric string).
            convert_only: Skip the metadata min/max check.

        Returns:
            The converted raw value.

        Raises:
            ParameterConversionError: If conversion or validation fails.
        """
        raw = coerce_value(value, self.type, name=self.name)
        if convert_only:
            return raw

        if self.raw_min is not None and raw < self.raw_min:
            raise ParameterConversionError(
                f"Value {value} below minimum {self.raw_min} for {self.name}", name=self.name, value=value
            )
        if self.raw_max is not None and raw > self.raw_max:
            raise ParameterConversionError(
                f"Value {value} above maximum {self.raw_max} for {self.name}", name=self.name, value=value
            )
        return raw

    def enum_label(self, value: RawValue) -> str | None:
        """Label for an enum value, or None if not an enum member."""
        return self.enum.get(value)

    def __repr__(self) -> str:
        return f"ParameterMetaData(name={self.name!r}, type={TYPE_NAMES[self.type]}, group={self.group!r}, generic={self.generic})"


class MetadataProvider:
    """Name-keyed metadata lookup backed by a lazily parsed XML source."""

    def __init__(self, source: Path | str | None = None, xml_text: str | None = None) -> None:
        """Create a provider.

        Args:
            source: Path to a ``parameters.xml`` file.
            xml_text: XML document given directly (takes precedence over ``source``).
        """
        self._source = Path(source) if source is not None else None
        self._xml_text = xml_text
        self._entries: dict[str, ParameterMetaData] = {}
        self._duplicates: set[str] = set()
        self._loaded = False
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        """Whether the source has been parsed (successfully or not)."""
        return self._loaded

    @property
    def count(self) -> int:
        """Number of known metadata entries."""
        self._ensure_loaded()
        return len(self._entries)

    def names(self) -> list[str]:
        """Sorted names with known metadata."""
        self._ensure_loaded()
        return sorted(self._entries)

    def get(self, name: str, param_type: ParamType) -> ParameterMetaData:
        """Return metadata for a parameter, or generic metadata if unknown.

        Known metadata whose type disagrees with ``param_type`` (the type the
        vehicle actually reports) is not trusted either.
        """
        self._ensure_loaded()
        metadata = self._entries.get(name)
        if metadata is None:
            return ParameterMetaData.generic_for(param_type, name)
        if metadata.type != param_type:
            logger.warning(
                "Metadata type %s for %s does not match reported type %s, using generic metadata",
                TYPE_NAMES[metadata.type],
                name,
                TYPE_NAMES[ParamType(param_type)],
            )
            return ParameterMetaData.generic_for(param_type, name)
        return metadata

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            if self._loaded:
                return
            try:
                self._entries = self._load()
            except MetadataError as e:
                logger.warning("Parameter metadata unavailable, using generic metadata: %s", e)
                self._entries = {}
            self._loaded = True

    def _read_source(self) -> str | None:
        if self._xml_text is not None:
            return self._xml_text
        if self._source is None:
            return None
        try:
            return self._source.read_text(encoding="utf-8")
        except OSError as e:
            raise MetadataError(f"Cannot read {self._source}: {e}") from e

    def _load(self) -> dict[str, ParameterMetaData]:
        text = self._read_source()
        if text is None:
            logger.info("No parameter metadata source configured")
            return {}

        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise MetadataError(f"Badly formed XML: {e}") from e

        if root.tag != "parameters":
            raise MetadataError(f"Unexpected root element <{root.tag}>")

        version_text = root.findtext("version")
        if version_text is None:
            raise MetadataError("Parameter version stamp not found")
        try:
            version = int(version_text.strip())
        except ValueError:
            raise MetadataError(f"Invalid version stamp {version_text!r}") from None
        if version < MIN_METADATA_VERSION:
            raise MetadataError(f"Parameter version stamp too old: {version}, want {MIN_METADATA_VERSION}")

        entries: dict[str, ParameterMetaData] = {}
        for group in root.iter("group"):
            group_name = group.get("name")
            if not group_name:
                logger.warning("Skipping metadata group without a name")
                continue
            for element in group.iter("parameter"):
                metadata = self._parse_parameter(element, group_name)
                if metadata is None:
                    continue
                if metadata.name in entries or metadata.name in self._duplicates:
                    # Conflicting definitions: trust neither
                    logger.warning("Duplicate parameter metadata found: %s", metadata.name)
                    self._duplicates.add(metadata.name)
                    entries[metadata.name] = ParameterMetaData.generic_for(metadata.type, metadata.name)
                    continue
                entries[metadata.name] = metadata

        logger.info("Loaded metadata for %d parameters", len(entries))
        return entries

    def _parse_parameter(self, element: ET.Element, group_name: str) -> ParameterMetaData | None:
        name = element.get("name")
        type_text = element.get("type")
        if not name or not type_text:
            logger.warning("Skipping parameter metadata without name or type")
            return None

        try:
            param_type = type_from_string(type_text)
        except ValueError:
            logger.warning("Parameter metadata with bad type: %s name: %s", type_text, name)
            return None

        metadata = ParameterMetaData(param_type, name=name, group=group_name)

        default_text = element.get("default")
        if default_text:
            try:
                metadata.raw_default = metadata.convert_and_validate(default_text, convert_only=True)
            except ParameterConversionError as e:
                logger.warning("Invalid default value for %s: %s", name, e)

        for child in element:
            text = (child.text or "").strip()
            if child.tag == "short_desc":
                metadata.short_description = text.replace("\n", " ")
            elif child.tag == "long_desc":
                metadata.long_description = text.replace("\n", " ")
            elif child.tag == "min":
                try:
                    metadata.raw_min = metadata.convert_and_validate(text, convert_only=True)
                except ParameterConversionError as e:
                    logger.warning("Invalid min value for %s: %s", name, e)
            elif child.tag == "max":
                try:
                    metadata.raw_max = metadata.convert_and_validate(text, convert_only=True)
                except ParameterConversionError as e:
                    logger.warning("Invalid max value for %s: %s", name, e)
            elif child.tag == "unit":
                metadata.units = text
            elif child.tag == "decimal":
                try:
                    metadata.decimal_places = int(text)
                except ValueError:
                    logger.warning("Invalid decimal places for %s: %s", name, text)
            elif child.tag == "reboot_required":
                metadata.reboot_required = text.lower() == "true"
            elif child.tag == "values":
                for value_element in child.iter("value"):
                    code = value_element.get("code", "")
                    try:
                        enum_value = metadata.convert_and_validate(code, convert_only=True)
                    except ParameterConversionError as e:
                        logger.debug("Invalid enum value for %s: %s", name, e)
                        continue
                    metadata.enum[enum_value] = (value_element.text or "").strip()
            else:
                logger.debug("Unknown element in parameter metadata: %s", child.tag)

        if metadata.raw_default is not None:
            try:
                metadata.convert_and_validate(metadata.raw_default)
            except ParameterConversionError as e:
                logger.warning("Default value for %s outside its range: %s", name, e)

        return metadata


# Process-wide provider, created on first use
_provider: MetadataProvider | None = None
_provider_lock = threading.Lock()


def get_metadata_provider(source: Path | str | None = None) -> MetadataProvider:
    """Return the process-wide metadata provider.

    The first call fixes the source; later calls return the same instance
    and ignore ``source``. Parsing itself is deferred to the first lookup.
    """
    global _provider
    with _provider_lock:
        if _provider is None:
            _provider = MetadataProvider(source)
        return _provider


def reset_metadata_provider() -> None:
    """Drop the process-wide provider so the next call re-initializes it (tests)."""
    global _provider
    with _provider_lock:
        _provider = None
