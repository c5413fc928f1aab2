"""Static dictionary of the unit's controllable and observable fields.

Every field lives in one byte of a status frame, selected by a bit mask, and
is either an enumeration (label <-> integer) or a raw number passed straight
through (temperatures). The offsets below are absolute frame offsets; byte 4
is the first payload byte. They are hardware specific, so a YAML file can
override or extend them (see :func:`load_registry`)::

    properties:
      temperature:
        code: wdNumber
        offset: 5
        mask: 0xFF
        min_value: 16
        max_value: 30
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from hvac_bridge.logging_abstraction import get_logger

logger = get_logger(__name__)

# sync header (2) + length (1) + type (1)
PAYLOAD_OFFSET = 4
BOOLEAN_VALUES: Mapping[str, int] = MappingProxyType({"off": 0, "on": 1})


@dataclass(frozen=True)
class PropertyDescriptor:
    """Where a field sits in a status frame and how its bits map to a value."""

    name: str
    code: str
    offset: int
    mask: int
    values: Mapping[str, int] | None = None
    min_value: int | None = None
    max_value: int | None = None
    settable: bool = True
    labels: Mapping[int, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not 0 < self.mask <= 0xFF:
            msg = f"{self.name}: mask 0x{self.mask:X} must select bits of a single byte"
            raise ValueError(msg)
        if self.offset < PAYLOAD_OFFSET:
            msg = f"{self.name}: offset {self.offset} points into the frame header"
            raise ValueError(msg)
        if self.values is not None:
            frozen = MappingProxyType(dict(self.values))
            for label, number in frozen.items():
                if not 0 <= number <= self.max_raw:
                    msg = f"{self.name}: value {label}={number} does not fit mask 0x{self.mask:02X}"
                    raise ValueError(msg)
            if len(set(frozen.values())) != len(frozen):
                msg = f"{self.name}: two labels share the same wire value"
                raise ValueError(msg)
            object.__setattr__(self, "values", frozen)
            object.__setattr__(self, "labels", MappingProxyType({v: k for k, v in frozen.items()}))
        else:
            object.__setattr__(self, "labels", MappingProxyType({}))
            if self.min_value is None:
                object.__setattr__(self, "min_value", 0)
            if self.max_value is None:
                object.__setattr__(self, "max_value", self.max_raw)
            if not 0 <= self.min_value <= self.max_value <= self.max_raw:  # type: ignore[operator]
                msg = f"{self.name}: range {self.min_value}..{self.max_value} does not fit mask 0x{self.mask:02X}"
                raise ValueError(msg)

    @property
    def shift(self) -> int:
        """Position of the lowest set bit of the mask."""
        return (self.mask & -self.mask).bit_length() - 1

    @property
    def max_raw(self) -> int:
        return self.mask >> self.shift

    @property
    def is_enum(self) -> bool:
        return self.values is not None

    @property
    def boolean(self) -> bool:
        return self.values is not None and dict(self.values) == dict(BOOLEAN_VALUES)


def _flag(name: str, code: str, offset: int, mask: int, *, settable: bool = True) -> PropertyDescriptor:
    return PropertyDescriptor(name, code, offset, mask, values=BOOLEAN_VALUES, settable=settable)


DEFAULT_DESCRIPTORS: tuple[PropertyDescriptor, ...] = (
    PropertyDescriptor("power", "boot", 4, 0x80, values=BOOLEAN_VALUES),
    PropertyDescriptor("mode", "runMode", 4, 0x70, values={"auto": 0, "cool": 1, "dry": 2, "wind": 3, "heat": 4}),
    PropertyDescriptor("fan_speed", "windLevel", 4, 0x07, values={f"l{n}": n for n in range(7)}),
    PropertyDescriptor("temperature", "wdNumber", 5, 0xFF, min_value=16, max_value=30),
    PropertyDescriptor(
        "swing_vertical",
        "SwUpDn",
        6,
        0x0F,
        values={
            "default": 0,
            "full": 1,
            "fixedTop": 2,
            "fixedMidTop": 3,
            "fixedMid": 4,
            "fixedMidBottom": 5,
            "fixedBottom": 6,
            "swingBottom": 7,
            "swingMidBottom": 8,
            "swingMid": 9,
            "swingMidTop": 10,
            "swingTop": 11,
        },
    ),
    PropertyDescriptor(
        "swing_horizontal",
        "SwingLfRig",
        6,
        0x70,
        values={
            "default": 0,
            "fixedLeft": 2,
            "fixedMidLeft": 3,
            "fixedMid": 4,
            "fixedMidRight": 5,
            "fixedRight": 6,
            "full": 7,
        },
    ),
    _flag("lights", "lighting", 7, 0x01),
    _flag("health", "healthy", 7, 0x02),
    _flag("sleep", "sleep", 7, 0x04),
    _flag("blow", "Blo", 7, 0x08),
    _flag("turbo", "Tur", 7, 0x10),
    _flag("energy_save", "eco", 7, 0x20),
    PropertyDescriptor("temperature_unit", "temtyp", 7, 0x40, values={"celsius": 0, "fahrenheit": 1}, settable=False),
    PropertyDescriptor("quiet", "Quiet", 8, 0x03, values={"off": 0, "mode1": 1, "mode2": 2, "mode3": 3}),
    PropertyDescriptor("air", "Air", 8, 0x0C, values={"off": 0, "inside": 1, "outside": 2, "mode3": 3}),
    PropertyDescriptor("indoor_temperature", "indoorTemperature", 9, 0xFF, settable=False),
)


class PropertyRegistry:
    """Read-only, ordered collection of :class:`PropertyDescriptor` by name."""

    def __init__(self, descriptors: tuple[PropertyDescriptor, ...] | list[PropertyDescriptor] = DEFAULT_DESCRIPTORS):
        by_name: dict[str, PropertyDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in by_name:
                msg = f"Duplicate property name in registry: {descriptor.name}"
                raise ValueError(msg)
            by_name[descriptor.name] = descriptor
        self._by_name = MappingProxyType(by_name)

    def __iter__(self) -> Iterator[PropertyDescriptor]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __getitem__(self, name: str) -> PropertyDescriptor:
        return self._by_name[name]

    def get(self, name: str) -> PropertyDescriptor | None:
        return self._by_name.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._by_name)

    def settable(self) -> list[PropertyDescriptor]:
        return [d for d in self if d.settable]

    @property
    def min_frame_length(self) -> int:
        """Smallest frame that holds every field plus the checksum trailer."""
        return max((d.offset for d in self), default=PAYLOAD_OFFSET - 1) + 2


class RegistryEntry(BaseModel):
    """One ``properties:`` entry of a registry YAML file."""

    code: str
    offset: int
    mask: int
    values: dict[str, int] | None = None
    min_value: int | None = None
    max_value: int | None = None
    settable: bool = True

    @field_validator("values", mode="before")
    @classmethod
    def _yaml_booleans_to_labels(cls, raw: Any) -> Any:
        # YAML 1.1 loads bare on/off keys as booleans
        if isinstance(raw, dict):
            return {({True: "on", False: "off"}.get(k, k) if isinstance(k, bool) else str(k)): v for k, v in raw.items()}
        return raw


def load_registry(path: str | Path | None) -> PropertyRegistry:
    """Build the registry, applying overrides from a YAML file when given.

    Entries in the file replace built-in descriptors of the same name; new
    names are appended. Raises ``ValueError`` on an invalid file.
    """
    lp = "registry:load:"
    if path is None:
        return PropertyRegistry()

    registry_path = Path(path).expanduser().resolve()
    logger.info("%s Loading property registry overrides", lp, extra={"path": str(registry_path)})
    with registry_path.open() as f:
        raw = yaml.safe_load(f) or {}

    entries = raw.get("properties") if isinstance(raw, dict) else None
    if not isinstance(entries, dict):
        msg = f"{registry_path}: expected a top-level 'properties' mapping"
        raise ValueError(msg)

    merged = {d.name: d for d in DEFAULT_DESCRIPTORS}
    for name, body in entries.items():
        try:
            entry = RegistryEntry.model_validate(body)
        except ValidationError as e:
            msg = f"{registry_path}: invalid entry for '{name}': {e}"
            raise ValueError(msg) from e
        merged[str(name)] = PropertyDescriptor(name=str(name), **entry.model_dump())
        logger.debug("%s Override for '%s' applied", lp, name)

    return PropertyRegistry(tuple(merged.values()))
