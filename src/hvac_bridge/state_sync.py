"""Change detection between successive decoded snapshots."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from hvac_bridge.events import EventBus, StatusChanged
from hvac_bridge.logging_abstraction import get_logger

logger = get_logger(__name__)

EFFECTIVE_MODE = "effective_mode"


@dataclass(frozen=True)
class PropertyChange:
    name: str
    value: str | int
    previous: str | int | None


def effective_mode(properties: Mapping[str, str | int]) -> str | int | None:
    """``"off"`` while the unit is powered off, else the mode label."""
    if "power" not in properties:
        return None
    if properties["power"] == "off":
        return "off"
    return properties.get("mode")


class StateSynchronizer:
    """Emit one change per property whose decoded value moved.

    The stored map starts empty, so the first snapshot reports every field.
    Comparison is on decoded values, so bits outside any known field never
    produce a change.
    """

    lp = "state_sync:"

    def __init__(self, events: EventBus | None = None) -> None:
        self.events = events
        self.previous: dict[str, str | int] = {}

    def sync(self, properties: Mapping[str, str | int]) -> list[PropertyChange]:
        lp = f"{self.lp}sync:"
        current = dict(properties)
        mode = effective_mode(current)
        if mode is not None:
            current[EFFECTIVE_MODE] = mode

        changes = [
            PropertyChange(name, value, self.previous.get(name))
            for name, value in current.items()
            if name not in self.previous or self.previous[name] != value
        ]
        self.previous = current

        if changes:
            logger.debug(
                "%s %d changed",
                lp,
                len(changes),
                extra={c.name: f"{c.previous}->{c.value}" for c in changes},
            )
        if self.events is not None:
            for change in changes:
                self.events.publish(StatusChanged(change.name, change.value, change.previous))
        return changes

    def reset(self) -> None:
        """Forget the stored snapshot so the next sync reports every field again."""
        self.previous = {}
