"""Result types of the template diff engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator


class ChangeType(str, Enum):
    """Kind of difference for one logical id."""

    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


class ResourceImpact(str, Enum):
    """How a changed resource will be updated."""

    IN_PLACE_UPDATE = "in_place_update"
    CONDITIONAL_REPLACEMENT = "conditional_replacement"
    REPLACEMENT = "replacement"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def worst(cls, impacts: list[ResourceImpact]) -> ResourceImpact:
        """Most severe impact; in-place when there is nothing to compare."""
        return max(impacts, key=lambda i: i.severity, default=cls.IN_PLACE_UPDATE)


_SEVERITY = {
    ResourceImpact.IN_PLACE_UPDATE: 0,
    ResourceImpact.CONDITIONAL_REPLACEMENT: 1,
    ResourceImpact.REPLACEMENT: 2,
}


@dataclass(frozen=True)
class PropertyDifference:
    """A changed value at one property path. ``None`` means absent."""

    path: tuple[str, ...]
    old_value: Any
    new_value: Any
    impact: ResourceImpact

    @property
    def dotted_path(self) -> str:
        return ".".join(map(str, self.path))

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.dotted_path,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "impact": self.impact.value,
        }


@dataclass(frozen=True)
class ResourceDifference:
    """Difference of one resource between two templates."""

    logical_id: str
    change_type: ChangeType
    old_type: str | None = None
    new_type: str | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    property_changes: tuple[PropertyDifference, ...] = ()
    other_changes: tuple[PropertyDifference, ...] = ()
    impact: ResourceImpact | None = None

    @property
    def resource_type(self) -> str | None:
        return self.new_type or self.old_type

    @property
    def type_changed(self) -> bool:
        return self.change_type == ChangeType.CHANGED and self.old_type != self.new_type

    @property
    def is_replacement(self) -> bool:
        return self.impact == ResourceImpact.REPLACEMENT

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "logical_id": self.logical_id,
            "change_type": self.change_type.value,
            "resource_type": self.resource_type,
        }
        if self.type_changed:
            result["old_type"] = self.old_type
        if self.change_type == ChangeType.CHANGED:
            result["impact"] = self.impact.value if self.impact else None
            result["property_changes"] = [c.to_dict() for c in self.property_changes]
            result["other_changes"] = [c.to_dict() for c in self.other_changes]
        return result


@dataclass(frozen=True)
class Difference:
    """
    Difference of a non-resource entry.

    For keyed sections (Parameters, Outputs, ...) ``key`` is the logical id;
    for top-level scalars (Description, ...) it is ``None``.
    """

    section: str
    key: str | None
    change_type: ChangeType
    old_value: Any = None
    new_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "section": self.section,
            "key": self.key,
            "change_type": self.change_type.value,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }


@dataclass(frozen=True)
class DiffResult:
    """All differences between two template documents."""

    resources: tuple[ResourceDifference, ...] = ()
    other: tuple[Difference, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.resources and not self.other

    @property
    def count(self) -> int:
        return len(self.resources) + len(self.other)

    def get(self, logical_id: str) -> ResourceDifference | None:
        for difference in self.resources:
            if difference.logical_id == logical_id:
                return difference
        return None

    def by_change_type(self, change_type: ChangeType) -> list[ResourceDifference]:
        return [d for d in self.resources if d.change_type == change_type]

    @property
    def added(self) -> list[ResourceDifference]:
        return self.by_change_type(ChangeType.ADDED)

    @property
    def removed(self) -> list[ResourceDifference]:
        return self.by_change_type(ChangeType.REMOVED)

    @property
    def changed(self) -> list[ResourceDifference]:
        return self.by_change_type(ChangeType.CHANGED)

    @property
    def replacements(self) -> list[ResourceDifference]:
        """Changed resources that will be destroyed and recreated."""
        return [d for d in self.changed if d.impact == ResourceImpact.REPLACEMENT]

    @property
    def possible_replacements(self) -> list[ResourceDifference]:
        return [d for d in self.changed if d.impact == ResourceImpact.CONDITIONAL_REPLACEMENT]

    def section(self, name: str) -> list[Difference]:
        return [d for d in self.other if d.section == name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "resources": [d.to_dict() for d in self.resources],
            "other": [d.to_dict() for d in self.other],
        }

    def __iter__(self) -> Iterator[ResourceDifference]:
        return iter(self.resources)
