"""Replacement rule table: which property changes replace a resource."""

from __future__ import annotations

import logging
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Iterator, Sequence

import yaml
from pydantic import ValidationError as PydanticValidationError

from infrasynth.core.errors import InfrasynthError
from infrasynth.core.schema import ResourceTypeRules, RuleTableSchema
from infrasynth.diff.model import ResourceImpact

LOG = logging.getLogger(__name__)

DEFAULT_RULES_RESOURCE = "replacement_rules.yml"
WILDCARD = "*"


class RuleTableError(InfrasynthError):
    """Raised when a replacement rule table cannot be loaded."""

    pass


class ReplacementRules:
    """
    Static per-type rules classifying property changes.

    A changed path matches a rule path when either is a prefix of the
    other, so replacing a whole object that contains an immutable
    sub-property also matches. ``*`` in a rule path matches any single
    property name.
    """

    def __init__(self, schema: RuleTableSchema) -> None:
        self._schema = schema
        self._types = schema.resource_types
        self._always = {t: [_split(p) for p in r.replaces.always] for t, r in self._types.items()}
        self._conditional = {
            t: [_split(p) for p in r.replaces.conditional] for t, r in self._types.items()
        }

    @classmethod
    def load(cls, path: str | Path) -> ReplacementRules:
        """Load a rule table from YAML file."""
        path = Path(path)
        with path.open() as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {}, source=str(path))

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str = "<dict>") -> ReplacementRules:
        """Create a rule table from dictionary."""
        try:
            schema = RuleTableSchema(**data)
        except PydanticValidationError as e:
            raise RuleTableError(f"Invalid replacement rule table {source}: {e}") from e
        return cls(schema)

    @classmethod
    def default(cls) -> ReplacementRules:
        """The rule table shipped with infrasynth."""
        return _default_rules()

    @classmethod
    def empty(cls) -> ReplacementRules:
        return cls(RuleTableSchema())

    def merged(self, other: ReplacementRules) -> ReplacementRules:
        """A new table where entries of ``other`` replace entries for the same type."""
        types = dict(self._types)
        types.update(other._types)
        return ReplacementRules(RuleTableSchema(schema_version=other.schema_version, resource_types=types))

    @property
    def schema_version(self) -> str:
        return self._schema.schema_version

    def knows(self, resource_type: str | None) -> bool:
        return resource_type in self._types

    def rules_for(self, resource_type: str) -> ResourceTypeRules | None:
        return self._types.get(resource_type)

    def defaults_for(self, resource_type: str | None) -> dict[str, Any]:
        rules = self._types.get(resource_type) if resource_type else None
        return rules.defaults if rules else {}

    def impact_of(self, resource_type: str | None, path: Sequence[str]) -> ResourceImpact:
        """Classify a change at ``path`` of a resource of ``resource_type``."""
        if not self.knows(resource_type):
            return ResourceImpact.CONDITIONAL_REPLACEMENT
        if any(_overlaps(rule, path) for rule in self._always[resource_type]):
            return ResourceImpact.REPLACEMENT
        if any(_overlaps(rule, path) for rule in self._conditional[resource_type]):
            return ResourceImpact.CONDITIONAL_REPLACEMENT
        return ResourceImpact.IN_PLACE_UPDATE

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __contains__(self, resource_type: str) -> bool:
        return resource_type in self._types


def _split(path: str) -> tuple[str, ...]:
    return tuple(path.split("."))


def _overlaps(rule: Sequence[str], path: Sequence[str]) -> bool:
    common = min(len(rule), len(path))
    return all(r == WILDCARD or r == p for r, p in zip(rule[:common], path[:common]))


@lru_cache(maxsize=1)
def _default_rules() -> ReplacementRules:
    text = resources.files("infrasynth.diff").joinpath("data").joinpath(DEFAULT_RULES_RESOURCE).read_text()
    rules = ReplacementRules.from_dict(yaml.safe_load(text), source=DEFAULT_RULES_RESOURCE)
    LOG.debug("Loaded %d default replacement rules", len(rules))
    return rules
