"""Compare two template documents."""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Mapping

from infrasynth.core.template import Template
from infrasynth.diff.model import (
    ChangeType,
    Difference,
    DiffResult,
    PropertyDifference,
    ResourceDifference,
    ResourceImpact,
)
from infrasynth.diff.rules import ReplacementRules

LOG = logging.getLogger(__name__)

TOP_LEVEL_SCALARS = ("AWSTemplateFormatVersion", "Description", "Transform")
KEYED_SECTIONS = ("Metadata", "Parameters", "Mappings", "Conditions", "Outputs")

# Resource attributes other than Type and Properties, with the impact of changing them
RESOURCE_ATTRIBUTES = {
    "Condition": ResourceImpact.CONDITIONAL_REPLACEMENT,
}
DEFAULT_DELETION_POLICY = "Delete"


def diff_template(
    old: Template | Mapping[str, Any],
    new: Template | Mapping[str, Any],
    rules: ReplacementRules | None = None,
) -> DiffResult:
    """
    Compute the differences between a deployed and a new template.

    Both documents are normalized first, so differences that do not change
    the effective meaning (key order, explicit defaults) never show up.
    Never raises on content: resource types without rules are classified
    as possibly replacing.
    """
    rules = rules or ReplacementRules.default()
    old_doc = normalize(_document(old), rules)
    new_doc = normalize(_document(new), rules)

    other: list[Difference] = []
    for name in TOP_LEVEL_SCALARS:
        change_type = _change_type(old_doc.get(name), new_doc.get(name))
        if change_type:
            other.append(Difference(name, None, change_type, old_doc.get(name), new_doc.get(name)))

    for name in KEYED_SECTIONS:
        old_section = _section(old_doc, name)
        new_section = _section(new_doc, name)
        for key in _union(old_section, new_section):
            change_type = _change_type(old_section.get(key), new_section.get(key))
            if change_type:
                other.append(Difference(name, key, change_type, old_section.get(key), new_section.get(key)))

    resources = _diff_resources(_section(old_doc, "Resources"), _section(new_doc, "Resources"), rules)
    result = DiffResult(resources=tuple(resources), other=tuple(other))
    LOG.info(
        "Template diff: %d added, %d removed, %d changed (%d replaced), %d other",
        len(result.added),
        len(result.removed),
        len(result.changed),
        len(result.replacements),
        len(result.other),
    )
    return result


def normalize(document: Mapping[str, Any], rules: ReplacementRules | None = None) -> dict[str, Any]:
    """
    Return a canonical copy of a template document.

    Keys are sorted at every level, ``None`` values and empty sections are
    removed, ``DependsOn`` becomes a sorted list, and resource properties
    that equal the documented default of their type are elided.
    """
    rules = rules or ReplacementRules.default()
    result: dict[str, Any] = {}
    for key, value in _drop_empty(copy.deepcopy(dict(document))).items():
        if key == "Resources" and isinstance(value, dict):
            value = {
                logical_id: _normalize_resource(resource, rules)
                for logical_id, resource in value.items()
            }
        result[key] = value
    return _sort_keys(result)


def _document(template: Template | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(template, Template):
        return template.document
    return template or {}


def _section(document: Mapping[str, Any], name: str) -> dict[str, Any]:
    section = document.get(name)
    return section if isinstance(section, dict) else {}


def _normalize_resource(resource: Any, rules: ReplacementRules) -> Any:
    if not isinstance(resource, dict):
        return resource
    resource = dict(resource)
    resource_type = _type_of(resource)

    properties = resource.get("Properties")
    if isinstance(properties, dict):
        for name, default in rules.defaults_for(resource_type).items():
            if properties.get(name) == default:
                del properties[name]
        resource["Properties"] = properties

    depends_on = resource.get("DependsOn")
    if isinstance(depends_on, str):
        resource["DependsOn"] = [depends_on]
    elif isinstance(depends_on, list):
        resource["DependsOn"] = _sorted_unique(depends_on)

    if resource.get("DeletionPolicy") == DEFAULT_DELETION_POLICY:
        del resource["DeletionPolicy"]

    return {k: v for k, v in resource.items() if v not in ({}, [])}


def _drop_empty(value: Any) -> Any:
    if isinstance(value, dict):
        cleaned = {k: _drop_empty(v) for k, v in value.items() if v is not None}
        return {k: v for k, v in cleaned.items() if v != {}}
    if isinstance(value, list):
        return [_drop_empty(v) for v in value]
    return value


def _sort_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _sort_keys(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, list):
        return [_sort_keys(v) for v in value]
    return value


def _sorted_unique(items: list[Any]) -> list[Any]:
    # Items may be unhashable, e.g. a mistaken {"Ref": ...} in DependsOn
    unique: list[Any] = []
    for item in items:
        if item not in unique:
            unique.append(item)
    return sorted(unique, key=lambda item: str(_sort_keys(item)))


def _union(old: Mapping[str, Any], new: Mapping[str, Any]) -> list[str]:
    """Keys of ``old`` in order, then keys only in ``new``."""
    return list(old) + [k for k in new if k not in old]


def _change_type(old: Any, new: Any) -> ChangeType | None:
    if old == new:
        return None
    if old is None:
        return ChangeType.ADDED
    if new is None:
        return ChangeType.REMOVED
    return ChangeType.CHANGED


def diff_values(old: Any, new: Any, path: tuple[str, ...] = ()) -> list[tuple[tuple[str, ...], Any, Any]]:
    """
    Changed leaves between two values as ``(path, old, new)``.

    Mappings are compared key by key; sequences and scalars as a whole.
    """
    if old == new:
        return []
    if isinstance(old, dict) and isinstance(new, dict):
        changes = []
        for key in _union(old, new):
            changes.extend(diff_values(old.get(key), new.get(key), path + (key,)))
        return changes
    return [(path, old, new)]


def _diff_resources(
    old: Mapping[str, Any],
    new: Mapping[str, Any],
    rules: ReplacementRules,
) -> list[ResourceDifference]:
    differences = []
    for logical_id in _union(old, new):
        old_resource = old.get(logical_id)
        new_resource = new.get(logical_id)
        if old_resource == new_resource:
            continue
        if old_resource is None:
            differences.append(
                ResourceDifference(
                    logical_id,
                    ChangeType.ADDED,
                    new_type=_type_of(new_resource),
                    new_value=new_resource,
                )
            )
        elif new_resource is None:
            differences.append(
                ResourceDifference(
                    logical_id,
                    ChangeType.REMOVED,
                    old_type=_type_of(old_resource),
                    old_value=old_resource,
                )
            )
        else:
            differences.append(_diff_resource(logical_id, old_resource, new_resource, rules))
    return differences


def _diff_resource(
    logical_id: str,
    old: Mapping[str, Any],
    new: Mapping[str, Any],
    rules: ReplacementRules,
) -> ResourceDifference:
    # Malformed entries compare as empty resources
    old = old if isinstance(old, dict) else {}
    new = new if isinstance(new, dict) else {}
    old_type = _type_of(old)
    new_type = _type_of(new)

    property_changes = [
        PropertyDifference(path, old_value, new_value, rules.impact_of(new_type, path))
        for path, old_value, new_value in diff_values(old.get("Properties", {}), new.get("Properties", {}))
    ]
    if property_changes and not rules.knows(new_type):
        LOG.warning(
            "No replacement rules for %s (%s); treating its property changes as possibly replacing",
            new_type,
            logical_id,
        )

    other_changes = [
        PropertyDifference(
            (key,),
            old.get(key),
            new.get(key),
            RESOURCE_ATTRIBUTES.get(key, ResourceImpact.IN_PLACE_UPDATE),
        )
        for key in _attribute_keys(old, new)
        if old.get(key) != new.get(key)
    ]

    impacts = [c.impact for c in property_changes] + [c.impact for c in other_changes]
    if old_type != new_type:
        impacts.append(ResourceImpact.REPLACEMENT)

    return ResourceDifference(
        logical_id,
        ChangeType.CHANGED,
        old_type=old_type,
        new_type=new_type,
        old_value=dict(old),
        new_value=dict(new),
        property_changes=tuple(property_changes),
        other_changes=tuple(other_changes),
        impact=ResourceImpact.worst(impacts),
    )


def _attribute_keys(old: Mapping[str, Any], new: Mapping[str, Any]) -> Iterable[str]:
    return (k for k in _union(old, new) if k not in ("Type", "Properties"))


def _type_of(resource: Any) -> str | None:
    resource_type = resource.get("Type") if isinstance(resource, dict) else None
    return resource_type if isinstance(resource_type, str) else None
