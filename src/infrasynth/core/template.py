"""Synthesized template documents."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from infrasynth.core.errors import TemplateError
from infrasynth.core.schema import TemplateSchema

# Order of the top-level sections in an emitted document
SECTION_ORDER = (
    "AWSTemplateFormatVersion",
    "Description",
    "Transform",
    "Metadata",
    "Parameters",
    "Mappings",
    "Conditions",
    "Resources",
    "Outputs",
)


@dataclass(frozen=True)
class Template:
    """
    The template document of one stack.

    ``document`` is the nested-mapping form. It is read-only at every level;
    ``to_dict()`` and ``copy.deepcopy`` return plain copies that are safe to
    change.
    """

    stack_name: str
    document: dict[str, Any]
    stack_path: str = ""
    dependencies: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        object.__setattr__(self, "document", freeze(self.document))

    @classmethod
    def from_dict(cls, data: dict[str, Any], stack_name: str = "") -> Template:
        """Create a template from a loaded document, checking its structure."""
        validate_document(data, stack_name)
        return cls(stack_name=stack_name, document=data)

    @property
    def resources(self) -> dict[str, Any]:
        return self.document.get("Resources", FrozenDict())

    @property
    def resource_ids(self) -> list[str]:
        return list(self.resources.keys())

    @property
    def template_file_name(self) -> str:
        return f"{self.stack_name}.template.json"

    def depends_on(self, logical_id: str) -> list[str]:
        """Explicit DependsOn targets of a resource."""
        depends_on = self.resources[logical_id].get("DependsOn", [])
        return [depends_on] if isinstance(depends_on, str) else list(depends_on)

    def references(self, logical_id: str) -> list[str]:
        """Resources referenced from the properties of a resource."""
        properties = self.resources[logical_id].get("Properties", {})
        return [r for r in find_references(properties) if r in self.resources]

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.document)

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.document, indent=indent)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)

    def __len__(self) -> int:
        return len(self.resources)

    def __contains__(self, logical_id: str) -> bool:
        return logical_id in self.resources


def validate_document(data: Any, name: str = "") -> TemplateSchema:
    """Check a template document against the template schema."""
    if not isinstance(data, dict):
        raise TemplateError(f"Template {name or '<document>'} must be a mapping, got {type(data).__name__}")
    try:
        return TemplateSchema(**data)
    except PydanticValidationError as e:
        raise TemplateError(f"Invalid template {name or '<document>'}: {e}") from e


def find_references(value: Any) -> list[str]:
    """Logical ids named by ``Ref`` and ``Fn::GetAtt`` anywhere inside ``value``."""
    found: list[str] = []

    def visit(v: Any) -> None:
        if isinstance(v, dict):
            if len(v) == 1 and isinstance(v.get("Ref"), str):
                target = v["Ref"]
                if not target.startswith("AWS::") and target not in found:
                    found.append(target)
                return
            if len(v) == 1 and isinstance(v.get("Fn::GetAtt"), list) and v["Fn::GetAtt"]:
                target = v["Fn::GetAtt"][0]
                if isinstance(target, str) and target not in found:
                    found.append(target)
                return
            for item in v.values():
                visit(item)
        elif isinstance(v, list):
            for item in v:
                visit(item)

    visit(value)
    return found


class FrozenDict(dict):
    """A dict that rejects changes. Copies are plain, mutable dicts."""

    def _read_only(self, *args: Any, **kwargs: Any) -> Any:
        raise TypeError("Template documents are read-only; use Template.to_dict() for a mutable copy")

    __setitem__ = __delitem__ = __ior__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only

    def copy(self) -> dict[str, Any]:
        return dict(self)

    def __copy__(self) -> dict[str, Any]:
        return dict(self)

    def __deepcopy__(self, memo: dict[int, Any]) -> dict[str, Any]:
        return {k: copy.deepcopy(v, memo) for k, v in self.items()}


class FrozenList(list):
    """A list that rejects changes. Copies are plain, mutable lists."""

    def _read_only(self, *args: Any, **kwargs: Any) -> Any:
        raise TypeError("Template documents are read-only; use Template.to_dict() for a mutable copy")

    __setitem__ = __delitem__ = __iadd__ = __imul__ = _read_only
    append = extend = insert = pop = remove = clear = sort = reverse = _read_only

    def copy(self) -> list[Any]:
        return list(self)

    def __copy__(self) -> list[Any]:
        return list(self)

    def __deepcopy__(self, memo: dict[int, Any]) -> list[Any]:
        return [copy.deepcopy(v, memo) for v in self]


def freeze(value: Any) -> Any:
    """Read-only copy of nested dicts and lists."""
    if isinstance(value, dict):
        return FrozenDict((k, freeze(v)) for k, v in value.items())
    if isinstance(value, list):
        return FrozenList(freeze(v) for v in value)
    return value
