"""Stacks and the elements that contribute to their templates."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Mapping as MappingType

from infrasynth.core.construct import Construct
from infrasynth.core.logical_ids import MAX_LOGICAL_ID_LENGTH, make_unique_id
from infrasynth.core.tokens import GetAtt, LogicalIdToken, Ref, Token, fn_find_in_map, unresolved

VALID_STACK_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")
MAX_STACK_NAME_LENGTH = 128


@dataclass
class TemplateOptions:
    """Top-level template attributes that do not come from elements."""

    description: str | None = None
    transform: str | list[str] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class Stack(Construct):
    """
    A construct that roots one template document.

    A stack nested inside another stack is a separate document: its
    elements do not appear in the outer stack's template.
    """

    def __init__(
        self,
        scope: Construct | None,
        id: str,
        *,
        stack_name: str | None = None,
        description: str | None = None,
        transform: str | list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(scope, id)
        self.stack_name = stack_name or id
        self.template_options = TemplateOptions(
            description=description,
            transform=transform,
            metadata=dict(metadata or {}),
        )
        self._renames: dict[str, str] = {}

    @classmethod
    def of(cls, construct: Construct) -> Stack:
        """The closest stack enclosing ``construct`` (or the construct itself)."""
        for node in reversed(construct.ancestors()):
            if isinstance(node, Stack):
                return node
        raise ValueError(f"{construct.path or '<root>'} is not defined within a stack")

    @property
    def template_file_name(self) -> str:
        return f"{self.stack_name}.template.json"

    def rename_logical_id(self, old_id: str, new_id: str) -> None:
        """Replace a computed logical id, e.g. to keep an id from a hand-written template."""
        if old_id in self._renames:
            raise ValueError(f"Logical id '{old_id}' is already renamed to '{self._renames[old_id]}'")
        self._renames[old_id] = new_id

    @property
    def renames(self) -> dict[str, str]:
        return dict(self._renames)

    def logical_id_for(self, element: StackElement, max_length: int = MAX_LOGICAL_ID_LENGTH) -> str:
        """Logical id of an element, derived from its path relative to this stack."""
        relative = element.path_components[len(self.path_components) :]
        computed = make_unique_id(relative, max_length)
        return self._renames.get(computed, computed)

    def elements(self) -> list[StackElement]:
        """Elements of this stack's document, in pre-order."""
        return list(_iter_elements(self))

    def validate(self) -> list[str]:
        errors = []
        if not VALID_STACK_NAME.match(self.stack_name):
            errors.append(
                f"Stack name '{self.stack_name}' must start with a letter and contain only "
                "alphanumeric characters and hyphens"
            )
        if len(self.stack_name) > MAX_STACK_NAME_LENGTH:
            errors.append(f"Stack name '{self.stack_name}' is longer than {MAX_STACK_NAME_LENGTH}")
        return errors


def _iter_elements(node: Construct) -> Iterator[StackElement]:
    for child in node.children:
        if isinstance(child, Stack):
            continue
        if isinstance(child, StackElement):
            yield child
        yield from _iter_elements(child)


class StackElement(Construct):
    """
    A construct that contributes one entry to a section of its stack's template.

    The entry is produced by ``to_template()``, which is only called during
    synthesis, so it sees every change made to the tree before that.
    """

    section: ClassVar[str]

    def __init__(self, scope: Construct, id: str) -> None:
        stack = Stack.of(scope)
        super().__init__(scope, id)
        self.stack = stack

    @property
    def logical_id(self) -> Token:
        return LogicalIdToken(self.path)

    def to_template(self) -> dict[str, Any]:
        raise NotImplementedError


class Condition(StackElement):
    """A named condition, usable on resources and outputs and in ``fn_if``."""

    section = "Conditions"

    def __init__(self, scope: Construct, id: str, *, expression: Any = None) -> None:
        super().__init__(scope, id)
        self.expression = expression

    def validate(self) -> list[str]:
        if self.expression is None:
            return ["Condition requires an expression"]
        return []

    def to_template(self) -> Any:
        return self.expression


class Resource(StackElement):
    """
    A single resource declaration.

    Subclasses wrapping a concrete resource type pass it as ``type`` and
    list the properties that must be set in ``required_properties``.
    """

    section = "Resources"
    required_properties: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        type: str,
        properties: MappingType[str, Any] | None = None,
    ) -> None:
        super().__init__(scope, id)
        self.resource_type = type
        self.properties: dict[str, Any] = dict(properties or {})
        self.condition: Condition | None = None
        self.deletion_policy: str | None = None
        self.update_replace_policy: str | None = None
        self.resource_metadata: dict[str, Any] = {}
        self._overrides: list[tuple[list[str], Any]] = []

    @property
    def ref(self) -> Token:
        return Ref(self.path)

    def get_att(self, attribute: str) -> Token:
        return GetAtt(self.path, attribute)

    def add_depends_on(self, *resources: Resource) -> None:
        self.add_dependency(*resources)

    def add_property_override(self, path: str, value: Any) -> None:
        """Set a (possibly nested) property, e.g. ``"VpcConfig.SubnetIds"``."""
        self._overrides.append((path.split("."), value))

    def render_properties(self) -> dict[str, Any]:
        properties = dict(self.properties)
        for keys, value in self._overrides:
            _deep_set(properties, keys, value)
        return properties

    def validate(self) -> list[str]:
        errors = []
        properties = self.render_properties()
        for name in self.required_properties:
            if properties.get(name) is None:
                errors.append(f"Missing required property '{name}' for {self.resource_type}")
        return errors

    def to_template(self) -> dict[str, Any]:
        return {
            "Type": self.resource_type,
            "Properties": self.render_properties() or None,
            "Condition": self.condition.logical_id if self.condition else None,
            "DeletionPolicy": self.deletion_policy,
            "UpdateReplacePolicy": self.update_replace_policy,
            "Metadata": dict(self.resource_metadata) or None,
        }

    def __repr__(self) -> str:
        return f"Resource({self.path}, {self.resource_type})"


def _deep_set(target: dict[str, Any], keys: list[str], value: Any) -> None:
    for key in keys[:-1]:
        child = target.get(key)
        child = dict(child) if isinstance(child, dict) else {}
        target[key] = child
        target = child
    target[keys[-1]] = value


class Parameter(StackElement):
    """A template parameter supplied at deployment time."""

    section = "Parameters"

    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        type: str = "String",
        default: Any = None,
        description: str | None = None,
        allowed_values: list[Any] | None = None,
        allowed_pattern: str | None = None,
        constraint_description: str | None = None,
        min_length: int | None = None,
        max_length: int | None = None,
        min_value: float | None = None,
        max_value: float | None = None,
        no_echo: bool | None = None,
    ) -> None:
        super().__init__(scope, id)
        self.type = type
        self.default = default
        self.description = description
        self.allowed_values = allowed_values
        self.allowed_pattern = allowed_pattern
        self.constraint_description = constraint_description
        self.min_length = min_length
        self.max_length = max_length
        self.min_value = min_value
        self.max_value = max_value
        self.no_echo = no_echo

    @property
    def ref(self) -> Token:
        return Ref(self.path)

    value = ref

    def validate(self) -> list[str]:
        errors = []
        if self.min_value is not None and self.max_value is not None and self.min_value > self.max_value:
            errors.append(f"MinValue {self.min_value} is greater than MaxValue {self.max_value}")
        if self.min_length is not None and self.max_length is not None and self.min_length > self.max_length:
            errors.append(f"MinLength {self.min_length} is greater than MaxLength {self.max_length}")
        if (
            self.allowed_values
            and self.default is not None
            and not unresolved(self.default)
            and self.default not in self.allowed_values
        ):
            errors.append(f"Default {self.default!r} is not one of the allowed values")
        return errors

    def to_template(self) -> dict[str, Any]:
        return {
            "Type": self.type,
            "Default": self.default,
            "Description": self.description,
            "AllowedValues": self.allowed_values,
            "AllowedPattern": self.allowed_pattern,
            "ConstraintDescription": self.constraint_description,
            "MinLength": self.min_length,
            "MaxLength": self.max_length,
            "MinValue": self.min_value,
            "MaxValue": self.max_value,
            "NoEcho": self.no_echo,
        }


class Output(StackElement):
    """A value exported from the deployed stack."""

    section = "Outputs"

    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        value: Any = None,
        description: str | None = None,
        export_name: str | None = None,
        condition: Condition | None = None,
    ) -> None:
        super().__init__(scope, id)
        self.value = value
        self.description = description
        self.export_name = export_name
        self.condition = condition

    def validate(self) -> list[str]:
        if self.value is None:
            return ["Output requires a value"]
        return []

    def to_template(self) -> dict[str, Any]:
        return {
            "Value": self.value,
            "Description": self.description,
            "Export": {"Name": self.export_name} if self.export_name else None,
            "Condition": self.condition.logical_id if self.condition else None,
        }


class Mapping(StackElement):
    """A two-level lookup table, read with ``find_in_map``."""

    section = "Mappings"

    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        mapping: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(scope, id)
        self.mapping: dict[str, dict[str, Any]] = {k: dict(v) for k, v in (mapping or {}).items()}

    def set_value(self, key1: str, key2: str, value: Any) -> None:
        self.mapping.setdefault(key1, {})[key2] = value

    def find_in_map(self, key1: Any, key2: Any) -> Token:
        return fn_find_in_map(self, key1, key2)

    def validate(self) -> list[str]:
        if not self.mapping:
            return ["Mapping must contain at least one entry"]
        return [f"Mapping entry '{key}' is empty" for key, values in self.mapping.items() if not values]

    def to_template(self) -> dict[str, Any]:
        return self.mapping
