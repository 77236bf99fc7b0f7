"""Pydantic schemas for template documents and replacement rule tables."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

VALID_LOGICAL_ID = re.compile(r"^[A-Za-z0-9]+$")


class DeletionPolicy(str, Enum):
    """What happens to a resource when it leaves the template."""

    DELETE = "Delete"
    RETAIN = "Retain"
    SNAPSHOT = "Snapshot"
    RETAIN_EXCEPT_ON_CREATE = "RetainExceptOnCreate"


class ResourceSchema(BaseModel):
    """Schema for one entry of the Resources section."""

    type: str = Field(alias="Type")
    properties: dict[str, Any] = Field(default_factory=dict, alias="Properties")
    depends_on: str | list[str] | None = Field(default=None, alias="DependsOn")
    condition: str | None = Field(default=None, alias="Condition")
    deletion_policy: DeletionPolicy | None = Field(default=None, alias="DeletionPolicy")
    update_replace_policy: DeletionPolicy | None = Field(default=None, alias="UpdateReplacePolicy")
    metadata: dict[str, Any] = Field(default_factory=dict, alias="Metadata")

    # CreationPolicy, UpdatePolicy and friends pass through untouched
    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator("properties", "metadata", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """An explicit null section means the same as an absent one."""
        return {} if v is None else v

    def dependency_ids(self) -> list[str]:
        if self.depends_on is None:
            return []
        if isinstance(self.depends_on, str):
            return [self.depends_on]
        return list(self.depends_on)


class ParameterSchema(BaseModel):
    """Schema for one entry of the Parameters section."""

    type: str = Field(alias="Type")

    model_config = {"populate_by_name": True, "extra": "allow"}


class OutputSchema(BaseModel):
    """Schema for one entry of the Outputs section."""

    value: Any = Field(alias="Value")
    description: str | None = Field(default=None, alias="Description")
    export: dict[str, Any] | None = Field(default=None, alias="Export")
    condition: str | None = Field(default=None, alias="Condition")

    model_config = {"populate_by_name": True}


class TemplateSchema(BaseModel):
    """
    Schema for a complete template document.

    Only the structure is checked; intrinsic functions inside property
    values are not evaluated.
    """

    format_version: str | None = Field(default=None, alias="AWSTemplateFormatVersion")
    description: str | None = Field(default=None, alias="Description")
    transform: str | list[str] | None = Field(default=None, alias="Transform")
    metadata: dict[str, Any] = Field(default_factory=dict, alias="Metadata")
    parameters: dict[str, ParameterSchema] = Field(default_factory=dict, alias="Parameters")
    mappings: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=dict, alias="Mappings")
    conditions: dict[str, Any] = Field(default_factory=dict, alias="Conditions")
    resources: dict[str, ResourceSchema] = Field(default_factory=dict, alias="Resources")
    outputs: dict[str, OutputSchema] = Field(default_factory=dict, alias="Outputs")

    model_config = {"populate_by_name": True, "extra": "forbid"}

    @field_validator("resources", "parameters", "outputs", "conditions", "mappings")
    @classmethod
    def validate_logical_ids(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Validate that all keys are alphanumeric logical ids."""
        for key in v.keys():
            if not VALID_LOGICAL_ID.match(key):
                raise ValueError(f"Invalid logical id: {key}")
        return v

    @model_validator(mode="after")
    def validate_dependencies(self) -> TemplateSchema:
        for logical_id, resource in self.resources.items():
            for target in resource.dependency_ids():
                if target not in self.resources:
                    raise ValueError(f"Resource {logical_id} depends on unknown resource {target}")
            if resource.condition and resource.condition not in self.conditions:
                raise ValueError(f"Resource {logical_id} uses unknown condition {resource.condition}")
        return self


# --- Replacement rule schemas ---


class ReplacementPaths(BaseModel):
    """Property paths whose change replaces the resource.

    Paths use "." between nested property names, e.g. "VpcConfig.SubnetIds".
    """

    always: list[str] = Field(default_factory=list)
    conditional: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_disjoint(self) -> ReplacementPaths:
        both = set(self.always) & set(self.conditional)
        if both:
            raise ValueError(f"Paths listed as both always and conditional: {', '.join(sorted(both))}")
        return self


class ResourceTypeRules(BaseModel):
    """Update behaviour of one resource type."""

    replaces: ReplacementPaths = Field(default_factory=ReplacementPaths)
    # Property values the provider assumes when the property is absent
    defaults: dict[str, Any] = Field(default_factory=dict)


class RuleTableSchema(BaseModel):
    """Schema for the complete replacement rule table."""

    schema_version: str = "1.0"
    resource_types: dict[str, ResourceTypeRules] = Field(default_factory=dict)
