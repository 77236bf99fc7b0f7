"""Turn a construct tree into template documents."""

from __future__ import annotations

import logging
from typing import Any, Iterator

from infrasynth.core.config import SynthConfig
from infrasynth.core.construct import Construct, MetadataType, locked
from infrasynth.core.errors import (
    CyclicDependencyError,
    DuplicateLogicalIdError,
    ValidationError,
    ValidationFailure,
)
from infrasynth.core.stack import Resource, Stack, StackElement
from infrasynth.core.template import SECTION_ORDER, Template
from infrasynth.core.tokens import ResolveContext, resolve

LOG = logging.getLogger(__name__)

PATH_METADATA_KEY = "infrasynth:path"


def synthesize(app: Construct, config: SynthConfig | None = None) -> list[Template]:
    """
    Synthesize one template per stack found under ``app``.

    Stacks are returned in pre-order. Every validation failure in the tree
    is collected first and reported together in a single ``ValidationError``.
    """
    config = config or SynthConfig()
    with locked(app.root):
        failures = validate_tree(app)
        if failures:
            raise ValidationError(failures)
        stacks = [node for node in app.iter_tree() if isinstance(node, Stack)]
        return [_synthesize_stack(stack, config) for stack in stacks]


def synthesize_stack(stack: Stack, config: SynthConfig | None = None) -> Template:
    """Synthesize a single stack, validating only its own subtree."""
    config = config or SynthConfig()
    with locked(stack.root):
        failures = validate_tree(stack)
        if failures:
            raise ValidationError(failures)
        return _synthesize_stack(stack, config)


def validate_tree(root: Construct) -> list[ValidationFailure]:
    """Collect the local validation problems of every node under ``root``."""
    failures = []
    for node in root.iter_tree():
        messages = list(node.validate())
        messages.extend(str(entry.data) for entry in node.metadata if entry.type == MetadataType.ERROR.value)
        failures.extend(ValidationFailure(node.path or "<root>", message) for message in messages)
    return failures


def _synthesize_stack(stack: Stack, config: SynthConfig) -> Template:
    elements = stack.elements()
    logical_ids = assign_logical_ids(stack, elements, config)

    context = ResolveContext(
        logical_ids=logical_ids,
        stack_name=stack.stack_name,
        owner_path=stack.path,
        max_depth=config.max_resolve_depth,
    )

    sections: dict[str, dict[str, Any]] = {}
    references: dict[str, list[str]] = {}
    for element in elements:
        element_context = context.for_owner(element.path)
        body = resolve(element.to_template(), element_context)
        if isinstance(element, Resource):
            body = _tidy_resource(body)
            if config.path_metadata:
                body.setdefault("Metadata", {})[PATH_METADATA_KEY] = element.path
            references[element.path] = element_context.references
        sections.setdefault(element.section, {})[logical_ids[element.path]] = body

    resources = [e for e in elements if isinstance(e, Resource)]
    explicit, stack_dependencies = _explicit_dependencies(stack, resources)
    prerequisites = _merge_dependencies(resources, explicit, references)
    ordered = _order_resources(stack, resources, prerequisites, logical_ids)

    resource_section = {}
    for resource in ordered:
        logical_id = logical_ids[resource.path]
        depends_on = [logical_ids[path] for path in explicit.get(resource.path, [])]
        resource_section[logical_id] = _with_depends_on(sections["Resources"][logical_id], depends_on)
    if resource_section:
        sections["Resources"] = resource_section

    document = _assemble(stack, sections, context, config)
    LOG.info(
        "Synthesized stack %s: %d resources, %d parameters, %d outputs",
        stack.stack_name,
        len(resource_section),
        len(sections.get("Parameters", {})),
        len(sections.get("Outputs", {})),
    )
    return Template(
        stack_name=stack.stack_name,
        document=document,
        stack_path=stack.path,
        dependencies=stack_dependencies,
    )


def assign_logical_ids(
    stack: Stack, elements: list[StackElement], config: SynthConfig | None = None
) -> dict[str, str]:
    """Map each element's construct path to its logical id."""
    config = config or SynthConfig()
    logical_ids: dict[str, str] = {}
    owners: dict[str, list[str]] = {}
    for element in elements:
        logical_id = stack.logical_id_for(element, config.logical_id_max_length)
        logical_ids[element.path] = logical_id
        owners.setdefault(logical_id, []).append(element.path)
        LOG.debug("Assigned logical id %s to %s", logical_id, element.path)

    for logical_id, paths in owners.items():
        if len(paths) > 1:
            raise DuplicateLogicalIdError(stack.stack_name, logical_id, paths)
    return logical_ids


def _tidy_resource(body: dict[str, Any]) -> dict[str, Any]:
    # Properties or Metadata may have resolved to nothing
    return {k: v for k, v in body.items() if not (k in ("Properties", "Metadata") and v == {})}


def _with_depends_on(body: dict[str, Any], depends_on: list[str]) -> dict[str, Any]:
    if not depends_on:
        return body
    result: dict[str, Any] = {}
    for key, value in body.items():
        result[key] = value
        if key == "Properties":
            result["DependsOn"] = depends_on
    result.setdefault("DependsOn", depends_on)
    return result


def _resources_under(node: Construct) -> Iterator[Resource]:
    for n in node.iter_tree():
        if isinstance(n, Resource):
            yield n


def _explicit_dependencies(
    stack: Stack, resources: list[Resource]
) -> tuple[dict[str, list[str]], list[str]]:
    """
    Expand node-level dependencies into resource-to-resource edges.

    Returns the edges of this stack (resource path -> prerequisite paths)
    and the names of other stacks this stack depends on.
    """
    in_stack = {r.path for r in resources}
    edges: dict[str, list[str]] = {}
    stack_dependencies: list[str] = []

    def add_stack_dependency(name: str) -> None:
        if name != stack.stack_name and name not in stack_dependencies:
            stack_dependencies.append(name)

    for node in stack.root.iter_tree():
        if not node.dependencies:
            continue
        sources = [r for r in _resources_under(node) if r.path in in_stack]
        if not sources and node is not stack:
            continue

        for target in node.dependencies:
            if isinstance(target, Stack) and node is stack:
                add_stack_dependency(target.stack_name)
            for target_resource in _resources_under(target):
                if target_resource.path not in in_stack:
                    if not isinstance(node, Stack):
                        LOG.warning(
                            "Dropping dependency of %s on %s: resources are in different stacks",
                            node.path,
                            target_resource.path,
                        )
                    add_stack_dependency(target_resource.stack.stack_name)
                    continue
                for source in sources:
                    if source is target_resource:
                        continue
                    prerequisites = edges.setdefault(source.path, [])
                    if target_resource.path not in prerequisites:
                        prerequisites.append(target_resource.path)
    return edges, stack_dependencies


def _merge_dependencies(
    resources: list[Resource],
    explicit: dict[str, list[str]],
    references: dict[str, list[str]],
) -> dict[str, list[str]]:
    resource_paths = {r.path for r in resources}
    merged: dict[str, list[str]] = {}
    for resource in resources:
        prerequisites = list(explicit.get(resource.path, []))
        for target in references.get(resource.path, []):
            # Parameters, conditions and mappings are not ordered
            if target in resource_paths and target not in prerequisites:
                LOG.debug("Inferred dependency of %s on %s", resource.path, target)
                prerequisites.append(target)
        merged[resource.path] = prerequisites
    return merged


def _order_resources(
    stack: Stack,
    resources: list[Resource],
    prerequisites: dict[str, list[str]],
    logical_ids: dict[str, str],
) -> list[Resource]:
    """Topological order; among ready resources the earliest discovered goes first."""
    remaining = list(resources)
    emitted: set[str] = set()
    ordered: list[Resource] = []

    while remaining:
        for resource in remaining:
            if all(p in emitted for p in prerequisites[resource.path]):
                break
        else:
            cycle = _find_cycle([r.path for r in remaining], prerequisites, emitted)
            raise CyclicDependencyError(stack.stack_name, [logical_ids[p] for p in cycle])
        remaining.remove(resource)
        emitted.add(resource.path)
        ordered.append(resource)
    return ordered


def _find_cycle(remaining: list[str], prerequisites: dict[str, list[str]], emitted: set[str]) -> list[str]:
    # Every remaining resource waits on another remaining one, so walking
    # the first pending prerequisite must eventually revisit a node.
    trail: list[str] = []
    current = remaining[0]
    while current not in trail:
        trail.append(current)
        current = next(p for p in prerequisites[current] if p not in emitted)
    return trail[trail.index(current) :]


def _assemble(
    stack: Stack,
    sections: dict[str, dict[str, Any]],
    context: ResolveContext,
    config: SynthConfig,
) -> dict[str, Any]:
    options = stack.template_options
    top_level = {
        "AWSTemplateFormatVersion": config.template_format_version,
        "Description": options.description,
        "Transform": options.transform,
        "Metadata": options.metadata or None,
    }
    top_level = resolve(top_level, context)

    document: dict[str, Any] = {}
    for section in SECTION_ORDER:
        value = sections.get(section) or top_level.get(section)
        if value:
            document[section] = value
    return document
