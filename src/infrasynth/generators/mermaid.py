"""Mermaid dependency diagram generation."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from infrasynth.core.template import Template


def _service_of(resource_type: str) -> str:
    # "AWS::SQS::Queue" -> "SQS"
    parts = resource_type.split("::")
    return parts[1] if len(parts) == 3 else "other"


def generate_mermaid(template: Template) -> str:
    """
    Generate Mermaid flowchart of a template's resource dependencies.

    Returns Markdown with embedded Mermaid diagram.
    """
    title = template.stack_name or "Template"
    lines = [f"# {title} Dependencies", "", "```mermaid", "flowchart LR"]

    # Group resources by service
    groups: dict[str, list[str]] = defaultdict(list)
    for logical_id, resource in template.resources.items():
        groups[_service_of(resource.get("Type", ""))].append(logical_id)

    for service, logical_ids in sorted(groups.items()):
        lines.append(f"    subgraph {service}")
        for logical_id in logical_ids:
            resource_type = template.resources[logical_id].get("Type", "")
            lines.append(f'        {logical_id}["{logical_id}<br/>{resource_type}"]')
        lines.append("    end")

    lines.append("")
    lines.append("    %% Dependencies")

    for logical_id in template.resource_ids:
        explicit = template.depends_on(logical_id)
        for target in explicit:
            lines.append(f"    {target} ==> {logical_id}")
        for target in template.references(logical_id):
            if target not in explicit:
                lines.append(f"    {target} --> {logical_id}")

    lines.append("```")
    lines.append("")
    lines.append("## Legend")
    lines.append("")
    lines.append("- `==>` Explicit DependsOn")
    lines.append("- `-->` Reference (Ref / Fn::GetAtt)")

    return "\n".join(lines)
