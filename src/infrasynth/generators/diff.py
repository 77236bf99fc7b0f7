"""Human-readable rendering of template diffs."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape

from infrasynth.diff.model import ChangeType, ResourceImpact

if TYPE_CHECKING:
    from infrasynth.diff.model import Difference, DiffResult, PropertyDifference, ResourceDifference

SYMBOLS = {
    ChangeType.ADDED: "[green][+][/green]",
    ChangeType.REMOVED: "[red][-][/red]",
    ChangeType.CHANGED: "[yellow][~][/yellow]",
}

IMPACT_LABELS = {
    ResourceImpact.IN_PLACE_UPDATE: "",
    ResourceImpact.CONDITIONAL_REPLACEMENT: " [yellow](may cause replacement)[/yellow]",
    ResourceImpact.REPLACEMENT: " [bold red](requires replacement)[/bold red]",
}


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return escape(value)
    return escape(json.dumps(value, sort_keys=True))


def render_diff(diff: DiffResult, console: Console | None = None) -> None:
    """Print a diff the way a reviewer reads it: one block per section."""
    console = console or Console()

    if diff.is_empty:
        console.print("[green]There were no differences[/green]")
        return

    sections: dict[str, list[Difference]] = {}
    for difference in diff.other:
        sections.setdefault(difference.section, []).append(difference)

    for section, differences in sections.items():
        console.print(f"[bold]{section}[/bold]")
        for difference in differences:
            _render_difference(console, difference)
        console.print()

    if diff.resources:
        console.print("[bold]Resources[/bold]")
        for resource in diff.resources:
            _render_resource(console, resource)
        console.print()

    _render_summary(console, diff)


def _render_difference(console: Console, difference: Difference) -> None:
    symbol = SYMBOLS[difference.change_type]
    key = f" {escape(difference.key)}" if difference.key else ""
    if difference.change_type == ChangeType.ADDED:
        console.print(f"{symbol}{key} {_format_value(difference.new_value)}")
    elif difference.change_type == ChangeType.REMOVED:
        console.print(f"{symbol}{key} {_format_value(difference.old_value)}")
    else:
        console.print(f"{symbol}{key}")
        console.print(f"    [red]-[/red] {_format_value(difference.old_value)}")
        console.print(f"    [green]+[/green] {_format_value(difference.new_value)}")


def _render_resource(console: Console, resource: ResourceDifference) -> None:
    symbol = SYMBOLS[resource.change_type]
    resource_type = escape(resource.resource_type or "?")
    header = f"{symbol} {resource_type} [cyan]{escape(resource.logical_id)}[/cyan]"

    if resource.change_type != ChangeType.CHANGED:
        console.print(header)
        return

    console.print(header + IMPACT_LABELS[resource.impact or ResourceImpact.IN_PLACE_UPDATE])
    if resource.type_changed:
        console.print(
            f"  [bold red]type changed[/bold red] {escape(resource.old_type or '?')} -> {resource_type}"
        )
    changes = list(resource.property_changes) + list(resource.other_changes)
    for index, change in enumerate(changes):
        last = index == len(changes) - 1
        _render_property(console, change, last)


def _render_property(console: Console, change: PropertyDifference, last: bool) -> None:
    branch = "└─" if last else "├─"
    indent = "    " if last else " │  "
    console.print(f" {branch} [~] {escape(change.dotted_path)}{IMPACT_LABELS[change.impact]}")
    if change.old_value is not None:
        console.print(f" {indent}[red]- {_format_value(change.old_value)}[/red]")
    if change.new_value is not None:
        console.print(f" {indent}[green]+ {_format_value(change.new_value)}[/green]")


def _render_summary(console: Console, diff: DiffResult) -> None:
    console.print(
        f"[bold]{len(diff.added)}[/bold] to add, "
        f"[bold]{len(diff.changed)}[/bold] to change, "
        f"[bold]{len(diff.removed)}[/bold] to remove"
    )
    for resource in diff.replacements:
        console.print(
            f"[bold red]![/bold red] {escape(resource.logical_id)} will be destroyed and recreated"
        )
    for resource in diff.possible_replacements:
        console.print(f"[yellow]?[/yellow] {escape(resource.logical_id)} may be replaced")
