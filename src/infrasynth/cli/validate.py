"""Validation CLI command."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console

from infrasynth.cli.main import Context, pass_context
from infrasynth.core.errors import TemplateError

console = Console()


@click.command()
@click.argument(
    "templates",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--strict",
    is_flag=True,
    help="Fail on warnings",
)
@pass_context
def validate(ctx: Context, templates: tuple[Path, ...], strict: bool) -> None:
    """
    Validate template documents.

    Checks schema compliance, DependsOn and Condition references, and
    warns about resource types without replacement rules.

    Examples:

        # Basic validation
        infrasynth validate infrasynth.out/*.template.json

        # Treat warnings as errors
        infrasynth validate --strict deployed.yaml
    """
    from infrasynth.loader import load_template

    errors: list[str] = []
    warnings: list[str] = []

    for path in templates:
        console.print(f"[bold]Validating {path}...[/bold]")
        try:
            template = load_template(path)
        except TemplateError as e:
            errors.append(str(e))
            console.print(f"  [red]✗[/red] {e}")
            continue
        console.print(f"  [green]✓[/green] Template loaded: {len(template)} resources")

        for logical_id, resource in template.resources.items():
            resource_type = resource.get("Type")
            if not ctx.rules.knows(resource_type):
                warnings.append(f"{path}: no replacement rules for {resource_type} ({logical_id})")
                console.print(f"  [yellow]![/yellow] No replacement rules for {resource_type} ({logical_id})")

    # Summary
    console.print()
    if errors:
        console.print(f"[red]Validation failed with {len(errors)} error(s)[/red]")
        raise SystemExit(1)
    if warnings:
        console.print(f"[yellow]{len(warnings)} warning(s)[/yellow]")
        if strict:
            raise SystemExit(1)
    else:
        console.print("[green]All templates valid[/green]")
