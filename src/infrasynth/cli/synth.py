"""Synthesis CLI commands."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from infrasynth.cli.main import DEFAULT_OUTPUT, Context, pass_context
from infrasynth.core.errors import InfrasynthError, ValidationError

console = Console()


@click.command()
@click.argument("app_spec", metavar="APP")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=Path(DEFAULT_OUTPUT),
    show_default=True,
    help="Output directory",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["json", "yaml"]),
    default="json",
    help="Output format",
)
@click.option(
    "--stdout",
    is_flag=True,
    help="Print to stdout instead of file",
)
@pass_context
def synth(ctx: Context, app_spec: str, output: Path, output_format: str, stdout: bool) -> None:
    """
    Synthesize one template per stack of an app.

    APP is "module:attribute" or "path/to/app.py:attribute", naming an App
    or a function returning one.

    Examples:

        # Write JSON templates to infrasynth.out/
        infrasynth synth myproject.app:app

        # Print YAML templates
        infrasynth synth app.py:build_app --format yaml --stdout
    """
    from infrasynth.loader import load_app, write_template

    try:
        app = load_app(app_spec)
        templates = app.synth(ctx.config)
    except ValidationError as e:
        console.print(f"[red]✗[/red] Validation failed with {len(e.failures)} error(s):")
        for failure in e.failures:
            console.print(f"  [red]✗[/red] [cyan]{failure.path}[/cyan]: {failure.message}")
        raise SystemExit(1)
    except InfrasynthError as e:
        raise click.ClickException(str(e)) from e

    if not templates:
        console.print("[yellow]App contains no stacks[/yellow]")
        return

    for template in templates:
        if stdout:
            content = template.to_yaml() if output_format == "yaml" else template.to_json()
            console.print(f"\n[bold]--- {template.stack_name} ---[/bold]")
            click.echo(content)
        else:
            path = write_template(template, output, output_format)
            console.print(f"[green]Generated:[/green] {path} ({len(template)} resources)")


@click.command()
@click.argument("app_spec", metavar="APP")
@pass_context
def ls(ctx: Context, app_spec: str) -> None:
    """List the stacks of an app."""
    from infrasynth.core.stack import Stack
    from infrasynth.loader import load_app

    try:
        app = load_app(app_spec)
    except InfrasynthError as e:
        raise click.ClickException(str(e)) from e

    stacks = [node for node in app.iter_tree() if isinstance(node, Stack)]
    if not stacks:
        console.print("[yellow]App contains no stacks[/yellow]")
        return

    table = Table(title="Stacks")
    table.add_column("Name", style="cyan")
    table.add_column("Path", style="dim")
    table.add_column("Elements", justify="right")
    table.add_column("Depends on")

    for stack in stacks:
        depends_on = [d.stack_name for d in stack.dependencies if isinstance(d, Stack)]
        table.add_row(
            stack.stack_name,
            stack.path,
            str(len(stack.elements())),
            ", ".join(depends_on) or "-",
        )

    console.print(table)
