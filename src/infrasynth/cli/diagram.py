"""Diagram generation CLI command."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console

from infrasynth.cli.main import DEFAULT_OUTPUT, Context, pass_context
from infrasynth.core.errors import InfrasynthError

console = Console()


@click.command()
@click.argument("template_path", metavar="TEMPLATE", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=Path(DEFAULT_OUTPUT),
    show_default=True,
    help="Output directory",
)
@click.option(
    "--stdout",
    is_flag=True,
    help="Print to stdout instead of file",
)
@pass_context
def diagram(ctx: Context, template_path: Path, output: Path, stdout: bool) -> None:
    """
    Generate a resource dependency diagram.

    Examples:

        # Write infrasynth.out/MyStack.md
        infrasynth diagram infrasynth.out/MyStack.template.json

        # Print to stdout
        infrasynth diagram deployed.yaml --stdout
    """
    from infrasynth.generators.mermaid import generate_mermaid
    from infrasynth.loader import load_template

    try:
        template = load_template(template_path)
    except InfrasynthError as e:
        raise click.ClickException(str(e)) from e

    if not template.resources:
        console.print("[yellow]Template has no resources[/yellow]")
        return

    content = generate_mermaid(template)
    if stdout:
        click.echo(content)
    else:
        output.mkdir(parents=True, exist_ok=True)
        output_file = output / f"{template.stack_name}.md"
        output_file.write_text(content)
        console.print(f"[green]Generated:[/green] {output_file}")
