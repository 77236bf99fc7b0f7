"""Template diff CLI command."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console

from infrasynth.cli.main import Context, pass_context
from infrasynth.core.errors import InfrasynthError

console = Console()


@click.command()
@click.argument("old", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("new", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--rules",
    "rules_path",
    type=click.Path(exists=False, path_type=Path),
    envvar="INFRASYNTH_RULES",
    help="Replacement rule table (YAML) extending the built-in one",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the machine-readable diff",
)
@click.option(
    "--fail",
    is_flag=True,
    help="Exit with status 1 when there are differences",
)
@pass_context
def diff(ctx: Context, old: Path, new: Path, rules_path: Path | None, as_json: bool, fail: bool) -> None:
    """
    Compare two template documents.

    OLD is usually the deployed template and NEW a freshly synthesized one.
    Changed resources are classified as updated in place, possibly replaced
    or replaced.

    Examples:

        # Human-readable summary
        infrasynth diff deployed.json infrasynth.out/MyStack.template.json

        # Machine-readable output for a pipeline gate
        infrasynth diff old.yaml new.yaml --json --fail
    """
    from infrasynth.diff import diff_template
    from infrasynth.generators.diff import render_diff
    from infrasynth.loader import load_template

    ctx.rules_path = rules_path
    try:
        old_template = load_template(old)
        new_template = load_template(new)
        result = diff_template(old_template, new_template, ctx.rules)
    except InfrasynthError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        render_diff(result, console)

    if fail and not result.is_empty:
        raise SystemExit(1)
