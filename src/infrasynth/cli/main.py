"""Main CLI entry point for infrasynth."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler

from infrasynth import __version__
from infrasynth.core.config import SynthConfig

console = Console()

# Default paths (can be overridden)
DEFAULT_OUTPUT = "infrasynth.out"


class Context:
    """CLI context object passed to commands."""

    def __init__(self) -> None:
        self.verbose: bool = False
        self.max_resolve_depth: int = SynthConfig().max_resolve_depth
        self.path_metadata: bool = False
        self.rules_path: Path | None = None
        self._rules: Any = None

    @property
    def config(self) -> SynthConfig:
        return SynthConfig(
            max_resolve_depth=self.max_resolve_depth,
            path_metadata=self.path_metadata,
        )

    @property
    def rules(self) -> Any:
        """Lazy-load the replacement rule table."""
        if self._rules is None:
            from infrasynth.diff.rules import ReplacementRules

            rules = ReplacementRules.default()
            if self.rules_path:
                if not self.rules_path.exists():
                    raise click.ClickException(f"Rule table not found: {self.rules_path}")
                rules = rules.merged(ReplacementRules.load(self.rules_path))
            self._rules = rules
        return self._rules


pass_context = click.make_pass_decorator(Context, ensure=True)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="infrasynth")
@click.option(
    "--max-resolve-depth",
    type=click.IntRange(min=1),
    default=SynthConfig().max_resolve_depth,
    envvar="INFRASYNTH_MAX_RESOLVE_DEPTH",
    show_default=True,
    help="Maximum nesting of token resolutions",
)
@click.option(
    "--path-metadata/--no-path-metadata",
    default=False,
    envvar="INFRASYNTH_PATH_METADATA",
    help="Record each resource's construct path in its Metadata",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@pass_context
def cli(
    ctx: Context,
    max_resolve_depth: int,
    path_metadata: bool,
    verbose: bool,
) -> None:
    """
    Infrasynth - Infrastructure templates from construct trees.

    Synthesize templates from a construct app, and diff template
    revisions to see which changes replace resources.
    """
    ctx.max_resolve_depth = max_resolve_depth
    ctx.path_metadata = path_metadata
    ctx.verbose = verbose
    setup_logging(verbose)


# Import and register subcommands
from infrasynth.cli.diagram import diagram
from infrasynth.cli.diff import diff
from infrasynth.cli.synth import ls, synth
from infrasynth.cli.validate import validate

cli.add_command(diagram)
cli.add_command(diff)
cli.add_command(ls)
cli.add_command(synth)
cli.add_command(validate)


if __name__ == "__main__":
    cli()
