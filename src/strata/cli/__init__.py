"""
Strata CLI.

- stack.py: plan, synth and describe commands
"""

from __future__ import annotations

import logging

import typer

from strata._version import get_version
from strata.cli.stack import stack_describe, stack_plan, stack_synth

app = typer.Typer(
    help="Strata - compose layered AWS infrastructure and synthesize it as a CDK app",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Show debug logging",
    ),
) -> None:
    """Strata CLI main callback for global options."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


app.command(name="plan")(stack_plan)
app.command(name="synth")(stack_synth)
app.command(name="describe")(stack_describe)


@app.command(name="version")
def version() -> None:
    """Show the Strata version."""
    typer.echo(f"strata {get_version()}")


def main() -> None:
    app()


__all__ = ["app", "main", "get_version"]
