"""
Stack commands for the Strata CLI.

Commands for composing a stack from strata.toml, previewing it, and
synthesizing it into a standalone AWS CDK app.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from strata.errors import ConfigurationError, StrataError

if TYPE_CHECKING:
    from strata.collaborators import Collaborators, SecretStore
    from strata.composer import ComposedStack
    from strata.config import StackConfig

console = Console()

CONFIG_FILE = "strata.toml"


ProjectOption = Annotated[
    Path,
    typer.Option(
        "--project",
        "-p",
        help="Project directory containing strata.toml and the application",
        exists=True,
        file_okay=False,
        dir_okay=True,
    ),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Configuration file (default: <project>/strata.toml)",
    ),
]
SecretsOption = Annotated[
    Path | None,
    typer.Option(
        "--secrets-file",
        help="TOML file with a [secrets] table of path = value (default: environment)",
    ),
]


def _load_secret_store(secrets_file: Path | None) -> SecretStore:
    """Secrets from a TOML file when given, otherwise from STRATA_SECRET_* variables."""
    from strata.collaborators import EnvironmentSecretStore, MappingSecretStore

    if secrets_file is None:
        return EnvironmentSecretStore()

    if not secrets_file.exists():
        raise ConfigurationError(f"Secrets file not found: {secrets_file}")
    try:
        with open(secrets_file, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {secrets_file}: {e}") from e

    table = data.get("secrets")
    if not isinstance(table, dict):
        raise ConfigurationError(f"No [secrets] table in {secrets_file}")
    return MappingSecretStore({str(k): str(v) for k, v in table.items()})


def _build_collaborators(
    config: StackConfig, project_dir: Path, secrets_file: Path | None
) -> Collaborators:
    from strata.collaborators import (
        Collaborators,
        DirectoryImageBuilder,
        StaticCertificateIssuer,
    )

    return Collaborators(
        secrets=_load_secret_store(secrets_file),
        images=DirectoryImageBuilder(config.image_registry, config.image_repository),
        certificates=StaticCertificateIssuer(config.dns.hosted_zones),
        project_root=project_dir,
    )


def _compose(
    project_dir: Path, config_path: Path | None, secrets_file: Path | None
) -> tuple[StackConfig, ComposedStack]:
    """Load configuration and compose the stack, exiting 1 on any Strata error."""
    from strata.composer import StackComposer
    from strata.config import load_stack_config

    try:
        config = load_stack_config(config_path or project_dir / CONFIG_FILE)
        collaborators = _build_collaborators(config, project_dir, secrets_file)
        stack = StackComposer(config, collaborators).compose()
    except StrataError as e:
        console.print(f"[red]Error ({type(e).__name__}):[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    return config, stack


def stack_plan(
    project_dir: ProjectOption = Path("."),
    config_path: ConfigOption = None,
    secrets_file: SecretsOption = None,
) -> None:
    """
    Preview the composed stack without writing anything.

    Shows the network layout, data endpoints and service binding.
    """
    from strata.synth import CDKSynthesizer

    console.print("\n[bold]Strata[/bold] - Stack Plan\n")

    with console.status("Composing layers..."):
        config, stack = _compose(project_dir, config_path, secrets_file)

    plan = CDKSynthesizer(stack, config, project_dir).plan()

    console.print(f"  Stack: [cyan]{plan['stack_name']}[/cyan]")
    console.print(f"  Region: [blue]{plan['region']}[/blue]")
    console.print(f"  Resources: {plan['resources']} ({plan['edges']} explicit edges)")
    console.print()

    network = plan["network"]
    subnets = Table(title=f"Network {network['cidr']}")
    subnets.add_column("Segment", style="cyan")
    subnets.add_column("Zone")
    subnets.add_column("CIDR", style="green")
    for subnet in stack.network.vpc.subnets:
        subnets.add_row(subnet.segment, subnet.zone, subnet.cidr)
    console.print(subnets)
    console.print()

    data = plan["data"]
    console.print("[bold]Data:[/bold]")
    console.print(f"  Database URL: {escape(data['db_url'])}")
    console.print(f"  Redis host: {escape(data['redis_host'])}")
    console.print()

    service = plan["service"]
    console.print("[bold]Service:[/bold]")
    console.print(f"  Domain: https://{service['domain_name']}")
    console.print(f"  Repository: {service['repo_name']}")
    console.print(f"  Container: {service['container_name']}")
    console.print()

    console.print("[bold]Layers:[/bold]")
    for layer in plan["layers"]:
        console.print(f"  - {layer}")


def stack_synth(
    project_dir: ProjectOption = Path("."),
    config_path: ConfigOption = None,
    secrets_file: SecretsOption = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output directory for the generated CDK app",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Preview what would be generated without writing files",
        ),
    ] = False,
) -> None:
    """
    Synthesize the composed stack into a standalone AWS CDK app.

    Example:
        strata synth --project ./my-app
        cd my-app/infra && cdk deploy
    """
    from strata.synth import CDKSynthesizer

    console.print("\n[bold]Strata[/bold] - Synthesizing AWS CDK app\n")

    with console.status("Composing layers..."):
        config, stack = _compose(project_dir, config_path, secrets_file)

    if output:
        config.synth.directory = str(output)

    synthesizer = CDKSynthesizer(stack, config, project_dir)

    if dry_run:
        console.print("[yellow]DRY RUN - No files will be written[/yellow]\n")
        result = synthesizer.run(dry_run=True)

        console.print("[bold]Would generate:[/bold]")
        for f in result.artifacts.get("estimated_files", []):
            console.print(f"  - {f}")
        return

    with console.status("Generating CDK code..."):
        result = synthesizer.run()

    if not result.success:
        console.print("\n[red]Synthesis failed:[/red]")
        for error in result.errors:
            console.print(f"  - {escape(error)}")
        raise typer.Exit(1)

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    console.print(
        Panel(
            f"[green]Generated {len(result.files_created)} files[/green]\n\n"
            f"Output: [cyan]{synthesizer.output_dir}[/cyan]\n"
            f"Layers: {', '.join(result.layers_generated)}",
            title="Success",
        )
    )

    console.print("\n[bold]Next steps:[/bold]")
    console.print(f"  1. cd {synthesizer.output_dir}")
    console.print("  2. pip install -r requirements.txt")
    console.print("  3. cdk bootstrap  # First time only")
    console.print("  4. cdk deploy")


def stack_describe(
    project_dir: ProjectOption = Path("."),
    config_path: ConfigOption = None,
    secrets_file: SecretsOption = None,
) -> None:
    """Print the composed stack as JSON, with secrets masked."""
    _, stack = _compose(project_dir, config_path, secrets_file)
    typer.echo(json.dumps(stack.describe(), indent=2))
