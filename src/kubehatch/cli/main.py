"""Main CLI entry point for kubehatch."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click
from rich.console import Console

from kubehatch import __version__

if TYPE_CHECKING:
    from kubehatch.core.config import KubehatchConfig
    from kubehatch.provisioning.services import HostServices

console = Console()


class HatchContext:
    """Shared context for CLI commands with lazy initialization."""

    def __init__(self, config_path: str | None, kubeconfig: str | None):
        """Initialize context.

        Args:
            config_path: Path to configuration file (defaults apply when None)
            kubeconfig: Host kubeconfig override
        """
        self.config_path = config_path
        self.kubeconfig = kubeconfig
        self._config: KubehatchConfig | None = None

    @property
    def config(self) -> KubehatchConfig:
        """Get or create config lazily."""
        if self._config is None:
            from kubehatch.core.config import KubehatchConfig

            if self.config_path:
                self._config = KubehatchConfig.from_file(self.config_path)
            else:
                self._config = KubehatchConfig()
        return self._config

    def services(self, read_path: bool = True) -> HostServices:
        """Build host services for the selected kubeconfig."""
        from kubehatch.provisioning.services import HostServices, resolve_credentials_path

        credentials_path = resolve_credentials_path(
            self.config, uploaded=self.kubeconfig, read_path=read_path
        )
        return HostServices(self.config, credentials_path)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to configuration file",
)
@click.option(
    "--kubeconfig",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Host cluster kubeconfig",
)
@click.pass_context
def cli(ctx: click.Context, config: str | None, kubeconfig: str | None) -> None:
    """kubehatch - provision virtual Kubernetes clusters."""
    from kubehatch.utils.logging import setup_logging

    ctx.obj = HatchContext(config_path=config, kubeconfig=kubeconfig)
    logging_config = ctx.obj.config.logging
    setup_logging(
        level=logging_config.level,
        format=logging_config.format,
        output=logging_config.output,
    )


@cli.command()
@click.option("--host", default=None, help="Bind address (overrides config)")
@click.option("--port", type=int, default=None, help="Bind port (overrides config)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API."""
    import uvicorn

    from kubehatch.api.app import create_app

    config = ctx.obj.config
    bind_host = host or config.server.host
    bind_port = port or config.server.port

    console.print(f"[bold cyan]kubehatch v{__version__}[/bold cyan]")
    console.print(f"Listening on {bind_host}:{bind_port}\n")

    uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_config=None)


@cli.command()
@click.argument("name")
@click.option("--ha", is_flag=True, help="Run three control-plane replicas")
@click.option("--loadbalancer", is_flag=True, help="Expose through a LoadBalancer service")
@click.option("--owner", default="default", help="Identity recorded as the owner")
@click.pass_context
def create(ctx: click.Context, name: str, ha: bool, loadbalancer: bool, owner: str) -> None:
    """Create a virtual cluster and print where its kubeconfig was written."""
    from pydantic import ValidationError

    from kubehatch.core.exceptions import ProvisioningError
    from kubehatch.core.models import VirtualClusterSpec
    from kubehatch.provisioning.orchestrator import new_request

    try:
        spec = VirtualClusterSpec.from_flags(name, ha, loadbalancer)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="NAME") from e

    config = ctx.obj.config
    request = new_request(config.paths.requests_dir)

    console.print(f"[bold]Creating virtual cluster: {spec.name}[/bold]")
    console.print(f"HA: {spec.high_availability}")
    console.print(f"LoadBalancer: {spec.expose_externally}")
    console.print(f"Request: {request.request_id}\n")

    try:
        result = ctx.obj.services(read_path=False).orchestrator.provision(spec, request, owner)
    except ProvisioningError as e:
        console.print(f"[red]✗ {e.stage}: {e}[/red]")
        if e.output:
            console.print(e.output.decode(errors="replace"), markup=False, highlight=False)
        raise SystemExit(1) from e

    console.print("[green]✓ Virtual cluster ready[/green]")
    console.print(f"Kubeconfig: {result.kubeconfig_path}")
    if not result.owner_tagged:
        console.print("[yellow]Owner annotation could not be set[/yellow]")


@cli.command(name="list")
@click.option("--user", default="default", help="Identity to list clusters for")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def list_clusters(ctx: click.Context, user: str, format: str) -> None:
    """List virtual clusters and their status."""
    import json

    from rich.table import Table

    records = ctx.obj.services().inventory.list(user)

    if not records:
        console.print("[yellow]No virtual clusters found[/yellow]")
        return

    if format == "json":
        print(json.dumps([r.to_api() for r in records], indent=2))
        return

    table = Table(title=f"Virtual clusters ({len(records)} total)")
    table.add_column("Name", style="cyan")
    table.add_column("Namespace", style="magenta")
    table.add_column("Status", style="bold")
    table.add_column("HA")
    table.add_column("Endpoint", style="green")
    table.add_column("Owner", style="blue")
    table.add_column("Created")

    for record in records:
        status_color = "green" if record.status == "Running" else "yellow"
        table.add_row(
            record.name,
            record.namespace,
            f"[{status_color}]{record.status}[/{status_color}]",
            "yes" if record.high_availability else "no",
            record.endpoint or "-",
            record.owner or "-",
            record.created_at.isoformat(),
        )

    console.print(table)


@cli.command()
@click.argument("name")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write to a file instead of stdout",
)
@click.pass_context
def kubeconfig(ctx: click.Context, name: str, output: str | None) -> None:
    """Fetch live credentials for a virtual cluster."""
    from pathlib import Path

    from kubehatch.core.exceptions import ProvisioningTimeoutError, SubprocessFailureError
    from kubehatch.core.models import namespace_for

    retriever = ctx.obj.services().retriever(read_path=True)
    try:
        document = retriever.fetch_live(name, namespace_for(name))
    except (ProvisioningTimeoutError, SubprocessFailureError) as e:
        console.print(f"[red]✗ Kubeconfig unavailable: {e}[/red]")
        raise SystemExit(1) from e

    if output:
        Path(output).write_bytes(document)
        console.print(f"[green]✓ Kubeconfig written to {output}[/green]")
    else:
        click.echo(document.decode(errors="replace"), nl=False)


@cli.command()
@click.argument("name")
@click.option(
    "--external",
    is_flag=True,
    help="Wait for the load-balancer address instead of the ClusterIP",
)
@click.pass_context
def endpoint(ctx: click.Context, name: str, external: bool) -> None:
    """Print the API server address of a virtual cluster."""
    from kubehatch.core.exceptions import EndpointUnavailableError, ProvisioningTimeoutError
    from kubehatch.core.models import namespace_for
    from kubehatch.provisioning.endpoint import ResolutionMode

    mode = ResolutionMode.EXTERNAL if external else ResolutionMode.INTERNAL
    try:
        resolved = ctx.obj.services().resolver.resolve(namespace_for(name), name, mode)
    except (EndpointUnavailableError, ProvisioningTimeoutError) as e:
        console.print(f"[red]✗ Endpoint unavailable: {e}[/red]")
        raise SystemExit(1) from e

    click.echo(resolved.uri)


@cli.command()
@click.argument("name")
@click.confirmation_option(prompt="Delete the virtual cluster and its namespace?")
@click.pass_context
def delete(ctx: click.Context, name: str) -> None:
    """Tear down a virtual cluster and its namespace."""
    from kubehatch.core.exceptions import SubprocessFailureError

    try:
        ctx.obj.services().orchestrator.teardown(name)
    except SubprocessFailureError as e:
        console.print(f"[red]✗ Delete failed: {e}[/red]")
        raise SystemExit(1) from e

    console.print(f"[green]✓ Deleted virtual cluster {name}[/green]")


if __name__ == "__main__":
    cli()
