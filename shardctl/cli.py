"""Shardctl CLI - command line interface for sharded database clusters."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
import structlog
from rich.console import Console
from rich.table import Table

from shardctl import __version__
from shardctl.core.adapters.memory_adapter import InMemoryControlPlaneAdapter
from shardctl.core.adapters.rest_adapter import RestControlPlaneAdapter
from shardctl.core.domain.context import ClusterContext, TimeoutPolicy
from shardctl.core.domain.errors import ClusterCreateError, ShardctlError
from shardctl.core.domain.models import ClusterState, ClusterStatus
from shardctl.core.domain.services.lifecycle import ClusterLifecycleService, declared_state
from shardctl.core.domain.services.sequencer import ChangePlan
from shardctl.core.domain.services.spec_loader import SpecLoader
from shardctl.core.ports.outbound.control_plane import ControlPlaneSettings, IControlPlanePort

console = Console()

LOG_LEVELS = ["debug", "info", "warning", "error"]


def configure_logging(level: str) -> None:
    """Route structlog output to stderr, filtered at `level`."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _client(options: dict[str, Any]) -> IControlPlanePort:
    if options["simulate"]:
        return InMemoryControlPlaneAdapter(settle_polls=1)

    settings = ControlPlaneSettings.from_env(
        endpoint=options["endpoint"],
        token=options["token"],
        region=options["region"],
    )
    if not settings.endpoint:
        raise click.UsageError("No control plane endpoint. Set SHARDCTL_ENDPOINT or --endpoint")
    return RestControlPlaneAdapter(settings)


def _timeouts(options: dict[str, Any]) -> TimeoutPolicy:
    if options["simulate"]:
        return TimeoutPolicy(delay=0.0, min_interval=0.0, max_interval=0.0)
    timeout = options["timeout"]
    return TimeoutPolicy(create=timeout, delete=timeout, update=timeout)


def _run(options: dict[str, Any], work: Callable[[ClusterContext], Awaitable[Any]]) -> Any:
    """Run `work` with a fresh context, closing the client afterwards."""

    async def run() -> Any:
        context = ClusterContext(
            client=_client(options),
            region=options["region"],
            timeouts=_timeouts(options),
        )
        try:
            return await work(context)
        finally:
            await context.client.close()

    try:
        return asyncio.run(run())
    except ShardctlError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted. Remote operations keep running; run show to re-read.[/yellow]")
        sys.exit(130)


def _load(loader_method: Callable[..., Any], path: str) -> Any:
    try:
        return loader_method(path)
    except (ShardctlError, ValueError) as e:
        console.print(f"[red]Error:[/red] Cannot load {path}: {e}")
        sys.exit(1)


def print_state(state: ClusterState) -> None:
    """Print cluster attributes and a shard table."""
    console.print(f"[bold]Cluster:[/bold] {state.name} ({state.cluster_id})")
    console.print(f"  Status: {state.status.value}")
    console.print(f"  Datastore: {state.datastore.type} {state.datastore.version}")
    if state.configuration_id:
        console.print(f"  Configuration: {state.configuration_id}")

    table = Table(title="Shards")
    table.add_column("Shard", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Flavor")
    table.add_column("Volume")
    table.add_column("Instances", style="green")

    for shard in state.shards:
        volume = f"{shard.volume_size or '-'} GB {shard.volume_type or ''}".strip()
        instances = ", ".join(
            f"{i.instance_id} ({', '.join(i.ips)})" if i.ips else i.instance_id
            for i in shard.instances
        )
        table.add_row(shard.shard_id, str(shard.size), shard.flavor_id or "-", volume, instances)

    console.print(table)


def print_plan(plan: ChangePlan) -> None:
    """Print replacement fields and ordered update actions."""
    if plan.is_empty():
        console.print("[green]No changes.[/green]")
        return

    if plan.requires_replace:
        console.print("[bold red]Cluster must be re-created:[/bold red]")
        for name in plan.replace_fields:
            console.print(f"  - {name}")
        return

    table = Table(title="Update Actions")
    table.add_column("#", justify="right")
    table.add_column("Action", style="cyan")
    table.add_column("Shard", style="green")
    for index, action in enumerate(plan.actions, start=1):
        table.add_row(str(index), action.kind.value, action.shard_id or "-")
    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="shardctl")
@click.option("--endpoint", default=None, help="Control plane URL (SHARDCTL_ENDPOINT)")
@click.option("--token", default=None, help="Auth token (SHARDCTL_TOKEN)")
@click.option("--region", default=None, help="Region (SHARDCTL_REGION)")
@click.option("--timeout", default=30 * 60.0, type=float, help="Timeout per operation, seconds")
@click.option("--simulate", is_flag=True, help="Use the in-memory control plane")
@click.option("--log-level", type=click.Choice(LOG_LEVELS), default="warning")
@click.pass_context
def main(
    ctx: click.Context,
    endpoint: Optional[str],
    token: Optional[str],
    region: Optional[str],
    timeout: float,
    simulate: bool,
    log_level: str,
) -> None:
    """Shardctl - lifecycle management of sharded database clusters."""
    configure_logging(log_level)
    ctx.obj = {
        "endpoint": endpoint,
        "token": token,
        "region": region,
        "timeout": timeout,
        "simulate": simulate,
    }


@main.command()
@click.argument("state_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False))
def plan(state_file: str, spec_file: str) -> None:
    """Show what applying SPEC_FILE to the cluster in STATE_FILE would do."""
    loader = SpecLoader()
    previous = _load(loader.load_state, state_file)
    spec = _load(loader.load_spec, spec_file)
    try:
        change = ClusterLifecycleService().plan(previous, spec)
    except ShardctlError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    print_plan(change)


@main.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--state", "state_file", required=True, type=click.Path(dir_okay=False))
@click.option("--allow-replace", is_flag=True, help="Re-create the cluster if immutable fields changed")
@click.pass_obj
def apply(options: dict[str, Any], spec_file: str, state_file: str, allow_replace: bool) -> None:
    """Create or update the cluster declared in SPEC_FILE."""
    loader = SpecLoader()
    spec = _load(loader.load_spec, spec_file)
    previous = _load(loader.load_state, state_file) if Path(state_file).exists() else None
    service = ClusterLifecycleService()

    async def create(context: ClusterContext) -> ClusterState:
        try:
            return await service.create(context, spec)
        except ClusterCreateError as e:
            # The cluster exists remotely; keep its id so show or destroy can reach it
            failed = declared_state(e.cluster_id, spec, context.region)
            loader.save_state(failed.model_copy(update={"status": ClusterStatus.ERROR}), state_file)
            console.print(f"[yellow]Cluster {e.cluster_id} recorded in {state_file}[/yellow]")
            raise

    async def work(context: ClusterContext) -> ClusterState:
        if previous is None:
            console.print(f"[bold green]Creating cluster:[/bold green] {spec.name}")
            return await create(context)

        change = service.plan(previous, spec)
        if change.requires_replace:
            if not allow_replace:
                raise ShardctlError(
                    "Immutable fields changed: "
                    f"{', '.join(change.replace_fields)}. Use --allow-replace to re-create"
                )
            console.print(f"[yellow]Re-creating cluster:[/yellow] {previous.cluster_id}")
            await service.delete(context, previous.cluster_id)
            return await create(context)

        print_plan(change)
        return await service.update(context, previous, spec)

    state = _run(options, work)
    loader.save_state(state, state_file)
    print_state(state)


@main.command()
@click.option("--state", "state_file", required=True, type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def show(options: dict[str, Any], state_file: str) -> None:
    """Re-read the cluster and refresh STATE_FILE."""
    loader = SpecLoader()
    previous = _load(loader.load_state, state_file)
    service = ClusterLifecycleService()

    state = _run(options, lambda context: service.read(context, previous.cluster_id, previous))
    if state is None:
        console.print(f"[yellow]Cluster {previous.cluster_id} is gone.[/yellow]")
        if not options["simulate"]:
            Path(state_file).unlink()
        return

    loader.save_state(state, state_file)
    print_state(state)


@main.command()
@click.option("--state", "state_file", required=True, type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def destroy(options: dict[str, Any], state_file: str) -> None:
    """Delete the cluster recorded in STATE_FILE."""
    loader = SpecLoader()
    previous = _load(loader.load_state, state_file)
    service = ClusterLifecycleService()

    console.print(f"[bold red]Deleting cluster:[/bold red] {previous.cluster_id}")
    _run(options, lambda context: service.delete(context, previous.cluster_id))
    if not options["simulate"]:
        Path(state_file).unlink()
    console.print("[green]Deleted.[/green]")


@main.command("import")
@click.argument("cluster_id")
@click.option("--state", "state_file", required=True, type=click.Path(dir_okay=False))
@click.pass_obj
def import_cluster(options: dict[str, Any], cluster_id: str, state_file: str) -> None:
    """Import an existing cluster into STATE_FILE."""
    loader = SpecLoader()
    service = ClusterLifecycleService()

    state = _run(options, lambda context: service.import_cluster(context, cluster_id))
    loader.save_state(state, state_file)
    print_state(state)


@main.command()
def info() -> None:
    """Show shardctl information."""
    table = Table(title="Shardctl Info")
    table.add_column("Component", style="cyan")
    table.add_column("Description", style="white")

    table.add_row("Version", __version__)
    table.add_row("Python", sys.version.split()[0])
    table.add_row("Architecture", "Hexagonal (Ports & Adapters)")
    table.add_row("Datastores", "clickhouse")
    table.add_row("Control plane", "REST (aiohttp) or in-memory simulation")

    console.print(table)


if __name__ == "__main__":
    main()
