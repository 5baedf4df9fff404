"""Command line interface for azbulk.

Commands:
- delete / deallocate / hibernate / start: bulk actions on many VMs
- list-vms: print VM resource ids from a resource group or fleet
- register-provider: register Microsoft.ComputeSchedule
- config show / config init: inspect and write ~/.azbulk/config.toml

Exit codes: 0 all VMs succeeded, 1 fatal error, 2 usage error,
3 some VMs did not succeed.
"""

import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
from rich.console import Console

from azbulk import __version__
from azbulk.clients import AzureClientContext
from azbulk.config_manager import AUTH_METHODS, BulkConfig, ConfigManager
from azbulk.credential_factory import CredentialFactoryError
from azbulk.display import ResultDisplay
from azbulk.errors import BulkOpsError
from azbulk.inventory import COMPUTE_SCHEDULE_NAMESPACE, InventoryError, VMInventory, read_ids_file
from azbulk.models import ActionConfig, ActionType, OrchestrationResult
from azbulk.orchestrator import BulkOrchestrator
from azbulk.schedule_client import ScheduledActionsService

logger = logging.getLogger(__name__)

EXIT_PARTIAL_FAILURE = 3

FATAL_ERRORS = (BulkOpsError, CredentialFactoryError, InventoryError)


@click.group(name="azbulk")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="azbulk")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """azbulk - bulk VM lifecycle actions on Azure.

    Splits a list of VMs into batches, submits one scheduled-actions
    request per batch in parallel, and waits for every batch to finish.

    \b
    EXAMPLES:
        azbulk delete --rg my-rg --fleet BA-1K-VMs --force
        azbulk delete --rg my-rg --all --fraction 0.5
        azbulk deallocate --ids-file vms.txt --batch-size 50
        azbulk list-vms --rg my-rg > vms.txt

    \b
    CONFIGURATION:
        Config file: ~/.azbulk/config.toml
        Set defaults: subscription_id, location, resource_group, batch_size
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _connection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option("--subscription", help="Azure subscription id", type=str),
        click.option("--location", help="Azure region of the VMs", type=str),
        click.option("--resource-group", "--rg", "resource_group", help="Resource group", type=str),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _action_options(func: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option("--ids-file", type=click.Path(exists=True, dir_okay=False),
                     help="File with one VM resource id per line"),
        click.option("--fleet", help="Select VMs created by this compute fleet", type=str),
        click.option("--all", "select_all", is_flag=True, help="Select all VMs in resource group"),
        click.option("--fraction", type=click.FloatRange(0.0, 1.0, min_open=True),
                     help="Act on only the first fraction of the selected VMs"),
        click.option("--batch-size", type=click.IntRange(min=1), help="VMs per request (default: 100)"),
        click.option("--poll-interval", type=click.FloatRange(min=0, min_open=True),
                     help="Seconds between status polls (default: 30)"),
        click.option("--timeout", type=click.FloatRange(min=0, min_open=True),
                     help="Overall deadline in seconds (default: 3600)"),
        click.option("--max-workers", type=click.IntRange(min=1), help="Maximum parallel batches"),
        click.option("--retry-count", type=click.IntRange(min=0), help="Service-side retry count"),
        click.option("--retry-window", type=click.IntRange(min=1),
                     help="Service-side retry window in minutes"),
        click.option("--register-provider", is_flag=True,
                     help=f"Register {COMPUTE_SCHEDULE_NAMESPACE} before submitting"),
        click.option("--output-failed", type=click.Path(dir_okay=False),
                     help="Write ids of VMs that did not succeed to this file"),
        click.option("--confirm", is_flag=True, help="Skip confirmation prompt"),
    ]
    for option in reversed(options):
        func = option(func)
    return _connection_options(func)


def _load_config(ctx: click.Context, **cli_values: Any) -> BulkConfig:
    config = ConfigManager.resolve((ctx.obj or {}).get("config_path"), **cli_values)
    config.validate()
    return config


def _select_vm_ids(
    inventory: VMInventory,
    config: BulkConfig,
    ids_file: str | None,
    fleet: str | None,
    select_all: bool,
) -> tuple[list[str], str]:
    """Resolve the VM ids to act on and describe the selection.

    Raises:
        click.UsageError: If not exactly one selection option is given
    """
    selected = [bool(ids_file), bool(fleet), select_all]
    if sum(selected) != 1:
        raise click.UsageError("Specify exactly one of --ids-file, --fleet, or --all")

    if ids_file:
        return read_ids_file(ids_file), f"ids file {ids_file}"

    if not config.resource_group:
        raise click.UsageError("--fleet and --all require a resource group (--rg)")

    if fleet:
        return inventory.list_vms_in_fleet(config.resource_group, fleet), f"fleet {fleet}"

    return (
        inventory.list_vms_in_resource_group(config.resource_group),
        f"resource group {config.resource_group}",
    )


def _write_failed_ids(path: str, result: OrchestrationResult) -> None:
    Path(path).write_text("".join(f"{rid}\n" for rid in result.failed_ids))
    click.echo(f"Wrote {len(result.failed_ids)} id(s) to {path}")


def _run_action(ctx: click.Context, action: ActionType, force: bool, **options: Any) -> None:
    try:
        config = _load_config(
            ctx,
            subscription_id=options["subscription"],
            location=options["location"],
            resource_group=options["resource_group"],
            batch_size=options["batch_size"],
            poll_interval=options["poll_interval"],
            timeout=options["timeout"],
            max_workers=options["max_workers"],
        )
        action_config = ActionConfig(
            action=action,
            force=force,
            retry_count=options["retry_count"],
            retry_window_minutes=options["retry_window"],
        )

        context = AzureClientContext(config)
        inventory = VMInventory.from_context(context)

        vm_ids, selection_desc = _select_vm_ids(
            inventory, config, options["ids_file"], options["fleet"], options["select_all"]
        )
        if options["fraction"] is not None:
            vm_ids = vm_ids[: int(len(vm_ids) * options["fraction"])]

        if not vm_ids:
            click.echo(f"No VMs found in {selection_desc}.")
            return

        click.echo(
            f"Selected {len(vm_ids)} VM(s) from {selection_desc} "
            f"({config.location}, batches of {config.batch_size})"
        )
        if not options["confirm"] and not click.confirm(
            f"{action.value.capitalize()} {len(vm_ids)} VM(s)?", default=False
        ):
            click.echo("Cancelled.")
            return

        if options["register_provider"]:
            inventory.register_provider()

        service = ScheduledActionsService(context.schedule_client, config.location)
        orchestrator = BulkOrchestrator(config, service, service)
        result = orchestrator.execute(vm_ids, action_config, progress_callback=click.echo)

    except FATAL_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    ResultDisplay(Console()).show(result)

    if options["output_failed"] and result.failed_ids:
        _write_failed_ids(options["output_failed"], result)

    if not result.succeeded:
        sys.exit(EXIT_PARTIAL_FAILURE)


@main.command(name="delete")
@_action_options
@click.option("--force/--no-force", default=True, help="Force deletion (default: yes)")
@click.pass_context
def delete_command(ctx: click.Context, force: bool, **options: Any) -> None:
    """Bulk delete VMs.

    \b
    Examples:
        azbulk delete --rg my-rg --fleet BA-1K-VMs
        azbulk delete --ids-file failed.txt --confirm
    """
    _run_action(ctx, ActionType.DELETE, force, **options)


@main.command(name="deallocate")
@_action_options
@click.pass_context
def deallocate_command(ctx: click.Context, **options: Any) -> None:
    """Bulk deallocate VMs."""
    _run_action(ctx, ActionType.DEALLOCATE, False, **options)


@main.command(name="hibernate")
@_action_options
@click.pass_context
def hibernate_command(ctx: click.Context, **options: Any) -> None:
    """Bulk hibernate VMs."""
    _run_action(ctx, ActionType.HIBERNATE, False, **options)


@main.command(name="start")
@_action_options
@click.pass_context
def start_command(ctx: click.Context, **options: Any) -> None:
    """Bulk start VMs."""
    _run_action(ctx, ActionType.START, False, **options)


@main.command(name="list-vms")
@_connection_options
@click.option("--fleet", help="List VMs created by this compute fleet", type=str)
@click.pass_context
def list_vms_command(
    ctx: click.Context,
    subscription: str | None,
    location: str | None,
    resource_group: str | None,
    fleet: str | None,
) -> None:
    """Print VM resource ids, one per line.

    The output can be fed back with --ids-file.
    """
    try:
        config = _load_config(
            ctx, subscription_id=subscription, location=location, resource_group=resource_group
        )
        if not config.resource_group:
            raise click.UsageError("No resource group specified (--rg)")

        inventory = VMInventory.from_context(AzureClientContext(config))
        if fleet:
            vm_ids = inventory.list_vms_in_fleet(config.resource_group, fleet)
        else:
            vm_ids = inventory.list_vms_in_resource_group(config.resource_group)
    except FATAL_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for vm_id in vm_ids:
        click.echo(vm_id)


@main.command(name="register-provider")
@_connection_options
@click.option("--no-wait", is_flag=True, help="Return without waiting for registration")
@click.pass_context
def register_provider_command(
    ctx: click.Context,
    subscription: str | None,
    location: str | None,
    resource_group: str | None,
    no_wait: bool,
) -> None:
    """Register the subscription with Microsoft.ComputeSchedule."""
    try:
        config = _load_config(
            ctx, subscription_id=subscription, location=location, resource_group=resource_group
        )
        state = VMInventory.from_context(AzureClientContext(config)).register_provider(
            wait=not no_wait
        )
    except FATAL_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"{COMPUTE_SCHEDULE_NAMESPACE}: {state}")


@main.group(name="config")
def config_group() -> None:
    """Inspect and write the azbulk config file."""
    pass


@config_group.command(name="show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration (file + environment)."""
    try:
        config = ConfigManager.apply_env_overrides(
            ConfigManager.load_config(ctx.obj.get("config_path"))
        )
    except BulkOpsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for key, value in config.to_dict().items():
        click.echo(f"{key} = {value}")


@config_group.command(name="init")
@click.option("--subscription", prompt="Subscription id", help="Azure subscription id")
@click.option("--location", prompt="Location", help="Azure region of the VMs")
@click.option("--resource-group", "--rg", "resource_group", default="", help="Default resource group")
@click.option("--auth-method", type=click.Choice(AUTH_METHODS), default="default",
              help="Credential type (default: DefaultAzureCredential chain)")
@click.pass_context
def config_init(
    ctx: click.Context,
    subscription: str,
    location: str,
    resource_group: str,
    auth_method: str,
) -> None:
    """Write subscription, location and defaults to the config file."""
    config_path = ctx.obj.get("config_path")
    try:
        if config_path and not Path(config_path).expanduser().exists():
            config = BulkConfig()
        else:
            config = ConfigManager.load_config(config_path)
        config = config.merged(
            subscription_id=subscription,
            location=location,
            resource_group=resource_group or None,
            auth_method=auth_method,
        )
        config.validate()
        written = ConfigManager.save_config(config, config_path)
    except BulkOpsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Saved configuration to {written}")


if __name__ == "__main__":
    main()
