"""Identifier sources and service preconditions.

Where bulk-action input comes from:
- every VM in a resource group
- every VM belonging to a compute fleet
- a text file with one resource id per line

And the one precondition the scheduled actions API has: the subscription
must be registered with the Microsoft.ComputeSchedule resource provider.
"""

import logging
import re
import time
from pathlib import Path
from typing import Any

from azbulk.log_sanitizer import LogSanitizer
from azbulk.retry_handler import retry_with_exponential_backoff

logger = logging.getLogger(__name__)

COMPUTE_SCHEDULE_NAMESPACE = "Microsoft.ComputeSchedule"

VM_ID_PATTERN = re.compile(
    r"^/subscriptions/[^/]+/resourceGroups/[^/]+/providers/"
    r"Microsoft\.Compute/virtualMachines/[^/]+$",
    re.IGNORECASE,
)


class InventoryError(Exception):
    """Raised when VM ids cannot be listed or read."""

    pass


class VMInventory:
    """List VM resource ids and register the scheduled actions provider."""

    def __init__(self, compute_client: Any, fleet_client: Any = None, resource_client: Any = None):
        """Initialize inventory.

        Args:
            compute_client: azure.mgmt.compute.ComputeManagementClient
            fleet_client: azure.mgmt.computefleet.ComputeFleetMgmtClient
            resource_client: azure.mgmt.resource.ResourceManagementClient
        """
        self.compute_client = compute_client
        self.fleet_client = fleet_client
        self.resource_client = resource_client

    @classmethod
    def from_context(cls, context: Any) -> "VMInventory":
        """Build from an AzureClientContext."""
        return cls(context.compute_client, context.fleet_client, context.resource_client)

    def list_vms_in_resource_group(self, resource_group: str) -> list[str]:
        """List ids of every VM in a resource group.

        Raises:
            InventoryError: If listing fails
        """
        ids = self._collect_ids(
            lambda: self.compute_client.virtual_machines.list(resource_group),
            f"resource group {resource_group}",
        )
        logger.info(f"Total VMs found in resource group {resource_group}: {len(ids)}")
        return ids

    def list_vms_in_fleet(self, resource_group: str, fleet_name: str) -> list[str]:
        """List ids of every VM created by a compute fleet.

        Raises:
            InventoryError: If listing fails or no fleet client is configured
        """
        if self.fleet_client is None:
            raise InventoryError("Listing fleet VMs requires a Compute Fleet client")

        ids = self._collect_ids(
            lambda: self.fleet_client.fleets.list_virtual_machines(resource_group, fleet_name),
            f"fleet {fleet_name}",
        )
        logger.info(f"Total VMs found in fleet {fleet_name}: {len(ids)}")
        return ids

    @staticmethod
    @retry_with_exponential_backoff(max_attempts=3)
    def _list_with_retry(pager_factory: Any) -> list[str]:
        # Re-create the pager on each attempt so a retry restarts from page one
        return [vm.id for vm in pager_factory() if getattr(vm, "id", None)]

    def _collect_ids(self, pager_factory: Any, source: str) -> list[str]:
        try:
            return self._list_with_retry(pager_factory)
        except Exception as e:
            raise InventoryError(
                LogSanitizer.create_safe_error_message(e, f"Failed to list VMs in {source}")
            ) from e

    def register_provider(
        self,
        namespace: str = COMPUTE_SCHEDULE_NAMESPACE,
        wait: bool = True,
        timeout: float = 300.0,
        poll_interval: float = 10.0,
    ) -> str:
        """Register the subscription with a resource provider.

        Args:
            namespace: Resource provider namespace
            wait: Poll until the registration state is "Registered"
            timeout: Seconds to wait for registration
            poll_interval: Seconds between registration checks

        Returns:
            Last observed registration state

        Raises:
            InventoryError: If registration fails or does not finish in time
        """
        if self.resource_client is None:
            raise InventoryError("Provider registration requires a Resource Management client")

        providers = self.resource_client.providers
        try:
            provider = retry_with_exponential_backoff(max_attempts=3)(providers.register)(namespace)
        except Exception as e:
            raise InventoryError(
                LogSanitizer.create_safe_error_message(e, f"Failed to register {namespace}")
            ) from e

        state = getattr(provider, "registration_state", None) or "Unknown"
        logger.info(f"Registration of {namespace}: {state}")

        deadline = time.monotonic() + timeout
        while wait and state.lower() != "registered":
            if time.monotonic() >= deadline:
                raise InventoryError(
                    f"Timed out waiting for {namespace} registration (state: {state})"
                )
            time.sleep(poll_interval)
            try:
                state = getattr(providers.get(namespace), "registration_state", None) or state
            except Exception as e:
                logger.warning(LogSanitizer.create_safe_error_message(e, "Registration check failed"))
            logger.debug(f"Registration of {namespace}: {state}")

        return state


def read_ids_file(path: str | Path) -> list[str]:
    """Read VM resource ids from a file, one per line.

    Blank lines and lines starting with '#' are skipped; duplicates are
    dropped keeping the first occurrence.

    Raises:
        InventoryError: If the file cannot be read or holds an invalid id
    """
    try:
        lines = Path(path).expanduser().read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise InventoryError(f"Failed to read ids file {path}: {e}") from e

    ids: list[str] = []
    seen: set[str] = set()
    for number, line in enumerate(lines, start=1):
        rid = line.strip()
        if not rid or rid.startswith("#"):
            continue
        if not VM_ID_PATTERN.match(rid):
            raise InventoryError(f"{path}:{number}: not a virtual machine resource id: {rid}")
        if rid.lower() in seen:
            continue
        seen.add(rid.lower())
        ids.append(rid)
    return ids


__all__ = [
    "COMPUTE_SCHEDULE_NAMESPACE",
    "InventoryError",
    "VMInventory",
    "read_ids_file",
]
