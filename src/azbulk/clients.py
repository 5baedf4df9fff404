"""Azure client context.

One AzureClientContext is built per run and passed to every component that
talks to Azure. It owns the credential and creates each management client
on first use; clients are thread-safe and shared by all batch tasks.
"""

import logging
from functools import cached_property
from typing import Any

from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.computefleet import ComputeFleetMgmtClient
from azure.mgmt.computeschedule import ComputeScheduleMgmtClient
from azure.mgmt.resource import ResourceManagementClient

from azbulk.config_manager import BulkConfig
from azbulk.credential_factory import CredentialFactory

logger = logging.getLogger(__name__)


class AzureClientContext:
    """Credential plus lazily created management clients for one subscription."""

    def __init__(self, config: BulkConfig, credential: Any | None = None):
        """Initialize client context.

        Args:
            config: Validated configuration (subscription, location, auth)
            credential: Existing TokenCredential (default: from CredentialFactory)

        Raises:
            ConfigError: If configuration is invalid
            CredentialFactoryError: If no credential can be created
        """
        config.validate()
        self.config = config
        self.credential = credential or CredentialFactory.create_credential(config)

    @property
    def subscription_id(self) -> str:
        return self.config.subscription_id  # type: ignore[return-value]

    @property
    def location(self) -> str:
        return self.config.location  # type: ignore[return-value]

    @cached_property
    def schedule_client(self) -> ComputeScheduleMgmtClient:
        logger.debug("Creating Compute Schedule client")
        return ComputeScheduleMgmtClient(self.credential, self.subscription_id)

    @cached_property
    def compute_client(self) -> ComputeManagementClient:
        logger.debug("Creating Compute client")
        return ComputeManagementClient(self.credential, self.subscription_id)

    @cached_property
    def fleet_client(self) -> ComputeFleetMgmtClient:
        logger.debug("Creating Compute Fleet client")
        return ComputeFleetMgmtClient(self.credential, self.subscription_id)

    @cached_property
    def resource_client(self) -> ResourceManagementClient:
        logger.debug("Creating Resource Management client")
        return ResourceManagementClient(self.credential, self.subscription_id)


__all__ = ["AzureClientContext"]
