"""Credential factory for Azure authentication.

Creates Azure Identity SDK credential objects from azbulk configuration.

Supported credential types:
- DefaultAzureCredential: Environment, managed identity, CLI chain (default)
- AzureCliCredential: Delegate to Azure CLI
- ClientSecretCredential: Service principal with client secret
- ManagedIdentityCredential: Managed identity (system or user-assigned)

Security:
- No token storage - delegates to Azure Identity SDK
- Client secrets from environment variables only
- Log sanitization for all error messages
"""

import os
from typing import Any

from azure.identity import (
    AzureCliCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)

from azbulk.config_manager import BulkConfig
from azbulk.log_sanitizer import LogSanitizer


class CredentialFactoryError(Exception):
    """Raised when credential creation fails."""

    pass


class CredentialFactory:
    """Factory for creating Azure Identity credentials."""

    @staticmethod
    def create_credential(config: BulkConfig) -> Any:
        """Create Azure Identity credential from configuration.

        Args:
            config: azbulk configuration (auth_method, tenant_id, client_id)

        Returns:
            Azure Identity credential object (TokenCredential)

        Raises:
            CredentialFactoryError: If credential creation fails
        """
        method = config.auth_method
        try:
            if method == "default":
                return DefaultAzureCredential()

            if method == "azure_cli":
                return AzureCliCredential()

            if method == "service_principal_secret":
                return CredentialFactory._create_sp_secret_credential(config)

            if method == "managed_identity":
                if config.client_id:
                    return ManagedIdentityCredential(client_id=config.client_id)
                return ManagedIdentityCredential()

            raise CredentialFactoryError(f"Unsupported authentication method: {method}")

        except CredentialFactoryError:
            raise
        except Exception as e:
            raise CredentialFactoryError(
                LogSanitizer.create_safe_error_message(e, "Credential creation failed")
            ) from e

    @staticmethod
    def _create_sp_secret_credential(config: BulkConfig) -> ClientSecretCredential:
        """Create service principal credential with client secret.

        The secret MUST come from AZURE_CLIENT_SECRET; it is never read from
        the config file.

        Raises:
            CredentialFactoryError: If tenant, client id or secret is missing
        """
        if not config.tenant_id or not config.client_id:
            raise CredentialFactoryError(
                "service_principal_secret requires tenant_id and client_id "
                "(config file, AZURE_TENANT_ID / AZURE_CLIENT_ID)"
            )

        client_secret = os.getenv("AZURE_CLIENT_SECRET")
        if not client_secret:
            raise CredentialFactoryError(
                "Client secret not found in environment. Set AZURE_CLIENT_SECRET."
            )

        return ClientSecretCredential(
            tenant_id=config.tenant_id,
            client_id=config.client_id,
            client_secret=client_secret,
        )


__all__ = ["CredentialFactory", "CredentialFactoryError"]
