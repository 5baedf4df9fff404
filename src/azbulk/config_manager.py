"""Configuration management module.

Settings come from three layers, later layers winning:
1. ~/.azbulk/config.toml (TOML, 0600 permissions)
2. AZBULK_* environment variables (and AZURE_SUBSCRIPTION_ID)
3. CLI options

Configuration errors are the only errors fatal to a whole run, so
validation happens once, before any remote call.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for Python 3.11+ without tomli installed
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

import tomlkit

from azbulk.batching import DEFAULT_BATCH_SIZE
from azbulk.errors import ConfigError
from azbulk.tracker import DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)

AUTH_METHODS = ("default", "azure_cli", "service_principal_secret", "managed_identity")

NUMERIC_FIELDS = {"batch_size": int, "max_workers": int, "poll_interval": float, "timeout": float}


@dataclass
class BulkConfig:
    """azbulk configuration data."""

    subscription_id: str | None = None
    location: str | None = None
    resource_group: str | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    timeout: float = 3600.0
    max_workers: int = 32
    auth_method: str = "default"
    tenant_id: str | None = None
    client_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # TOML has no null
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BulkConfig":
        """Create from dictionary, ignoring unknown keys.

        Numeric settings given as strings (``poll_interval = "30"``) are
        converted.

        Raises:
            ConfigError: If a numeric setting cannot be converted
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

        values = {k: v for k, v in data.items() if k in known}
        for key, convert in NUMERIC_FIELDS.items():
            if key not in values:
                continue
            value = values[key]
            if isinstance(value, bool) or (convert is int and isinstance(value, float)):
                raise ConfigError(f"Invalid value for {key}: {value!r}")
            try:
                values[key] = convert(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {key}: {value!r}") from e
        return cls(**values)

    def merged(self, **overrides: Any) -> "BulkConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate_limits(self) -> None:
        """Validate batching, polling and concurrency settings.

        Raises:
            ConfigError: If any limit is not positive
        """
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise ConfigError(f"batch_size must be an integer, got {self.batch_size!r}")
        if self.batch_size <= 0:
            raise ConfigError(f"batch_size must be positive, got {self.batch_size}")
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.max_workers <= 0:
            raise ConfigError(f"max_workers must be positive, got {self.max_workers}")

    def validate(self) -> None:
        """Validate everything a run against Azure needs.

        Raises:
            ConfigError: If configuration is incomplete or invalid
        """
        if not self.subscription_id:
            raise ConfigError(
                "No subscription configured. Set subscription_id in "
                "~/.azbulk/config.toml, AZURE_SUBSCRIPTION_ID, or pass --subscription."
            )
        if not self.location:
            raise ConfigError(
                "No location configured. Set location in ~/.azbulk/config.toml, "
                "AZBULK_LOCATION, or pass --location."
            )
        if self.auth_method not in AUTH_METHODS:
            raise ConfigError(
                f"Unknown auth_method '{self.auth_method}'. "
                f"Expected one of: {', '.join(AUTH_METHODS)}"
            )
        self.validate_limits()


# Environment variable -> (field, converter)
ENV_OVERRIDES: dict[str, tuple[str, Any]] = {
    "AZURE_SUBSCRIPTION_ID": ("subscription_id", str),
    "AZBULK_SUBSCRIPTION_ID": ("subscription_id", str),
    "AZBULK_LOCATION": ("location", str),
    "AZBULK_RESOURCE_GROUP": ("resource_group", str),
    "AZBULK_BATCH_SIZE": ("batch_size", int),
    "AZBULK_POLL_INTERVAL": ("poll_interval", float),
    "AZBULK_TIMEOUT": ("timeout", float),
    "AZBULK_MAX_WORKERS": ("max_workers", int),
    "AZBULK_AUTH_METHOD": ("auth_method", str),
    "AZURE_TENANT_ID": ("tenant_id", str),
    "AZURE_CLIENT_ID": ("client_id", str),
}


class ConfigManager:
    """Manage azbulk configuration file.

    Configuration is stored at ~/.azbulk/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".azbulk"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If a custom path was given and does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> BulkConfig:
        """Load configuration from file.

        Returns:
            BulkConfig (defaults when no file exists)

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return BulkConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)

            logger.debug(f"Loaded config from: {config_path}")
            return BulkConfig.from_dict(data)

        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: BulkConfig, custom_path: str | None = None) -> Path:
        """Save configuration to file, preserving existing comments.

        Returns:
            Path written

        Raises:
            ConfigError: If saving fails
        """
        config_path = Path(custom_path).expanduser() if custom_path else cls.DEFAULT_CONFIG_FILE
        temp_path = config_path.with_suffix(".tmp")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")
            return config_path

        except Exception as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def apply_env_overrides(
        cls, config: BulkConfig, environ: dict[str, str] | None = None
    ) -> BulkConfig:
        """Apply environment variable overrides.

        Raises:
            ConfigError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for var, (field_name, convert) in ENV_OVERRIDES.items():
            raw = env.get(var)
            if not raw:
                continue
            try:
                overrides[field_name] = convert(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {var}: {raw!r}") from e
        return config.merged(**overrides)

    @classmethod
    def resolve(cls, custom_path: str | None = None, **cli_values: Any) -> BulkConfig:
        """Load file config, then apply environment and CLI overrides."""
        config = cls.apply_env_overrides(cls.load_config(custom_path))
        return config.merged(**cli_values)


__all__ = ["AUTH_METHODS", "BulkConfig", "ConfigManager"]
