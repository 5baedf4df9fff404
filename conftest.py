"""Pytest configuration and fixtures for azbulk tests.

CRITICAL: Protects production configuration from test modifications.
"""

import os
import shutil
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def protect_production_config():
    """Protect ~/.azbulk/config.toml from being modified by tests.

    Backs up the real config.toml before any tests run and restores it
    after all tests complete.
    """
    config_path = Path.home() / ".azbulk" / "config.toml"
    backup_path = Path.home() / ".azbulk" / ".config.toml.pytest-backup"

    config_existed = config_path.exists()
    if config_existed:
        shutil.copy2(config_path, backup_path)

    yield

    if config_existed and backup_path.exists():
        shutil.copy2(backup_path, config_path)
        backup_path.unlink()
    elif backup_path.exists():
        backup_path.unlink()


@pytest.fixture(autouse=True)
def isolate_azure_environment(monkeypatch):
    """Keep real subscription and azbulk settings out of tests."""
    for var in list(os.environ):
        if var.startswith("AZBULK_") or var in (
            "AZURE_SUBSCRIPTION_ID",
            "AZURE_TENANT_ID",
            "AZURE_CLIENT_ID",
            "AZURE_CLIENT_SECRET",
        ):
            monkeypatch.delenv(var, raising=False)


@pytest.fixture
def isolated_config(tmp_path):
    """Provide isolated config directory for tests."""
    config_dir = tmp_path / ".azbulk"
    config_dir.mkdir(parents=True)
    return config_dir


@pytest.fixture
def mock_config_path(isolated_config, monkeypatch):
    """Point ConfigManager at an isolated config file instead of ~/.azbulk.

    Example:
        def test_something(mock_config_path):
            ConfigManager.save_config(config)  # Safe!
    """
    config_file = isolated_config / "config.toml"

    from azbulk.config_manager import ConfigManager

    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", isolated_config)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_file)

    return config_file
