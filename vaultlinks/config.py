"""
Configuration management for vaults.

The configuration is stored as a TOML file in the vault's ``.vaultlinks``
directory. It sets scanning options and may add or override relation
definitions per entity type:

    [vault]
    version = 1
    extension = ".md"
    page_size = 20

    [relations.company.investors]
    targetType = "company"
    properties = ["investedIn"]
    sort = { strategy = "manual" }
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .document_store import DEFAULT_IGNORE
from .types import DEFAULT_EXTENSION


CONFIG_DIRNAME = ".vaultlinks"
CONFIG_FILENAME = "vaultlinks.toml"
CONFIG_VERSION = 1

VAULT_PATH_ENV = "VAULTLINKS_VAULT_PATH"


@dataclass
class VaultConfig:
    """Complete vault configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Scanning
    extension: str = DEFAULT_EXTENSION
    ignore: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE))

    # Default page size for relations that don't set pageSize (None = no paging)
    page_size: Optional[int] = None

    # Relation overrides: {entity_type: {relation_key: spec}}
    relations: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def config_dir(self) -> Path:
        """Directory holding config and logs."""
        return self.path / CONFIG_DIRNAME

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.config_dir / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_vault_path(vault_path: Optional[str | Path] = None) -> Path:
    """
    Resolve the vault directory.

    Priority:
    1. Explicit argument
    2. VAULTLINKS_VAULT_PATH environment variable
    3. Current working directory
    """
    if vault_path:
        return Path(vault_path).expanduser().resolve()
    env = os.environ.get(VAULT_PATH_ENV)
    if env:
        return Path(env).expanduser().resolve()
    return Path.cwd()


def load_config(vault_path: Path) -> VaultConfig:
    """
    Load configuration from a vault directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = vault_path / CONFIG_DIRNAME / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    vault = data.get("vault", {})
    version = vault.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValueError(f"version must be a positive integer, got {version!r}")
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    page_size = vault.get("page_size")
    if page_size is not None and (isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1):
        raise ValueError(f"page_size must be a positive integer, got {page_size!r}")

    relations = data.get("relations", {})
    if not isinstance(relations, dict) or not all(isinstance(v, dict) for v in relations.values()):
        raise ValueError("[relations] must map entity types to tables of relation specs")

    return VaultConfig(
        path=vault_path,
        version=version,
        created=vault.get("created", ""),
        extension=vault.get("extension", DEFAULT_EXTENSION),
        ignore=list(vault.get("ignore", DEFAULT_IGNORE)),
        page_size=page_size,
        relations={str(k).lower(): dict(v) for k, v in relations.items()},
    )


def save_config(config: VaultConfig) -> None:
    """
    Save configuration to the vault's config directory.

    Creates the directory if it doesn't exist.
    """
    config.config_dir.mkdir(parents=True, exist_ok=True)

    vault: dict[str, Any] = {
        "version": config.version,
        "created": config.created,
        "extension": config.extension,
        "ignore": list(config.ignore),
    }
    if config.page_size is not None:
        vault["page_size"] = config.page_size

    data: dict[str, Any] = {"vault": vault}
    if config.relations:
        data["relations"] = config.relations

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(vault_path: Path) -> VaultConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = vault_path / CONFIG_DIRNAME / CONFIG_FILENAME

    if config_path.exists():
        return load_config(vault_path)
    else:
        config = VaultConfig(path=vault_path)
        save_config(config)
        return config
