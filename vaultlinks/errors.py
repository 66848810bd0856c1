"""
Exceptions and error logging for vaultlinks.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class VaultLinksError(Exception):
    """Base class for vaultlinks errors."""


class UnsupportedRelationError(VaultLinksError, LookupError):
    """No relation with this key is configured for the entity type."""

    def __init__(self, entity_type: str, relation_key: str):
        self.entity_type = entity_type
        self.relation_key = relation_key
        super().__init__(
            f"No relation {relation_key!r} for entity type {entity_type or '<untyped>'!r}"
        )


def _error_log_path() -> Path:
    """Resolve error log path, respecting VAULTLINKS_VAULT_PATH."""
    vault = os.environ.get("VAULTLINKS_VAULT_PATH")
    if vault:
        return Path(vault) / ".vaultlinks" / "vaultlinks-errors.log"
    return Path.home() / ".vaultlinks" / "vaultlinks-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        header = f"[{timestamp}] {type(exc).__name__}"
        if context:
            header += f" in {context}"
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'-'*60}\n{header}\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
