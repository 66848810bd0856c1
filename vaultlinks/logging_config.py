"""
Logging configuration for vaultlinks.

Quiet by default: only warnings reach stderr unless debug mode is enabled.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "vaultlinks"
OPS_LOG_FILENAME = "vaultlinks-ops.log"


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose output.

    This silences:
    - Library warnings (deprecation, etc.)
    - Informational messages from the vaultlinks logger on stderr

    Args:
        quiet: If True, suppress verbose output. If False, show everything.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        logging.getLogger("yaml").setLevel(logging.ERROR)
        logger = logging.getLogger(LOGGER_NAME)
        if logger.level == logging.NOTSET:
            logger.setLevel(logging.WARNING)
    else:
        warnings.filterwarnings("default")


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    # Re-enable warnings
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG)


def configure_ops_log(vault_path):
    """Configure a persistent operations log for a vault.

    Writes to {vault_path}/.vaultlinks/vaultlinks-ops.log using a rotating
    file handler (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on close().
    """
    log_dir = Path(vault_path) / ".vaultlinks"
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_dir / OPS_LOG_FILENAME),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    vault_logger = logging.getLogger(LOGGER_NAME)
    vault_logger.addHandler(handler)
    # Ensure the vaultlinks logger allows INFO through even in quiet mode
    if vault_logger.level == logging.NOTSET or vault_logger.level > logging.INFO:
        vault_logger.setLevel(logging.INFO)

    return handler
