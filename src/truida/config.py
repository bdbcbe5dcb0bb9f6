"""
Configuration management for the TRUIDA system.

This module handles all configuration loading from environment variables
and .env files, so that kiosks, staff tooling and tests share one set of
settings for storage location, logging, locking and retry behaviour.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# =============================================================================
# Base Paths
# =============================================================================
# Define the base directory for the package
BASE_DIR: Path = Path(__file__).resolve().parent.parent

# Project root directory (parent of src/)
PROJECT_ROOT: Path = BASE_DIR.parent

# =============================================================================
# Storage Configuration
# =============================================================================
# Directory holding the JSON passenger store and access log
DATA_DIR: Path = Path(os.getenv("TRUIDA_DATA_DIR", str(PROJECT_ROOT / "data")))

# Store backend used by the command line ("json" or "memory")
STORE_BACKEND: str = os.getenv("TRUIDA_STORE_BACKEND", "json").lower()

# Directory for exported audit files
EXPORT_DIR: Path = Path(os.getenv("TRUIDA_EXPORT_DIR", str(DATA_DIR / "exports")))

# =============================================================================
# Logging Configuration
# =============================================================================
# Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Emit JSON log lines instead of console rendering
STRUCTURED_LOGGING: bool = os.getenv("STRUCTURED_LOGGING", "true").lower() == "true"

# =============================================================================
# Concurrency and Resilience Configuration
# =============================================================================
# Maximum wait for per-record or store-wide exclusion
LOCK_TIMEOUT_SECONDS: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "10"))

# Attempts for a store write issued by the checkpoint engine
STORAGE_RETRY_ATTEMPTS: int = int(os.getenv("STORAGE_RETRY_ATTEMPTS", "3"))

# Initial delay between store write attempts
STORAGE_RETRY_DELAY_SECONDS: float = float(
    os.getenv("STORAGE_RETRY_DELAY_SECONDS", "0.05")
)

# =============================================================================
# Lifecycle Configuration
# =============================================================================
# Period of the background expiry sweep
SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))

# Sweep expired records before dashboard and listing commands
AUTO_SWEEP: bool = os.getenv("AUTO_SWEEP", "true").lower() == "true"

# =============================================================================
# Development and Debugging Configuration
# =============================================================================
# Enable debug mode (skips import-time validation)
DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "false").lower() == "true"

# Optional fixed "now" for demos and reproducible runs (ISO 8601)
FIXED_NOW: Optional[str] = os.getenv("TRUIDA_FIXED_NOW") or None


# =============================================================================
# Logging Setup
# =============================================================================
def configure_logging(
    level: Optional[str] = None, structured: Optional[bool] = None
) -> None:
    """
    Configure structlog according to the logging settings.

    Parameters
    ----------
    level : str, optional
        Log level name. Defaults to ``LOG_LEVEL``.
    structured : bool, optional
        Render JSON lines when True. Defaults to ``STRUCTURED_LOGGING``.
    """
    level_name = (level or LOG_LEVEL).upper()
    use_json = STRUCTURED_LOGGING if structured is None else structured

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level_name, logging.INFO)
        ),
        # Keep stdout free for command output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


# =============================================================================
# Configuration Validation
# =============================================================================
def validate_configuration() -> bool:
    """
    Validate the current configuration settings.

    Returns
    -------
    bool
        True if configuration is valid.

    Raises
    ------
    ValueError
        If critical configuration parameters are invalid.
    """
    errors = []

    if STORE_BACKEND not in ("json", "memory"):
        errors.append("TRUIDA_STORE_BACKEND must be 'json' or 'memory'")

    if LOCK_TIMEOUT_SECONDS <= 0:
        errors.append("LOCK_TIMEOUT_SECONDS must be positive")

    if STORAGE_RETRY_ATTEMPTS < 1:
        errors.append("STORAGE_RETRY_ATTEMPTS must be at least 1")

    if STORAGE_RETRY_DELAY_SECONDS < 0:
        errors.append("STORAGE_RETRY_DELAY_SECONDS cannot be negative")

    if SWEEP_INTERVAL_SECONDS <= 0:
        errors.append("SWEEP_INTERVAL_SECONDS must be positive")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if LOG_LEVEL not in valid_log_levels:
        errors.append(f"LOG_LEVEL must be one of {valid_log_levels}")

    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"- {error}" for error in errors)
        )

    return True


def get_config_summary() -> dict:
    """
    Get a summary of the current configuration.

    Returns
    -------
    dict
        Dictionary containing key configuration parameters.
    """
    return {
        "storage": {
            "backend": STORE_BACKEND,
            "data_dir": str(DATA_DIR),
            "export_dir": str(EXPORT_DIR),
        },
        "concurrency": {
            "lock_timeout_seconds": LOCK_TIMEOUT_SECONDS,
            "storage_retry_attempts": STORAGE_RETRY_ATTEMPTS,
            "storage_retry_delay_seconds": STORAGE_RETRY_DELAY_SECONDS,
        },
        "lifecycle": {
            "sweep_interval_seconds": SWEEP_INTERVAL_SECONDS,
            "auto_sweep": AUTO_SWEEP,
        },
        "logging": {
            "level": LOG_LEVEL,
            "structured": STRUCTURED_LOGGING,
        },
        "debug_mode": DEBUG_MODE,
    }


# Validate configuration on import
if not DEBUG_MODE:
    validate_configuration()
