"""
Ledger configuration management.

This module handles loading and accessing ledger configuration from multiple
sources with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/ledger.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The LedgerConfig
dataclass provides typed access to all settings.

Usage:
    from credential_ledger.config import config

    print(config.database.absolute_path)
    print(config.verification.expected_false_positive_rate)

Environment Variable Mapping:
    CRED_LEDGER_DB_PATH             -> database.path
    CRED_LEDGER_BUSY_TIMEOUT_MS     -> database.busy_timeout_ms
    CRED_LEDGER_FP_RATE             -> verification.expected_false_positive_rate
    CRED_LEDGER_FP_THRESHOLD        -> verification.problematic_epoch_threshold
    CRED_LEDGER_METRICS_ENABLED     -> metrics.enabled
    CRED_LEDGER_METRICS_FLUSH_SIZE  -> metrics.flush_size
    CRED_LEDGER_DEFAULT_EPOCH       -> integration.default_epoch_id
    CRED_LEDGER_VERIFY_CHUNK_SIZE   -> integration.verify_chunk_size
    CRED_LEDGER_LOG_LEVEL           -> logging.level
"""

import configparser
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "ledger.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "ledger.example.ini"

_LOG_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
}


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class DatabaseSettings:
    """Ledger store configuration."""

    path: str = "data/credential-ledger.db"
    busy_timeout_ms: int = 5000

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class VerificationSettings:
    """Reconciliation and false-positive analysis tuning."""

    expected_false_positive_rate: float = 0.01
    problematic_epoch_threshold: int = 100
    lookup_chunk_size: int = 500


@dataclass
class MetricsSettings:
    """Operation metric buffering."""

    enabled: bool = True
    flush_size: int = 20


@dataclass
class IntegrationSettings:
    """External registry adapter behaviour."""

    default_epoch_id: int = 0
    verify_chunk_size: int = 50


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed"] = "detailed"


@dataclass
class LedgerConfig:
    """
    Complete ledger configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton, or build one explicitly and
    hand it to :class:`~credential_ledger.facade.CredentialLedger`.
    """

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    verification: VerificationSettings = field(default_factory=VerificationSettings)
    metrics: MetricsSettings = field(default_factory=MetricsSettings)
    integration: IntegrationSettings = field(default_factory=IntegrationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _load_from_ini(parser: configparser.ConfigParser, cfg: LedgerConfig) -> None:
    """Load configuration from parsed INI file into LedgerConfig."""
    # Database section
    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")
        if parser.has_option("database", "busy_timeout_ms"):
            cfg.database.busy_timeout_ms = parser.getint("database", "busy_timeout_ms")

    # Verification section
    if parser.has_section("verification"):
        if parser.has_option("verification", "expected_false_positive_rate"):
            cfg.verification.expected_false_positive_rate = parser.getfloat(
                "verification", "expected_false_positive_rate"
            )
        if parser.has_option("verification", "problematic_epoch_threshold"):
            cfg.verification.problematic_epoch_threshold = parser.getint(
                "verification", "problematic_epoch_threshold"
            )
        if parser.has_option("verification", "lookup_chunk_size"):
            cfg.verification.lookup_chunk_size = parser.getint(
                "verification", "lookup_chunk_size"
            )

    # Metrics section
    if parser.has_section("metrics"):
        if parser.has_option("metrics", "enabled"):
            cfg.metrics.enabled = _parse_bool(parser.get("metrics", "enabled"))
        if parser.has_option("metrics", "flush_size"):
            cfg.metrics.flush_size = parser.getint("metrics", "flush_size")

    # Integration section
    if parser.has_section("integration"):
        if parser.has_option("integration", "default_epoch_id"):
            cfg.integration.default_epoch_id = parser.getint("integration", "default_epoch_id")
        if parser.has_option("integration", "verify_chunk_size"):
            cfg.integration.verify_chunk_size = parser.getint(
                "integration", "verify_chunk_size"
            )

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: LedgerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Database settings
    if env_db := os.getenv("CRED_LEDGER_DB_PATH"):
        cfg.database.path = env_db
    if env_timeout := os.getenv("CRED_LEDGER_BUSY_TIMEOUT_MS"):
        cfg.database.busy_timeout_ms = int(env_timeout)

    # Verification settings
    if env_rate := os.getenv("CRED_LEDGER_FP_RATE"):
        cfg.verification.expected_false_positive_rate = float(env_rate)
    if env_threshold := os.getenv("CRED_LEDGER_FP_THRESHOLD"):
        cfg.verification.problematic_epoch_threshold = int(env_threshold)

    # Metrics settings
    if env_metrics := os.getenv("CRED_LEDGER_METRICS_ENABLED"):
        cfg.metrics.enabled = _parse_bool(env_metrics)
    if env_flush := os.getenv("CRED_LEDGER_METRICS_FLUSH_SIZE"):
        cfg.metrics.flush_size = int(env_flush)

    # Integration settings
    if env_epoch := os.getenv("CRED_LEDGER_DEFAULT_EPOCH"):
        cfg.integration.default_epoch_id = int(env_epoch)
    if env_chunk := os.getenv("CRED_LEDGER_VERIFY_CHUNK_SIZE"):
        cfg.integration.verify_chunk_size = int(env_chunk)

    # Logging settings
    if env_log := os.getenv("CRED_LEDGER_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()


def load_config() -> LedgerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/ledger.ini
        3. config/ledger.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        LedgerConfig: Fully populated configuration object.
    """
    cfg = LedgerConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "LedgerConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Ledgers that are already
    open keep the settings they were constructed with.

    Returns:
        LedgerConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

# Load configuration once at module import time
config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information,
    useful for debugging and operator dashboards.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "database_path": str(config.database.absolute_path),
        "metrics_enabled": config.metrics.enabled,
        "expected_false_positive_rate": config.verification.expected_false_positive_rate,
    }


def configure_logging(cfg: LedgerConfig | None = None) -> None:
    """Apply ``[logging]`` settings to the root logger.

    Meant for process entry points; importing the package never touches
    logging configuration.
    """
    cfg = cfg or config
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level, logging.INFO),
        format=_LOG_FORMATS[cfg.logging.format],
        force=True,
    )


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    Usage:
        from credential_ledger.config import use_test_database

        def test_something(tmp_path):
            with use_test_database(tmp_path / "test.db"):
                ledger = CredentialLedger().open()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Set up test database path."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None
