"""Configuration management for the Lending Ledger.

Settings are read from the environment (``LENDING_LEDGER_`` prefix) and an
optional ``.env`` file:
1. Storage - where the inventory, ledger and audit tables live
2. Lending policy - the fixed loan period
3. Concurrency - lock and storage timeouts
4. Diagnostics - log level, tracing and the MCP tool surface metadata
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerConfig(BaseSettings):
    """Lending ledger configuration.

    Every field can be overridden with an environment variable, e.g.
    ``LENDING_LEDGER_LOAN_PERIOD_DAYS=21``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LENDING_LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Storage ===

    database_path: Path = Field(
        default=Path("data/lending.db"),
        description="SQLite database file path",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; takes precedence over database_path",
    )

    # === Lending Policy ===

    loan_period_days: int = Field(
        default=14,
        description="Days between borrow and due date",
        ge=1,
        le=365,
    )

    # === Concurrency ===

    lock_timeout_seconds: float = Field(
        default=5.0,
        description="Maximum wait for the per-title lock before giving up",
        gt=0,
    )

    storage_timeout_seconds: float = Field(
        default=5.0,
        description="SQLite busy timeout applied to every storage call",
        gt=0,
    )

    audit_queue_size: int = Field(
        default=1000,
        description="Pending audit events held before new ones are dropped to the fallback log",
        ge=1,
    )

    # === Diagnostics ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    enable_tracing: bool = Field(
        default=False,
        description="Send coordinator spans and metrics through logfire",
    )

    # === Tool Surface ===

    server_name: str = Field(
        default="lending-ledger",
        description="MCP server name used in protocol handshake",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version for capability negotiation",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug or self.log_level == "DEBUG"

    def get_database_url(self) -> str:
        """Get the SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: LedgerConfig | None = None


def get_config() -> LedgerConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = LedgerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
