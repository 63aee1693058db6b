"""Logfire observability for the Lending Ledger."""

import logging
import os

import logfire

from ..config import LedgerConfig
from ..config import get_config as get_ledger_config
from .context import trace_lending_operation
from .metrics import record_audit_drop, record_lending_outcome

logger = logging.getLogger(__name__)

_initialized = False


def initialize_observability(config: LedgerConfig | None = None) -> None:
    """
    Configure logfire once per process.

    With tracing disabled logfire is still configured, locally and silently,
    so spans and metrics in the lending path cost nothing and never warn.
    """
    global _initialized  # noqa: PLW0603
    config = config or get_ledger_config()

    if not config.enable_tracing:
        logger.debug("Observability disabled via configuration")
        logfire.configure(send_to_logfire=False, console=False)
        _initialized = True
        return

    logfire.configure(
        token=os.getenv("LOGFIRE_TOKEN") or None,
        service_name=config.server_name,
        service_version=config.server_version,
        environment="development" if config.is_development else "production",
        send_to_logfire="if-token-present",
        console=False if not config.debug else None,
    )
    _initialized = True
    logger.info("Logfire observability enabled for %s", config.server_name)


def is_initialized() -> bool:
    return _initialized


__all__ = [
    "initialize_observability",
    "is_initialized",
    "logfire",
    "record_audit_drop",
    "record_lending_outcome",
    "trace_lending_operation",
]
