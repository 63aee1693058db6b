"""Lending Ledger MCP Server - FastMCP Implementation

Exposes the lending coordinator to MCP clients over stdio transport.

Tools exposed:
- borrow_title: lend one copy of a title
- return_title: take a copy back
- loan_history: list a borrower's loans
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import get_config
from .database.session import get_db_manager
from .lending.services import get_services, reset_services
from .observability import initialize_observability
from .tools import all_tools

# Initialize logging - stderr for logs, stdout for MCP protocol
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

config = get_config()

mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "Lending Ledger - borrow and return library titles while keeping the inventory, "
        "the loan ledger and the audit log consistent. Failures report whether records "
        "were left disagreeing and need reconciliation."
    ),
)

# Register all tools with the MCP server
for tool in all_tools:
    logger.debug("Registering tool: %s", tool["name"])
    try:
        mcp.tool(
            name=tool["name"],
            description=tool["description"],
        )(tool["handler"])
    except Exception:
        logger.exception("Failed to register tool %s", tool["name"])
        raise

logger.info("Registered %d tools", len(all_tools))


def prepare_storage() -> None:
    """Create missing tables and warm up the lending services."""
    db_manager = get_db_manager()
    db_manager.init_database()
    if not db_manager.verify_connection():
        raise RuntimeError(f"Cannot connect to database {db_manager.database_url}")
    get_services()


def shutdown() -> None:
    """Drain the audit queue and release database connections."""
    logger.info("Lending Ledger shutting down...")
    reset_services()
    get_db_manager().close()
    logger.info("Shutdown complete")


def run_stdio_server() -> None:
    """Run the MCP server using stdio transport.

    Stdin receives JSON-RPC requests, stdout sends responses.
    """
    logger.info("Starting %s v%s on stdio transport", config.server_name, config.server_version)

    logging.getLogger().setLevel(config.log_level)
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")
    else:
        logging.getLogger("fastmcp").setLevel(logging.WARNING)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("MCP Server ready and waiting for connections...")
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)
    finally:
        shutdown()


def main() -> None:
    """Main entry point for the MCP server."""
    try:
        logger.info("=" * 60)
        logger.info("Lending Ledger MCP Server")
        logger.info("Version: %s", config.server_version)
        logger.info("Database: %s", config.get_database_url())
        logger.info("Loan period: %d days", config.loan_period_days)
        logger.info("=" * 60)

        initialize_observability(config)
        prepare_storage()
        run_stdio_server()

    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
