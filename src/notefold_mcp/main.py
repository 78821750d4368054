#!/usr/bin/env python
"""Main entry point for the Notefold MCP server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from notefold_mcp.config import config
from notefold_mcp.models.db_models import init_db
from notefold_mcp.observability import configure_logging, metrics
from notefold_mcp.server.mcp_server import NotefoldMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Notefold MCP Server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTEFOLD_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTEFOLD_LOG_LEVEL", "INFO").upper()
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.log_level:
        config.log_level = args.log_level.upper()


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main():
    """Run the Notefold MCP server."""
    args = parse_args()
    update_config(args)

    # Console + persistent file logging with rotation
    log_level = getattr(logging, config.log_level, logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    atexit.register(_save_metrics_on_exit)

    # Single engine shared by all repositories
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting Notefold MCP server")
        server = NotefoldMcpServer(engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
