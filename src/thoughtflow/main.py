#!/usr/bin/env python
"""Main entry point for the ThoughtFlow MCP server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from thoughtflow.config import config
from thoughtflow.models.db_models import init_db
from thoughtflow.observability import configure_logging, metrics
from thoughtflow.server.mcp_server import ThoughtflowMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="ThoughtFlow MCP Server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("THOUGHTFLOW_DATABASE_PATH")
    )
    parser.add_argument(
        "--owner",
        help="Owner id to act as (no owner means saves are rejected)",
        type=str,
        default=os.environ.get("THOUGHTFLOW_OWNER_ID")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("THOUGHTFLOW_LOG_LEVEL", config.log_level).upper()
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.owner:
        config.owner_id = args.owner
    config.log_level = args.log_level


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main(argv=None):
    """Run the ThoughtFlow MCP server."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    atexit.register(_save_metrics_on_exit)

    if not config.owner_id:
        logger.warning("No owner configured; saving thoughts will fail until --owner is set")

    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting ThoughtFlow MCP server")
        server = ThoughtflowMcpServer(engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
