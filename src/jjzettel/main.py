#!/usr/bin/env python
"""Main entry point for the jjzettel MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from jjzettel.config import JjzettelConfig
from jjzettel.exceptions import ConfigurationError
from jjzettel.observability import configure_logging
from jjzettel.server.mcp_server import JjzettelMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="jjzettel MCP Server")
    parser.add_argument(
        "--repo",
        help="Root directory of the knowledge base repository",
        type=str,
        default=os.environ.get("JJZETTEL_REPO")
    )
    parser.add_argument(
        "--jj-binary",
        help="Jujutsu executable",
        type=str,
        default=os.environ.get("JJZETTEL_JJ_BINARY")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("JJZETTEL_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def build_config(args) -> JjzettelConfig:
    """Build the engine configuration from the environment and arguments."""
    overrides = {}
    if args.repo:
        overrides["repo_path"] = Path(args.repo)
    if args.jj_binary:
        overrides["jj_binary"] = args.jj_binary
    try:
        return JjzettelConfig(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def main(argv=None):
    """Run the jjzettel MCP server."""
    args = parse_args(argv)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    logger = logging.getLogger(__name__)

    try:
        settings = build_config(args)
    except ConfigurationError as e:
        logging.basicConfig(level=log_level)
        logger.error(str(e))
        sys.exit(2)

    try:
        log_dir = configure_logging(settings.log_dir, level=log_level, console=True)
        logger.info(f"Persistent logging enabled: {log_dir}")
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    try:
        logger.info(f"Starting jjzettel MCP server for {settings.get_repo_path()}")
        server = JjzettelMcpServer(settings=settings)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
