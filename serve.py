"""Command line entrypoint for running the Fab City Assistant API."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from fabcity import configure_logging
from fabcity.config import load_assistant_config


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Fab City Assistant API server")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port to listen on. Overrides PORT when provided.")
    parser.add_argument("--config", type=Path, help="Path to an assistant JSON config file.")
    parser.add_argument("--log-level", default="INFO", help="Python logging level (default: INFO)")
    return parser.parse_args()


def main() -> None:
    load_dotenv()
    args = parse_args()
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    configure_logging(level=log_level)

    config = load_assistant_config(args.config)
    port = args.port or config.port

    from app.main import create_app

    logging.getLogger("api").info("API Server running on port: %s", port)
    uvicorn.run(create_app(config), host=args.host, port=port, log_config=None)


if __name__ == "__main__":
    main()
