#!/usr/bin/env python3
"""Run the Cohere chat proxy under uvicorn."""

import argparse
import dataclasses
import sys

import uvicorn

from cohere_proxy.core import ConfigurationError
from cohere_proxy.main import create_app
from cohere_proxy.settings import load_settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="OpenAI-compatible chat completions proxy for the Cohere chat API."
    )
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument("--host", help="Bind address (overrides config)")
    parser.add_argument("--port", type=int, help="Bind port (overrides config)")
    parser.add_argument(
        "--log-level",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Log level (overrides config)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(args.config)
    except (ConfigurationError, RuntimeError) as exc:
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        return 1

    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.log_level:
        overrides["log_level"] = args.log_level
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
