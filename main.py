"""Preço da Hora acquisition service entry point.

This module is the bootstrap layer. It contains no business logic - all
functional code resides in /precohora.

Responsibilities:
    1. Load and validate configuration
    2. Initialize logging infrastructure (fail-fast on error)
    3. Serve the HTTP API, or run a single lookup from the command line
    4. Handle top-level exceptions with graceful shutdown

Usage:
    python main.py                        # serve the API
    python main.py serve --port 8080
    python main.py cep 40000-000 --type etanol
    python main.py city Salvador --state BA --radius 10
"""

import argparse
import asyncio
import json
import sys
from typing import NoReturn

import uvicorn
from loguru import logger

from config.settings import GlobalConfig, get_config
from precohora.exceptions import (
    LoggingInitializationError,
    PrecoHoraError,
    QueryValidationError,
)
from precohora.logger import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="precohora",
        description="Fuel station prices from the Preço da Hora portal",
    )
    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the HTTP API (default)")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    cep = commands.add_parser("cep", help="Look up stations by postal code")
    cep.add_argument("code")

    city = commands.add_parser("city", help="Look up stations by city")
    city.add_argument("name")
    city.add_argument("--state", default=None)

    for lookup in (cep, city):
        lookup.add_argument("--type", dest="fuel_type", default=None)
        lookup.add_argument("--radius", default=None)

    return parser


def _serve(config: GlobalConfig, host: str | None, port: int | None) -> int:
    """Run uvicorn until SIGINT/SIGTERM; the app lifespan owns the browser."""
    from precohora.api import create_app

    uvicorn.run(
        create_app(config),
        host=host or config.host,
        port=port or config.port,
        log_level=config.log_level.lower(),
        log_config=None,  # keep the loguru forwarding from configure_logging
    )
    return 0


async def _run_lookup(config: GlobalConfig, args: argparse.Namespace) -> int:
    """Perform one lookup and print the envelope as JSON.

    Returns:
        Exit code (0 when the envelope reports success, 1 otherwise).
    """
    from precohora.service import AcquisitionOrchestrator

    # The browser launches on first tab request, so invalid input never starts one
    orchestrator = AcquisitionOrchestrator(config)
    try:
        if args.command == "cep":
            envelope = await orchestrator.by_postal_code(args.code, args.fuel_type, args.radius)
        else:
            envelope = await orchestrator.by_city(args.name, args.state, args.fuel_type, args.radius)
    finally:
        await orchestrator.shutdown()

    print(json.dumps(envelope.to_json_dict(), indent=2, ensure_ascii=False))
    return 0 if envelope.success else 1


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Handle fatal errors with structured logging and exit.

    Args:
        exc: The exception that caused the fatal error.
    """
    if isinstance(exc, PrecoHoraError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


def main(argv: list[str] | None = None) -> int:
    """Application entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    args = _build_parser().parse_args(argv)

    # Step 1: Load configuration (validates via Pydantic)
    try:
        config = get_config()
    except Exception as exc:
        # Cannot log yet - print to stderr
        print(f"FATAL: Configuration loading failed: {exc}", file=sys.stderr)
        return 1

    # Step 2: Initialize logging (fail-fast)
    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    # Step 3: Serve or run a single lookup
    try:
        if args.command in ("cep", "city"):
            return asyncio.run(_run_lookup(config, args))
        return _serve(
            config,
            getattr(args, "host", None),
            getattr(args, "port", None),
        )
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C)")
        return 130  # Standard Unix SIGINT exit code
    except QueryValidationError as exc:
        print(f"Invalid input: {exc.message}", file=sys.stderr)
        return 2
    except Exception as exc:
        _handle_fatal_error(exc)


if __name__ == "__main__":
    sys.exit(main())
