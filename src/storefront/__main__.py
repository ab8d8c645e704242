"""Run the storefront API with uvicorn: ``python -m storefront``."""

from __future__ import annotations

import argparse
import logging

import uvicorn

from storefront.api import create_app
from storefront.config import Settings
from storefront.exceptions import ConfigurationError

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Serve the storefront checkout and payment API.",
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="Interface to bind (default: %(default)s)"
    )
    parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind (default: %(default)s)"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        parser.exit(2, f"storefront: {e}\n")

    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    uvicorn.run(
        create_app(settings=settings),
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
