"""Command-line entry point: resolve settings and serve the gateway with uvicorn."""

import argparse
import logging
import sys

import uvicorn
from pydantic import ValidationError

from app.config.settings import Settings, get_settings
from app.main import create_app

logger = logging.getLogger("gateway.cli")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="metered-gateway",
        description="OpenAI-compatible gateway that pays per call before forwarding upstream",
    )
    parser.add_argument("--host", default=None, help="Bind host (default: GATEWAY_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: GATEWAY_PORT)")
    parser.add_argument("--log-level", default=None, help="Log level (default: GATEWAY_LOG_LEVEL)")
    return parser.parse_args(argv)


def _resolve_settings(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    overrides = {
        key: value
        for key, value in (
            ("host", args.host),
            ("port", args.port),
            ("log_level", args.log_level),
        )
        if value is not None
    }
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = _resolve_settings(args)
        app = create_app(settings)
    except (RuntimeError, ValidationError) as exc:
        print(f"[metered-gateway] startup failed: {exc}", file=sys.stderr)
        return 1

    logger.info(
        "gateway_starting",
        extra={"chain": settings.resolved_chain, "asset": settings.resolved_asset},
    )
    logger.info(
        "listening on http://%s:%s upstream=%s payment=%s",
        settings.host,
        settings.port,
        settings.resolved_upstream_api_base,
        settings.resolved_payment_service_url,
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
