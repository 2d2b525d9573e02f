"""CLI entry point: serve the test runner over HTTP."""

from __future__ import annotations

import argparse
import logging
import sys

from jmrunner.config import Settings

# argparse dest -> Settings field, for flags that map one-to-one
_OVERRIDES = (
    "host",
    "port",
    "base_url",
    "test_folder_base",
    "temp_folder_base",
    "jmeter_executable",
    "refresh_time",
    "run_test_api_key",
    "check_test_api_key",
    "delete_test_api_key",
    "custom_labels",
    "log_level",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jmrunner",
        description="jmrunner — run JMeter test plans one at a time behind an HTTP API",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Start the HTTP server")
    serve.add_argument("--host", default=None, help="Bind address (default: localhost)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: 80)")
    serve.add_argument("--base-url", default=None, help="Public URL used in returned links")
    serve.add_argument("--test-folder-base", default=None, help="Permanent root for archived runs")
    serve.add_argument("--temp-folder-base", default=None, help="Temp root for in-flight runs")
    serve.add_argument("--jmeter-executable", default=None, help="Path to the jmeter binary")
    serve.add_argument("--refresh-time", type=int, default=None, help="Status refresh hint (seconds)")
    serve.add_argument("--run-test-api-key", default=None, help="API key for submit/cancel/resume")
    serve.add_argument("--check-test-api-key", default=None, help="API key for status queries")
    serve.add_argument("--delete-test-api-key", default=None, help="API key for deletion")
    serve.add_argument("--custom-labels", default=None,
                       help="Space-separated label names reported on the duration metric")
    serve.add_argument("--silent", action="store_true", help="Only log warnings and errors")
    serve.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    return parser


def build_settings(args: argparse.Namespace) -> Settings:
    """Build Settings from CLI args; unset flags fall back to JMRUNNER_* env vars."""
    overrides: dict = {}
    for field in _OVERRIDES:
        value = getattr(args, field, None)
        if value is not None:
            overrides[field] = value
    if args.silent:
        overrides["silent"] = True
        overrides.setdefault("log_level", "WARNING")
    return Settings(**overrides)


def run_serve(args: argparse.Namespace) -> None:
    import uvicorn

    from jmrunner.main import create_app

    settings = build_settings(args)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=not settings.silent,
    )


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "serve":
        run_serve(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
