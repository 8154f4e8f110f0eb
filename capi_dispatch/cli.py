"""Command-line entry point.

    capi-dispatch run                 # one dispatch pass (for cron)
    capi-dispatch serve               # HTTP trigger surface
    capi-dispatch debug-fire --e164 +15550001111 --session-id s1
    capi-dispatch fetch-rows          # print the analytics rows
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable

from capi_dispatch.config import get_config
from capi_dispatch.constants import DEFAULT_EXPERIMENT_LABEL
from capi_dispatch.debug import fire_debug_event
from capi_dispatch.errors import ConfigError
from capi_dispatch.logging_config import setup_logging
from capi_dispatch.runtime import DispatchServices, build_services

logger = logging.getLogger(__name__)


def _emit(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


async def _with_services(action: Callable[[DispatchServices], Awaitable[Any]]) -> Any:
    services = build_services(get_config())
    try:
        return await action(services)
    finally:
        await services.close()


async def _run(services: DispatchServices) -> dict[str, Any]:
    report = await services.orchestrator().run()
    return report.to_response()


async def _fetch_rows(services: DispatchServices) -> dict[str, Any]:
    rows = await services.source.fetch_rows()
    return {"rows": [row.model_dump(by_alias=True) for row in rows]}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="capi-dispatch", description="Chat-threshold conversion dispatch.")
    parser.add_argument("--log-level", default=None, help="Override CAPI_LOG_LEVEL.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run one dispatch pass and print the report.")

    serve_parser = sub.add_parser("serve", help="Serve the HTTP trigger surface.")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    debug_parser = sub.add_parser("debug-fire", help="Send one synthetic event, bypassing the ledger.")
    debug_parser.add_argument("--e164", required=True, help="International phone number, e.g. +15550001111.")
    debug_parser.add_argument("--session-id", required=True)
    debug_parser.add_argument("--experiment-label", default=DEFAULT_EXPERIMENT_LABEL)
    debug_parser.add_argument("--source-url", default=None)

    sub.add_parser("fetch-rows", help="Print the rows returned by the analytics question.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        if args.command == "serve":
            from capi_dispatch.api_server import serve

            serve(args.host, args.port)
            return 0

        if args.command == "run":
            _emit(asyncio.run(_with_services(_run)))
        elif args.command == "fetch-rows":
            _emit(asyncio.run(_with_services(_fetch_rows)))
        elif args.command == "debug-fire":

            async def _fire(services: DispatchServices) -> dict[str, Any]:
                result = await fire_debug_event(
                    services.delivery,
                    identity=args.e164,
                    session_id=args.session_id,
                    experiment_label=args.experiment_label,
                    source_url=args.source_url,
                    action_source=services.action_source,
                )
                return result.model_dump()

            _emit(asyncio.run(_with_services(_fire)))
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        _emit({"error": str(exc)})
        return 2
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("%s failed: %s", args.command, exc, exc_info=True)
        _emit({"error": str(exc) or f"{args.command} failed"})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
