"""Command line entry point for the shared metrics reporter."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Sequence, Tuple

from .collectors import CachedIpLocationService, IpInfoLocationService
from .config import SharedMetricsConfig
from .config_loader import configure_logging, load_config
from .metrics import MetricsWindow
from .services import SharedMetricsService
from .storage import JsonConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Opt-in hourly usage metrics reporter")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Report every hour until interrupted")
    _add_config_argument(run)

    report = sub.add_parser(
        "report-now",
        help="Run one report cycle from the persisted window",
    )
    _add_config_argument(report)
    report.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the report instead of posting it and keep the window intact",
    )

    show = sub.add_parser("show-state", help="Print the persisted metrics window")
    _add_config_argument(show)

    record = sub.add_parser("record", help="Account traffic for an access key")
    _add_config_argument(record)
    record.add_argument("--user", required=True, help="Access key identifier")
    record.add_argument("--bytes", type=int, required=True, help="Bytes transferred")
    record.add_argument(
        "--ip",
        action="append",
        default=[],
        help="Client IP address (may be repeated)",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config.logging)

    if args.command == "run":
        return _command_run(config)
    if args.command == "report-now":
        return asyncio.run(_command_report_now(config, dry_run=args.dry_run))
    if args.command == "show-state":
        return _command_show_state(config)
    if args.command == "record":
        return _command_record(config, args)

    parser.error("unknown command")
    return 1


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file",
    )


def _build_service(
    config: SharedMetricsConfig,
) -> Tuple[SharedMetricsService, IpInfoLocationService]:
    window = MetricsWindow(JsonConfig(config.storage.state_file))
    server_config = JsonConfig(config.storage.server_config_file)
    backend = IpInfoLocationService(config.ip_location)
    service = SharedMetricsService(
        window,
        server_config,
        config.reporting.metrics_url,
        CachedIpLocationService(backend, config.ip_location.cache_size),
        interval=config.reporting.interval,
        max_redirects=config.http.max_redirects,
        http_timeout=config.http.timeout,
    )
    return service, backend


def _command_run(config: SharedMetricsConfig) -> int:
    try:
        asyncio.run(_run_forever(config))
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        print("Interrupted, stopping reporter...", file=sys.stderr)
    return 0


async def _run_forever(config: SharedMetricsConfig) -> None:
    service, backend = _build_service(config)
    await service.start()
    logger.info("Shared metrics reporter started, posting to %s", config.reporting.metrics_url)
    try:
        await asyncio.Event().wait()
    finally:
        await service.stop()
        await backend.aclose()


async def _command_report_now(config: SharedMetricsConfig, *, dry_run: bool) -> int:
    service, backend = _build_service(config)
    try:
        if dry_run:
            report = await service.build_report()
        else:
            report = await service.generate_hourly_report()
            await service.wait_for_posts()
    finally:
        await backend.aclose()
    print(json.dumps(report.to_dict() if report else None, indent=2))
    return 0


def _command_show_state(config: SharedMetricsConfig) -> int:
    window = MetricsWindow(JsonConfig(config.storage.state_file))
    print(json.dumps(window.to_json(), indent=2, ensure_ascii=False))
    return 0


def _command_record(config: SharedMetricsConfig, args: argparse.Namespace) -> int:
    if args.bytes < 0:
        print("--bytes must not be negative", file=sys.stderr)
        return 2
    window = MetricsWindow(JsonConfig(config.storage.state_file))
    window.record_bytes_transferred(args.user, args.bytes, args.ip)
    print(json.dumps(window.to_json(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
