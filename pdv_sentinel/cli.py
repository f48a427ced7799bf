"""Command-line triggers for detection and synchronization runs.

Usage:
    python -m pdv_sentinel detect --days-back 7
    python -m pdv_sentinel sync --config erp.yaml --full
    python -m pdv_sentinel test-connection --config erp.yaml
"""

import argparse
import asyncio
import json
import sys

import structlog

from pdv_sentinel.config import settings
from pdv_sentinel.shared.exceptions import ConfigurationError, RunConflictError
from pdv_sentinel.shared.logging import setup_logging

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdv-sentinel", description="PDV Sentinel fraud detection and ERP sync"
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    detect = sub.add_parser("detect", help="Run all detection modules once")
    detect.add_argument(
        "--days-back", type=int, default=settings.detection_lookback_days, help="Lookback window"
    )

    sync = sub.add_parser("sync", help="Pull transactions from the configured ERP databases")
    sync.add_argument("--config", default=settings.erp_config_path, help="Connector YAML file")
    sync.add_argument("--full", action="store_true", help="Ignore --days-back and sync everything")
    sync.add_argument("--days-back", type=int, default=settings.sync_days_back)
    sync.add_argument("--batch-size", type=int, default=settings.sync_batch_size)
    sync.add_argument("--max-records", type=int, default=settings.sync_max_records)
    sync.add_argument("--no-dedup", action="store_true", help="Disable deduplication")
    sync.add_argument("--detect", action="store_true", help="Run detection after a successful sync")

    test = sub.add_parser("test-connection", help="Check connectivity to each configured ERP")
    test.add_argument("--config", default=settings.erp_config_path, help="Connector YAML file")

    return parser


async def _detect(args: argparse.Namespace) -> int:
    from pdv_sentinel.db.database import init_db
    from pdv_sentinel.domains.detection.orchestrator import get_orchestrator

    await init_db()
    result = await get_orchestrator().run(days_back=args.days_back, triggered_by="cli")
    _emit(
        {
            "detection_id": result.detection_id,
            "status": result.status.value,
            "message": result.message,
            "alerts_generated": result.total_alerts_generated,
            "summary": result.summary.model_dump(),
            "errors": result.errors,
        }
    )
    return 0 if result.success else 1


async def _sync(args: argparse.Namespace) -> int:
    from pdv_sentinel.db.database import init_db
    from pdv_sentinel.domains.sync.config import SyncOptions, load_connector_configs
    from pdv_sentinel.domains.sync.job import get_sync_job

    configs = load_connector_configs(_require_config(args.config))
    options = SyncOptions(
        batch_size=args.batch_size,
        max_records=args.max_records,
        days_back=args.days_back,
        full_sync=args.full,
        dedup_enabled=not args.no_dedup,
    )
    await init_db()
    result = await get_sync_job().run(configs, options, triggered_by="cli")
    _emit(result.model_dump(mode="json"))

    if args.detect and result.success:
        from pdv_sentinel.domains.detection.orchestrator import get_orchestrator

        sync_id = result.results[0].sync_id if result.results else None
        detection = await get_orchestrator().run(triggered_by="cli", sync_id=sync_id)
        _emit({"detection_id": detection.detection_id, "message": detection.message})
    return 0 if result.success else 1


async def _test_connection(args: argparse.Namespace) -> int:
    from pdv_sentinel.domains.sync.config import load_connector_configs
    from pdv_sentinel.domains.sync.job import get_sync_job

    job = get_sync_job()
    ok = True
    for config in load_connector_configs(_require_config(args.config)):
        connected = await job.test_connection(config)
        _emit({"source": config.source_name, "connected": connected})
        ok = ok and connected
    return 0 if ok else 1


def _require_config(path: str | None) -> str:
    if not path:
        raise ConfigurationError("--config is required when ERP_CONFIG_PATH is not set")
    return path


def _emit(payload: dict) -> None:
    print(json.dumps(payload, default=str))


COMMANDS = {
    "detect": _detect,
    "sync": _sync,
    "test-connection": _test_connection,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, settings.log_format)

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except (ConfigurationError, RunConflictError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
