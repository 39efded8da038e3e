"""CLI entrypoint for the directory lifecycle engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, dataclass
from pathlib import Path

from lifecycle.common.config_loader import ConfigBundle, load_config
from lifecycle.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from lifecycle.common.errors import LifecycleError
from lifecycle.common.http import HttpClient
from lifecycle.common.ids import generate_run_id
from lifecycle.common.logging import build_logger, log_event
from lifecycle.common.time_utils import parse_timestamp
from lifecycle.geocoding.resolver import GeocodeResolver
from lifecycle.notifications.dispatcher import NotificationDispatcher
from lifecycle.scheduling.scheduler import CronTrigger, Scheduler
from lifecycle.verification.mutator import StateMutator
from lifecycle.verification.rules import VerificationRules
from lifecycle.verification.scanner import VerificationScanner
from lifecycle.verification.store import JsonDocumentStore


@dataclass
class Engine:
    client: HttpClient
    store: JsonDocumentStore
    scanner: VerificationScanner


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=list(COMMANDS))
    parser.add_argument("postcode", nargs="?", default=None)
    parser.add_argument("--now", default=None, help="ISO-8601 timestamp used instead of the current time")
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--store", default=None, help="override storage.path")
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def build_engine(bundle: ConfigBundle, *, store_path: Path | None = None, workers: int | None = None) -> Engine:
    client = HttpClient(
        rate_limits={
            "postcodes": float(bundle.geocoding.get("rate_per_sec", 0) or 0),
            "sendgrid": float(bundle.notifications.get("rate_per_sec", 0) or 0),
        }
    )
    store = JsonDocumentStore.open(store_path or bundle.storage_path)
    mutator = StateMutator(store, cascade_to_services=bool(bundle.verification["cascade_to_services"]))
    scanner = VerificationScanner(
        store,
        NotificationDispatcher.from_config(client, bundle.notifications),
        mutator,
        rules=VerificationRules.from_config(bundle.verification),
        max_workers=workers or int(bundle.verification["max_workers"]),
    )
    return Engine(client=client, store=store, scanner=scanner)


def _print_json(payload: dict) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True) + "\n")


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id(args.command)
    data_dir = Path(args.data_dir)
    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    bundle = load_config(Path(args.config_dir), overlay_config_dir=overlay_config_dir)
    now = parse_timestamp(args.now)

    if args.command == "geocode":
        if not args.postcode:
            log_event(logger, "geocode requires a postcode", level=logging.ERROR, run_id=run_id, event="CLI_USAGE")
            return EXIT_HARD_FAIL
        with HttpClient() as client:
            result = GeocodeResolver.from_config(client, bundle.geocoding).resolve(args.postcode)
        _print_json({"postcode": args.postcode, "result": None if result is None else asdict(result)})
        return EXIT_SUCCESS if result is not None else EXIT_PARTIAL

    engine = build_engine(
        bundle,
        store_path=Path(args.store) if args.store else None,
        workers=args.workers,
    )
    with engine.client:
        if args.command == "preview":
            _print_json(engine.scanner.preview(now).to_dict())
            return EXIT_SUCCESS

        scheduler = Scheduler(
            engine.scanner,
            CronTrigger.from_config(bundle.verification),
            reports_dir=bundle.reports_dir,
        )
        if args.command == "scan":
            report = scheduler.run_once(now, run_id=run_id)
            _print_json(report.to_dict())
            return EXIT_SUCCESS if report.status == "success" else EXIT_PARTIAL

        scheduler.start()
        try:
            while scheduler.running:
                scheduler.wait(60)
        except KeyboardInterrupt:
            log_event(logger, "interrupt received", run_id=run_id, component="scheduler", event="SCHEDULER_INTERRUPT")
        finally:
            scheduler.stop()
        return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except LifecycleError as exc:
        logging.getLogger("lifecycle").error("run aborted: %s", exc, extra={"error_code": exc.error_code})
        return EXIT_HARD_FAIL
    except Exception:
        logging.getLogger("lifecycle").exception("unexpected failure")
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
