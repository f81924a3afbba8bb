"""Command-line runner for interest accrual (cron / scheduler target)"""

import argparse
import json
import logging
import signal
import sys
import threading
from dataclasses import asdict
from typing import List, Optional

from credit_ledger.config import settings
from credit_ledger.domain.exceptions import LedgerError
from credit_ledger.domain.frequencies import Frequency
from credit_ledger.infrastructure.database.session import session_scope
from credit_ledger.infrastructure.observability.logging import setup_logging
from credit_ledger.services.accrual import APPLY_TO, APPLY_TO_ALL, AccrualOrchestrator
from credit_ledger.services.scheduler import run_scheduled_accrual


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credit-ledger-accrue",
        description="Apply one period of interest to accounts on a frequency tier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s monthly                  # Accrue accounts whose month has elapsed
  %(prog)s monthly --preview        # Show what would be applied, write nothing
  %(prog)s daily --account 42 --force
  %(prog)s monthly --apply-to high_utilization
  %(prog)s weekly --scheduled       # Honour auto-accrual flags (cron entry)
        """,
    )
    parser.add_argument(
        "frequency",
        choices=[frequency.value for frequency in Frequency],
        help="Frequency tier to process",
    )
    parser.add_argument("--account", type=int, default=None, help="Only process this account id")
    parser.add_argument(
        "--apply-to",
        choices=APPLY_TO,
        default=APPLY_TO_ALL,
        help="Account selection (specific_tier needs --tier)",
    )
    parser.add_argument("--tier", type=int, default=None, help="Risk tier id for --apply-to specific_tier")
    parser.add_argument("--force", action="store_true", help="Apply even if the period has not elapsed")
    parser.add_argument("--preview", action="store_true", help="Dry run: compute and report only")
    parser.add_argument(
        "--scheduled",
        action="store_true",
        help="Run as the scheduled job (skips when auto accrual is disabled)",
    )
    parser.add_argument("--reason", type=str, default=None, help="Description written to the transaction log")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging(settings.log_level)
    args = build_parser().parse_args(argv)

    cancel_event = threading.Event()

    def _request_stop(signum, frame):
        logging.warning("Stop requested, finishing current account", extra={"signal": signum})
        cancel_event.set()

    previous_handlers = {sig: signal.signal(sig, _request_stop) for sig in (signal.SIGINT, signal.SIGTERM)}

    try:
        if args.scheduled:
            summary = run_scheduled_accrual(args.frequency, cancel_event=cancel_event)
            if summary is None:
                print(json.dumps({"frequency": args.frequency, "skipped": "auto accrual disabled"}))
                return 0
        else:
            with session_scope() as db:
                summary = AccrualOrchestrator.from_db(db).run(
                    args.frequency,
                    account_id=args.account,
                    apply_to=args.apply_to,
                    tier_id=args.tier,
                    force=args.force,
                    dry_run=args.preview,
                    reason=args.reason,
                    cancel_event=cancel_event,
                )
    except LedgerError as e:
        logging.error(f"Accrual run failed: {e}", extra={"frequency": args.frequency})
        return 1
    finally:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)

    print(json.dumps(asdict(summary), default=str, indent=2))
    return 2 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
