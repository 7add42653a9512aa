"""Run the payment-cycle maintenance jobs.

Usage: python scripts/cycle_jobs.py [renewals|reminders|overdue|all] [--date YYYY-MM-DD]

Intended to be scheduled once a day. Each job commits per cycle, so a rerun
after a partial failure only picks up what is still outstanding.
"""

import argparse
import sys
from datetime import date

from sqlmodel import Session

from subtrack.core.logging_setup import logger
from subtrack.db.session import engine, init_db
from subtrack.models.base import today
from subtrack.schemas.payment_cycle import JobReport
from subtrack.services.cycle_jobs import (
    cancel_overdue_invoices,
    create_due_renewal_cycles,
    send_renewal_reminders,
)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Payment cycle maintenance jobs")
    parser.add_argument("job", choices=("renewals", "reminders", "overdue", "all"), nargs="?", default="all")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Run as of this date")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    run_date = args.date or today()
    init_db()

    reports: dict[str, JobReport] = {}
    with Session(engine) as session:
        if args.job in ("renewals", "all"):
            reports["renewals"] = create_due_renewal_cycles(session, run_date)
        if args.job in ("reminders", "all"):
            reports["reminders"] = send_renewal_reminders(session, run_date)
        if args.job in ("overdue", "all"):
            reports["overdue"] = cancel_overdue_invoices(session, run_date)

    failed = False
    for name, report in reports.items():
        print(f"{name}: checked={report.checked} changed={report.changed} errors={len(report.errors)}")
        for error in report.errors:
            print(f"  - {error}")
        failed = failed or bool(report.errors)
    if failed:
        logger.warning("Cycle jobs finished with errors for %s", run_date.isoformat())
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
