#!/usr/bin/env python3
"""
Remind recipients whose mandatory acknowledgment deadline has passed.

Meant to run once a day from a scheduler. Each overdue distribution is reminded
at most once; rows whose notification fails are retried by the next run.

Usage:
  python scripts/sweep_distribution_deadlines.py
  python scripts/sweep_distribution_deadlines.py --today 2026-03-01 --dry-run
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

from app.hse import models as _models  # noqa: F401
from app.hse.modules.distribution.service import find_overdue, sweep_overdue
from app.hse.notifier import RecordingNotifier, notifier_from_config
from scripts._db_utils import resolve_db_url, script_session


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {raw!r}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Send reminders for overdue mandatory acknowledgments.")
    parser.add_argument("--today", type=_parse_date, default=None, help="Reference date (default: today)")
    parser.add_argument("--dry-run", action="store_true", help="List overdue rows without notifying or writing")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    today = args.today or date.today()

    with script_session(resolve_db_url(args.database_url)) as s:
        if args.dry_run:
            rows = find_overdue(s, today=today)
            recorder = RecordingNotifier()
            for dist in rows:
                print(
                    f"[dry-run] distribution={dist.id} recipient={dist.recipient_name} "
                    f"document={dist.document.document_code} deadline={dist.deadline.isoformat()}",
                    flush=True,
                )
            sweep_overdue(s, notifier=recorder, today=today)
            s.rollback()
            print(f"[dry-run] {len(recorder.sent)} reminder(s) would be sent.", flush=True)
            return 0

        notifier = notifier_from_config(
            {
                "NOTIFIER_BACKEND": os.environ.get("NOTIFIER_BACKEND", "log"),
                "NOTIFIER_WEBHOOK_URL": os.environ.get("NOTIFIER_WEBHOOK_URL", ""),
            }
        )
        sent = sweep_overdue(s, notifier=notifier, today=today)
    print(f"Sent {sent} reminder(s).", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
