#!/usr/bin/env python3
"""Queue or run the wiki permission reconciliation.

Example:
  python scripts/run_permission_check.py            # queue on the worker
  python scripts/run_permission_check.py --sync     # run in this process
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.directory_client import HttpDirectoryProvider
from app.services.wiki_permission_check_service import run_permission_check
from app.worker.tasks_wiki_permissions import check_wiki_permissions_task


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile wiki permission ids against the directory")
    parser.add_argument("--sync", action="store_true", help="run in-process instead of queueing")
    parser.add_argument("--reason", default="cli")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if not args.sync:
        job = check_wiki_permissions_task.delay(reason=args.reason)
        print(f"queued wiki permission check task_id={job.id}")
        return

    configure_logging()
    with SessionLocal() as db:
        summary = run_permission_check(db, HttpDirectoryProvider())
    print(json.dumps(summary.as_dict(), ensure_ascii=False, indent=2))
    if summary.status == "failed":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
