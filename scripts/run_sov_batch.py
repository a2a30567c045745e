"""
Run a share-of-voice batch for one location from CLI, optionally followed
by a truth audit and a revenue leak snapshot.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import asdict

from app.config import SUPPORTED_ENGINES
from app.services.visibility_service import get_visibility_service
from db.repositories.errors import LocationNotFoundError
from db.session import SessionLocal


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a share-of-voice batch for one location.")
    parser.add_argument("--org-id", dest="org_id", required=True, help="Organization UUID.")
    parser.add_argument("--location-id", dest="location_id", required=True, help="Location UUID.")
    parser.add_argument(
        "--engine",
        dest="engines",
        action="append",
        choices=SUPPORTED_ENGINES,
        default=None,
        help="Engine to query; repeat for several. Defaults to SOV_ENGINES.",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Track missing reference-library queries before running.",
    )
    parser.add_argument(
        "--truth-audit",
        dest="truth_audit",
        action="store_true",
        help="Audit what each engine says about the location after the batch.",
    )
    parser.add_argument(
        "--revenue-leak",
        dest="revenue_leak",
        action="store_true",
        help="Store a revenue leak snapshot once the runs are persisted.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    service = get_visibility_service()
    with SessionLocal() as db:
        try:
            seeded = []
            if args.seed:
                seeded = service.seed_queries(db=db, org_id=args.org_id, location_id=args.location_id)
            result = service.run_sov_batch(
                db=db,
                org_id=args.org_id,
                location_id=args.location_id,
                engines=args.engines,
            )
            audit = None
            if args.truth_audit:
                audit = service.run_truth_audit(
                    db=db,
                    org_id=args.org_id,
                    location_id=args.location_id,
                    engines=args.engines,
                )
            leak = None
            if args.revenue_leak:
                leak = service.snapshot_revenue_leak(db=db, org_id=args.org_id, location_id=args.location_id)
        except (LocationNotFoundError, ValueError) as exc:
            print(json.dumps({"success": False, "error": str(exc)}, indent=2))
            return 2

    summary = result.summary
    payload = {
        "success": summary.success,
        "queries_run": summary.queries_run,
        "queries_cited": summary.queries_cited,
        "first_mover_count": summary.first_mover_count,
        "degraded_count": summary.degraded_count,
        "seeded_queries": len(seeded),
        "errors": [asdict(error) for error in summary.errors],
        "snapshot": asdict(result.snapshot) if result.snapshot is not None else None,
        "rows_written": result.persistence.rows_written,
        "rows_failed": result.persistence.rows_failed,
    }
    if audit is not None:
        payload["truth_audit"] = {
            "success": audit.summary.success,
            "records": [asdict(record) for record in audit.summary.records],
            "errors": [asdict(error) for error in audit.summary.errors],
            "rows_written": audit.persistence.rows_written,
            "rows_failed": audit.persistence.rows_failed,
        }
    if leak is not None:
        payload["revenue_leak"] = {
            **asdict(leak.leak),
            "rows_written": leak.persistence.rows_written,
            "rows_failed": leak.persistence.rows_failed,
        }
    print(json.dumps(payload, indent=2, default=str))
    return 0 if summary.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
