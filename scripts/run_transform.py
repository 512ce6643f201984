"""
Run a transform from the CLI.

    python -m scripts.run_transform upload <upload_id> --tenant acme
    python -m scripts.run_transform pos-inventory --tenant acme --provider square
    python -m scripts.run_transform pos-sales --tenant acme --since 2026-10-01T00:00:00Z

Exit codes: 0 completed, 1 error-rate threshold exceeded, 2 precondition failed.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import uuid
from datetime import datetime

from app.config import get_transform_settings
from app.services.transform_service import (
    TransformPreconditionError,
    TransformThresholdExceededError,
    get_transform_service,
)
from db.session import session_scope


def _parse_since(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Transform raw records into canonical inventory and sales.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Transform a validated CSV upload.")
    upload.add_argument("upload_id", type=uuid.UUID)
    upload.add_argument("--record-type", dest="record_type", default=None, choices=("inventory", "sales"))

    pos_inventory = subparsers.add_parser("pos-inventory", help="Transform raw POS catalog items.")
    pos_inventory.add_argument("--provider", default="square")

    pos_sales = subparsers.add_parser("pos-sales", help="Transform raw POS order line items.")
    pos_sales.add_argument("--since", type=_parse_since, default=None, help="ISO-8601 lower bound on opened_at.")
    pos_sales.add_argument("--provider", default="square")

    for subparser in subparsers.choices.values():
        subparser.add_argument("--tenant", dest="tenant_id", required=True)
        subparser.add_argument("--dry-run", dest="dry_run", action="store_true")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    service = get_transform_service()
    flagged_limit = get_transform_settings().flagged_review_limit
    try:
        with session_scope() as db:
            if args.command == "upload":
                result = service.transform_upload(
                    db=db,
                    upload_id=args.upload_id,
                    tenant_id=args.tenant_id,
                    dry_run=args.dry_run,
                    expected_record_type=args.record_type,
                )
            elif args.command == "pos-inventory":
                result = service.transform_pos_catalog(
                    db=db,
                    tenant_id=args.tenant_id,
                    provider=args.provider,
                    dry_run=args.dry_run,
                )
            else:
                result = service.transform_pos_orders(
                    db=db,
                    tenant_id=args.tenant_id,
                    provider=args.provider,
                    dry_run=args.dry_run,
                    since=args.since,
                )
    except TransformThresholdExceededError as exc:
        print(json.dumps(exc.to_dict(), indent=2, default=str))
        return 1
    except TransformPreconditionError as exc:
        print(json.dumps(exc.to_dict(), indent=2, default=str))
        return 2

    print(json.dumps(result.to_dict(flagged_limit=flagged_limit), indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
