#!/usr/bin/env python3
"""
Run a Gmail scan cycle from the command line (same code path as POST /api/gmail/scan).

Usage (from backend directory, with the project installed or PYTHONPATH=.):
  python scripts/scan_owner.py --owner-id 3
  python scripts/scan_owner.py --user-email me@example.com
  python scripts/scan_owner.py --all

Options:
  --owner-id ID       Scan this owner
  --user-email EMAIL  Scan the owner with this email (looks up the id)
  --all               Scan every owner with a connected Gmail account, one after another
"""
import argparse
import os
import sys

# Ensure the backend package is importable when run as a script from backend or project root
_script_dir = os.path.dirname(os.path.abspath(__file__))
_backend = os.path.dirname(_script_dir)
if _backend not in sys.path:
    sys.path.insert(0, _backend)

from jobscan.database import SessionLocal
from jobscan.errors import ScanError
from jobscan.models import GmailCredential, User
from jobscan.services.ingestion import run_scan_for_owner


def scan_one(db, owner_id: int) -> bool:
    try:
        result = run_scan_for_owner(db, owner_id)
    except ScanError as e:
        print(f"owner {owner_id}: {e.code}: {e.message}", file=sys.stderr)
        return False
    counts = result.to_dict()
    print(
        f"owner {owner_id}: {counts['processedCount']} processed, "
        f"{counts['jobRelatedCount']} job entries, {counts['skippedCount']} already ingested, "
        f"{counts['errorCount']} errors"
    )
    return True


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run a Gmail scan cycle for one or all owners.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--owner-id", type=int, default=None, help="Owner (user) id to scan")
    group.add_argument("--user-email", type=str, default=None, help="Email of the owner to scan")
    group.add_argument("--all", action="store_true", help="Scan every owner with a Gmail credential")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        if args.all:
            owner_ids = [row.owner_id for row in db.query(GmailCredential.owner_id).all()]
        elif args.user_email is not None:
            user = db.query(User).filter(User.email == args.user_email.strip()).first()
            if not user:
                print(f"User not found: {args.user_email}", file=sys.stderr)
                return 1
            owner_ids = [user.id]
        else:
            owner_ids = [args.owner_id]
        ok = [scan_one(db, owner_id) for owner_id in owner_ids]
        return 0 if all(ok) else 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
