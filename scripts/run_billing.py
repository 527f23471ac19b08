#!/usr/bin/env python3
"""
Run the billing job once, outside the API process.

Usage:
  python scripts/run_billing.py              # generate invoices, then sweep overdue
  python scripts/run_billing.py --phase generate
  python scripts/run_billing.py --phase overdue
  # Requires DATABASE_URL in .env (or export)
"""
import argparse
import asyncio
import os
import sys

# Load .env from project root
from dotenv import load_dotenv
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(_root, ".env"))

# Add project root to path
sys.path.insert(0, _root)

from app.core.logging import setup_logging
from app.database import close_db
from app.services.billing_service import (
    check_overdue_invoices,
    process_recurring_invoices,
    run_billing_cron_jobs,
)


async def run(phase: str) -> int:
    try:
        if phase == "generate":
            report = await process_recurring_invoices()
            print(
                f"Generated {report.generated}, skipped {report.skipped}, "
                f"failed {report.failed}, repaired {report.repaired}"
            )
            return 1 if report.failed else 0
        if phase == "overdue":
            marked = await check_overdue_invoices()
            print(f"Marked {marked} invoice(s) overdue")
            return 0
        result = await run_billing_cron_jobs()
        for error in result.errors:
            print(f"ERROR: {error}")
        return 1 if result.errors else 0
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Run the recurring billing job once")
    parser.add_argument("--phase", choices=["all", "generate", "overdue"], default="all")
    args = parser.parse_args()
    setup_logging()
    sys.exit(asyncio.run(run(args.phase)))


if __name__ == "__main__":
    main()
