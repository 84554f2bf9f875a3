"""
Import bills from the OVHcloud account into the local database.

Usage:
  python -m scripts.import_bills --full
  python -m scripts.import_bills --from 2025-01-01 --to 2025-12-31
  python -m scripts.import_bills --diff
  python -m scripts.import_bills --diff --since 2025-06-01 --all
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import Optional, Sequence

import structlog

from billsight.models.import_log import ImportType
from billsight.modules.billing.domain.ingestion import ImportOptions, ImportPipeline
from billsight.modules.billing.domain.validation import validate_date_range
from billsight.shared.adapters.ovh import OVHBillingClient
from billsight.shared.core.exceptions import BillsightException
from billsight.shared.core.logging import setup_logging
from billsight.shared.db.session import create_schema, get_session_maker

logger = structlog.get_logger()


def _parse_day(value: str) -> date:
    try:
        return validate_date_range(value, value)[0]
    except BillsightException as e:
        raise argparse.ArgumentTypeError(e.message) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import OVHcloud bills")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--full",
        action="store_true",
        help="Clear all stored bills, lines and projects, then reimport everything",
    )
    mode.add_argument("--diff", action="store_true", help="Import bills newer than the latest stored one")
    mode.add_argument("--from", dest="from_date", type=_parse_day, help="Period start (YYYY-MM-DD)")
    parser.add_argument("--to", dest="to_date", type=_parse_day, help="Period end, defaults to today")
    parser.add_argument("--since", type=_parse_day, help="Differential start date override")
    parser.add_argument(
        "--include-consumption",
        action="store_true",
        help="Snapshot current/forecast consumption and refresh one year of history",
    )
    parser.add_argument("--include-inventory", action="store_true", help="Sync service inventory first")
    parser.add_argument(
        "--include-account",
        action="store_true",
        help="Fetch payment info per bill, debt, credit balances and deposits",
    )
    parser.add_argument(
        "--include-cloud-details",
        action="store_true",
        help="Sync cloud project usage, instances and quotas",
    )
    parser.add_argument("--all", action="store_true", help="Enable every --include-* option")
    return parser


def options_from_args(args: argparse.Namespace) -> ImportOptions:
    if args.full:
        mode = ImportType.FULL
    elif args.diff:
        mode = ImportType.DIFFERENTIAL
    else:
        mode = ImportType.PERIOD
    return ImportOptions(
        mode=mode,
        from_date=args.from_date,
        to_date=args.to_date,
        since=args.since if args.diff else None,
        include_consumption=args.include_consumption or args.all,
        include_inventory=args.include_inventory or args.all,
        include_account=args.include_account or args.all,
        include_cloud_details=args.include_cloud_details or args.all,
    )


async def run_import(options: ImportOptions) -> int:
    await create_schema()
    try:
        async with OVHBillingClient() as client:
            result = await ImportPipeline(client, get_session_maker()).run(options)
    except BillsightException as e:
        logger.error("import_aborted", error=e.message, code=e.code)
        print(json.dumps(e.to_dict()), file=sys.stderr)
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        options = options_from_args(args)
    except BillsightException as e:
        print(json.dumps(e.to_dict()), file=sys.stderr)
        return 2
    return asyncio.run(run_import(options))


if __name__ == "__main__":
    sys.exit(main())
