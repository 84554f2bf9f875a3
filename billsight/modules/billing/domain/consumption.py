"""
Account-level consumption sync.

Stores a snapshot of the current month's consumption and forecast on each
run, and replaces the stored history with the last year of closed periods.
Every endpoint is best-effort: an unavailable one is logged and the rest of
the sync goes on.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billsight.models.consumption import ConsumptionHistory, ConsumptionSnapshot
from billsight.shared.adapters.base import BillingSource
from billsight.shared.adapters.feed_utils import (
    as_dict,
    as_list,
    parse_day,
    price_currency,
    price_value,
)
from billsight.shared.core.currency import ZERO
from billsight.shared.core.exceptions import ExternalAPIError

logger = structlog.get_logger()

CURRENT_PATH = "/me/consumption/usage/current"
FORECAST_PATH = "/me/consumption/usage/forecast"
HISTORY_PATH = "/me/consumption/usage/history"


def sum_entries(entries: Optional[List[Any]]) -> Decimal:
    return sum((price_value(as_dict(e).get("price")) for e in entries or []), ZERO)


def entries_currency(*feeds: Optional[List[Any]]) -> str:
    for entries in feeds:
        if entries:
            price = as_dict(entries[0]).get("price")
            if isinstance(price, dict) and price.get("currencyCode"):
                return str(price["currencyCode"])
    return "EUR"


def history_window(today: date) -> tuple[date, date]:
    """First day of the same month one year back, up to `today`."""
    return date(today.year - 1, today.month, 1), today


class ConsumptionSyncService:
    def __init__(
        self,
        source: BillingSource,
        session_maker: async_sessionmaker[AsyncSession],
    ):
        self.source = source
        self.session_maker = session_maker

    async def _fetch(
        self, path: str, params: Optional[dict[str, Any]] = None
    ) -> Optional[List[Any]]:
        try:
            return as_list(await self.source.get(path, params))
        except ExternalAPIError as e:
            logger.error("consumption_fetch_failed", path=path, error=str(e))
            return None

    async def run(self, today: Optional[date] = None) -> Dict[str, int]:
        """Returns {"snapshot": rows written, "history": rows written or -1 if unavailable}."""
        today = today or date.today()
        snapshot = await self.sync_snapshot(today)
        history = await self.sync_history(today)
        logger.info("consumption_sync_complete", snapshot=snapshot, history=history)
        return {"snapshot": snapshot, "history": history}

    async def sync_snapshot(self, today: date) -> int:
        current = await self._fetch(CURRENT_PATH)
        forecast = await self._fetch(FORECAST_PATH)
        current_total = sum_entries(current)
        forecast_total = sum_entries(forecast)
        if not current and current_total <= 0 and forecast_total <= 0:
            logger.info("consumption_snapshot_empty")
            return 0

        first = as_dict(current[0]) if current else {}
        async with self.session_maker() as session, session.begin():
            session.add(
                ConsumptionSnapshot(
                    period_start=parse_day(first.get("beginDate")) or today,
                    period_end=parse_day(first.get("endDate")) or today,
                    current_total=current_total,
                    forecast_total=forecast_total,
                    currency=entries_currency(current, forecast),
                    raw_data={"current": current, "forecast": forecast},
                )
            )
        return 1

    async def sync_history(self, today: date) -> int:
        begin, end = history_window(today)
        entries = await self._fetch(
            HISTORY_PATH, {"beginDate": begin.isoformat(), "endDate": end.isoformat()}
        )
        if entries is None:
            return -1
        if not entries:
            # An empty answer leaves the stored history in place.
            logger.info("consumption_history_empty")
            return 0

        async with self.session_maker() as session, session.begin():
            await session.execute(delete(ConsumptionHistory))
            for entry in entries:
                entry = as_dict(entry)
                elements = as_list(entry.get("elements"))
                session.add(
                    ConsumptionHistory(
                        period_start=parse_day(entry.get("beginDate")),
                        period_end=parse_day(entry.get("endDate")),
                        service_type=as_dict(elements[0]).get("planFamily") if elements else None,
                        total=price_value(entry.get("price")),
                        currency=price_currency(entry.get("price")),
                        raw_data=entry,
                    )
                )
        return len(entries)
