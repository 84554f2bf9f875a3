"""
Account standing sync: debt, credit balances with their movements, deposits.

Each call is best-effort. A failing balance, movement or deposit is logged and
left out of the totals; the snapshot row is always written.
"""

from decimal import Decimal
from typing import Any, Dict, List
from urllib.parse import quote

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billsight.models.consumption import AccountBalance, CreditMovement
from billsight.modules.billing.domain.persistence import upsert_statement
from billsight.schemas.billing import CreditMovementRecord
from billsight.shared.adapters.base import BillingSource
from billsight.shared.adapters.feed_utils import as_dict, as_list, parse_payload, price_value
from billsight.shared.core.currency import ZERO, round_money
from billsight.shared.core.exceptions import ExternalAPIError

logger = structlog.get_logger()


async def upsert_credit_movements(
    db: AsyncSession, movements: List[CreditMovementRecord]
) -> int:
    for movement in movements:
        stmt = upsert_statement(db, CreditMovement).values(**movement.model_dump())
        stmt = stmt.on_conflict_do_update(
            index_elements=[CreditMovement.id],
            set_={
                "balance_name": stmt.excluded.balance_name,
                "amount": stmt.excluded.amount,
                "movement_date": stmt.excluded.movement_date,
                "description": stmt.excluded.description,
                "movement_type": stmt.excluded.movement_type,
            },
        )
        await db.execute(stmt)
    return len(movements)


class AccountSyncService:
    def __init__(
        self,
        source: BillingSource,
        session_maker: async_sessionmaker[AsyncSession],
    ):
        self.source = source
        self.session_maker = session_maker

    async def run(self) -> Dict[str, Any]:
        debt = await self._debt_balance()
        credit, movements = await self._credit_balances()
        deposits = await self._deposit_total()

        async with self.session_maker() as session, session.begin():
            await upsert_credit_movements(session, movements)
            session.add(
                AccountBalance(
                    debt_balance=debt,
                    credit_balance=credit,
                    deposit_total=deposits,
                    currency="EUR",
                )
            )

        summary = {
            "debt_balance": round_money(debt),
            "credit_balance": round_money(credit),
            "deposit_total": round_money(deposits),
            "movements": len(movements),
        }
        logger.info("account_sync_complete", **summary)
        return summary

    async def _debt_balance(self) -> Decimal:
        try:
            debt = as_dict(await self.source.get("/me/debtAccount"))
        except ExternalAPIError as e:
            logger.error("debt_account_unavailable", error=str(e))
            return ZERO
        return price_value(debt.get("todoAmount"))

    async def _credit_balances(self) -> tuple[Decimal, List[CreditMovementRecord]]:
        total = ZERO
        movements: List[CreditMovementRecord] = []
        try:
            balance_ids = [str(b) for b in as_list(await self.source.get("/me/credit/balance"))]
        except ExternalAPIError as e:
            logger.error("credit_balances_unavailable", error=str(e))
            return total, movements

        for balance_id in balance_ids:
            base = f"/me/credit/balance/{quote(balance_id, safe='')}"
            try:
                balance = as_dict(await self.source.get(base))
                movement_ids = [str(m) for m in as_list(await self.source.get(f"{base}/movement"))]
            except ExternalAPIError as e:
                logger.error("credit_balance_failed", balance_id=balance_id, error=str(e))
                continue
            total += price_value(balance.get("amount"))

            for movement_id in movement_ids:
                try:
                    payload = as_dict(
                        await self.source.get(f"{base}/movement/{quote(movement_id, safe='')}")
                    )
                    movements.append(
                        parse_payload(
                            f"credit movement {balance_id}/{movement_id}",
                            lambda: CreditMovementRecord.from_api(balance_id, movement_id, payload),
                        )
                    )
                except ExternalAPIError as e:
                    logger.warning(
                        "credit_movement_failed",
                        balance_id=balance_id,
                        movement_id=movement_id,
                        error=str(e),
                    )
        return total, movements

    async def _deposit_total(self) -> Decimal:
        total = ZERO
        try:
            deposit_ids = [str(d) for d in as_list(await self.source.get("/me/deposit"))]
        except ExternalAPIError as e:
            logger.error("deposits_unavailable", error=str(e))
            return total

        for deposit_id in deposit_ids:
            try:
                deposit = as_dict(
                    await self.source.get(f"/me/deposit/{quote(deposit_id, safe='')}")
                )
            except ExternalAPIError as e:
                logger.debug("deposit_skipped", deposit_id=deposit_id, error=str(e))
                continue
            total += price_value(deposit.get("amount"))
        return total
