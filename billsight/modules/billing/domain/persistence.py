"""
Billing persistence: idempotent storage of bills, classified lines and
projects, plus the import audit log.

Methods never commit; callers own the transaction boundary. A bill and its
lines are written by `save_bill` and are expected to run inside one
`session.begin()` block so they commit together or not at all.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from billsight.models.billing import Bill, BillDetail, Project
from billsight.models.import_log import ImportLog, ImportStatus, ImportType
from billsight.modules.billing.domain.classification import (
    ClassificationContext,
    classify_line,
)
from billsight.schemas.billing import BillLineRecord, BillRecord, PaymentRecord, ProjectRecord
from billsight.shared.core.currency import round_money
from billsight.shared.core.exceptions import ResourceNotFoundError

logger = structlog.get_logger()

IMPORT_HISTORY_LIMIT = 10
LINE_BATCH_SIZE = 500


def upsert_statement(db: AsyncSession, model: Any) -> Any:
    """Dialect `INSERT` supporting `on_conflict_do_update` (PostgreSQL or SQLite)."""
    dialect = db.bind.dialect.name if db.bind is not None else "sqlite"
    if dialect == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def line_id(bill_id: str, detail_id: str) -> str:
    return f"{bill_id}_{detail_id}"


class BillingPersistenceService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def upsert_projects(self, projects: Iterable[ProjectRecord]) -> int:
        count = 0
        for project in projects:
            stmt = upsert_statement(self.db, Project).values(
                id=project.id,
                name=project.name,
                description=project.description,
                status=project.status,
                created_at=project.created_at,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[Project.id],
                set_={
                    "name": stmt.excluded.name,
                    "description": stmt.excluded.description,
                    "status": stmt.excluded.status,
                    "created_at": stmt.excluded.created_at,
                    "updated_at": func.now(),
                },
            )
            await self.db.execute(stmt)
            count += 1
        return count

    async def project_ids(self) -> set[str]:
        return set((await self.db.execute(select(Project.id))).scalars().all())

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    async def bill_exists(self, bill_id: str) -> bool:
        found = await self.db.execute(select(Bill.id).where(Bill.id == bill_id))
        return found.scalar_one_or_none() is not None

    async def existing_bill_ids(self, bill_ids: Iterable[str]) -> set[str]:
        ids = list(bill_ids)
        if not ids:
            return set()
        rows = await self.db.execute(select(Bill.id).where(Bill.id.in_(ids)))
        return set(rows.scalars().all())

    async def latest_bill_date(self) -> Optional[date]:
        return (await self.db.execute(select(func.max(Bill.date)))).scalar_one_or_none()

    async def save_bill(
        self,
        bill: BillRecord,
        lines: List[BillLineRecord],
        context: ClassificationContext,
        payment: Optional[PaymentRecord] = None,
    ) -> int:
        """
        Upsert a bill, then replace its lines with freshly classified ones.

        Returns the number of lines written. Payment fields are only touched
        when a payment record is given.
        """
        values: Dict[str, Any] = {
            "id": bill.id,
            "date": bill.bill_date,
            "price_without_tax": bill.price_without_tax,
            "price_with_tax": bill.price_with_tax,
            "tax": bill.tax,
            "currency": bill.currency,
            "pdf_url": bill.pdf_url,
            "html_url": bill.html_url,
        }
        if payment is not None:
            values.update(
                payment_type=payment.payment_type,
                payment_date=payment.payment_date,
                payment_status=payment.status,
            )

        stmt = upsert_statement(self.db, Bill).values(**values)
        update_set = {key: stmt.excluded[key] for key in values if key != "id"}
        update_set["imported_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=[Bill.id], set_=update_set)
        await self.db.execute(stmt)

        await self.db.execute(delete(BillDetail).where(BillDetail.bill_id == bill.id))

        by_id: Dict[str, Dict[str, Any]] = {}
        for line in lines:
            result = classify_line(line.domain, line.description, context)
            row_id = line_id(bill.id, line.id)
            # Repeated detail ids collapse to the last occurrence.
            by_id[row_id] = {
                "id": row_id,
                "bill_id": bill.id,
                "project_id": result.project_id,
                "domain": line.domain,
                "description": line.description,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "total_price": line.total_price,
                "service_type": result.service_type.value,
                "resource_type": result.resource_type.value,
            }
        rows = list(by_id.values())
        for i in range(0, len(rows), LINE_BATCH_SIZE):
            batch = rows[i : i + LINE_BATCH_SIZE]
            insert_stmt = upsert_statement(self.db, BillDetail).values(batch)
            insert_stmt = insert_stmt.on_conflict_do_update(
                index_elements=[BillDetail.id],
                set_={
                    column: insert_stmt.excluded[column]
                    for column in batch[0]
                    if column != "id"
                },
            )
            await self.db.execute(insert_stmt)

        logger.debug("bill_persisted", bill_id=bill.id, lines=len(rows))
        return len(rows)

    async def clear_all(self) -> None:
        """Remove every bill, line and project. Import history is kept."""
        await self.db.execute(delete(BillDetail))
        await self.db.execute(delete(Bill))
        await self.db.execute(delete(Project))
        logger.warning("billing_data_cleared")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_bills(
        self, from_date: Optional[date] = None, to_date: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(Bill, func.count(BillDetail.id).label("details_count"))
            .outerjoin(BillDetail, BillDetail.bill_id == Bill.id)
            .group_by(Bill.id)
            .order_by(Bill.date.desc(), Bill.id)
        )
        if from_date:
            stmt = stmt.where(Bill.date >= from_date)
        if to_date:
            stmt = stmt.where(Bill.date <= to_date)
        rows = (await self.db.execute(stmt)).all()
        return [_bill_to_dict(row.Bill, int(row.details_count or 0)) for row in rows]

    async def get_bill(self, bill_id: str) -> Dict[str, Any]:
        bill = await self.db.get(Bill, bill_id)
        if bill is None:
            raise ResourceNotFoundError(f"Bill {bill_id} not found")
        count = (
            await self.db.execute(
                select(func.count(BillDetail.id)).where(BillDetail.bill_id == bill_id)
            )
        ).scalar_one()
        return _bill_to_dict(bill, int(count or 0))

    async def bill_details(self, bill_id: str) -> List[Dict[str, Any]]:
        rows = (
            await self.db.execute(
                select(BillDetail)
                .where(BillDetail.bill_id == bill_id)
                .order_by(BillDetail.total_price.desc(), BillDetail.id)
            )
        ).scalars().all()
        return [
            {
                "id": d.id,
                "bill_id": d.bill_id,
                "project_id": d.project_id,
                "domain": d.domain,
                "description": d.description,
                "quantity": float(d.quantity) if d.quantity is not None else None,
                "unit_price": float(d.unit_price or 0),
                "total_price": round_money(d.total_price),
                "service_type": d.service_type,
                "resource_type": d.resource_type,
            }
            for d in rows
        ]

    # ------------------------------------------------------------------
    # Import log
    # ------------------------------------------------------------------

    async def start_import(
        self,
        import_type: ImportType,
        from_date: Optional[date],
        to_date: Optional[date],
    ) -> ImportLog:
        log = ImportLog(
            type=import_type.value,
            from_date=from_date,
            to_date=to_date,
            status=ImportStatus.RUNNING.value,
            started_at=datetime.now(timezone.utc),
        )
        self.db.add(log)
        await self.db.flush()
        return log

    async def complete_import(self, log_id: int, stats: Dict[str, int]) -> ImportLog:
        log = await self._import_log(log_id)
        log.bills_imported = stats.get("bills", 0)
        log.details_imported = stats.get("details", 0)
        log.projects_imported = stats.get("projects", 0)
        log.failures = stats.get("failures", 0)
        log.status = ImportStatus.SUCCESS.value
        log.completed_at = datetime.now(timezone.utc)
        await self.db.flush()
        return log

    async def fail_import(
        self, log_id: int, message: str, stats: Optional[Dict[str, int]] = None
    ) -> ImportLog:
        log = await self._import_log(log_id)
        if stats:
            log.bills_imported = stats.get("bills", 0)
            log.details_imported = stats.get("details", 0)
            log.projects_imported = stats.get("projects", 0)
            log.failures = stats.get("failures", 0)
        log.status = ImportStatus.FAILED.value
        log.error_message = message
        log.completed_at = datetime.now(timezone.utc)
        await self.db.flush()
        return log

    async def import_status(self) -> Dict[str, Any]:
        rows = (
            await self.db.execute(
                select(ImportLog)
                .order_by(ImportLog.started_at.desc(), ImportLog.id.desc())
                .limit(IMPORT_HISTORY_LIMIT)
            )
        ).scalars().all()
        history = [log.to_dict() for log in rows]
        return {"latest": history[0] if history else None, "history": history}

    async def _import_log(self, log_id: int) -> ImportLog:
        log = await self.db.get(ImportLog, log_id)
        if log is None:
            raise ResourceNotFoundError(f"Import run {log_id} not found")
        return log


def _bill_to_dict(bill: Bill, details_count: int) -> Dict[str, Any]:
    return {
        "id": bill.id,
        "date": bill.date.isoformat(),
        "price_without_tax": round_money(bill.price_without_tax),
        "price_with_tax": round_money(bill.price_with_tax),
        "tax": round_money(bill.tax),
        "currency": bill.currency,
        "pdf_url": bill.pdf_url,
        "html_url": bill.html_url,
        "payment_type": bill.payment_type,
        "payment_date": bill.payment_date.isoformat() if bill.payment_date else None,
        "payment_status": bill.payment_status,
        "details_count": details_count,
    }
