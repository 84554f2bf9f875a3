"""
Bill import pipeline.

One run:
  1. resolve the window (full / differential / period) and open an ImportLog
  2. load projects (fatal if the list is unavailable)
  3. optionally sync inventory, then snapshot the classification context
  4. list bills for the window (fatal if unavailable) and skip stored ones on
     differential runs
  5. fetch each bill and its lines with bounded concurrency, classify and
     persist bill + lines in one transaction
  6. optionally sync consumption, account standing and per-project cloud
     details (usage, instances, quotas); each phase is best-effort
  7. close the ImportLog with counters

A bill whose metadata, line list, any line, or write fails is counted in
`failures` and left unwritten; the next run picks it up again.
"""

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billsight.models.import_log import ImportStatus, ImportType
from billsight.modules.billing.domain.account import AccountSyncService
from billsight.modules.billing.domain.classification import ClassificationContext
from billsight.modules.billing.domain.cloud_details import CloudDetailsSyncService
from billsight.modules.billing.domain.consumption import ConsumptionSyncService
from billsight.modules.billing.domain.inventory import (
    InventorySyncService,
    build_resource_type_map,
)
from billsight.modules.billing.domain.persistence import BillingPersistenceService
from billsight.modules.billing.domain.validation import validate_date_range
from billsight.schemas.billing import BillLineRecord, PaymentRecord, ProjectRecord
from billsight.shared.adapters.base import BillingSource
from billsight.shared.core.config import get_settings
from billsight.shared.core.exceptions import (
    ExternalAPIError,
    ImportAbortedError,
    InvalidDateRangeError,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ImportOptions:
    mode: ImportType
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    since: Optional[date] = None
    include_consumption: bool = False
    include_inventory: bool = False
    include_account: bool = False
    include_cloud_details: bool = False

    def __post_init__(self) -> None:
        if self.mode == ImportType.PERIOD and self.from_date is None:
            raise InvalidDateRangeError("A period import requires a 'from' date")
        if self.from_date and self.to_date:
            validate_date_range(self.from_date, self.to_date)


@dataclass
class ImportResult:
    import_id: int
    type: str
    status: str
    from_date: Optional[date]
    to_date: Optional[date]
    bills: int = 0
    details: int = 0
    projects: int = 0
    failures: int = 0
    skipped: int = 0
    inventory: Dict[str, int] = field(default_factory=dict)
    consumption: Dict[str, int] = field(default_factory=dict)
    account: Dict[str, Any] = field(default_factory=dict)
    cloud_details: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["from_date"] = self.from_date.isoformat() if self.from_date else None
        data["to_date"] = self.to_date.isoformat() if self.to_date else None
        return data


class ImportPipeline:
    def __init__(
        self,
        source: BillingSource,
        session_maker: async_sessionmaker[AsyncSession],
        batch_size: Optional[int] = None,
    ):
        self.source = source
        self.session_maker = session_maker
        self.batch_size = batch_size or get_settings().IMPORT_BATCH_SIZE
        self._api_slots = asyncio.Semaphore(self.batch_size)
        # SQLite allows one writer; bills are fetched concurrently but written in turn.
        self._write_lock = asyncio.Lock()

    async def _call(self, func: Any, *args: Any) -> Any:
        async with self._api_slots:
            return await func(*args)

    async def _resolve_window(
        self, options: ImportOptions, today: date
    ) -> tuple[ImportType, Optional[date], Optional[date]]:
        if options.mode == ImportType.FULL:
            return ImportType.FULL, None, None

        if options.mode == ImportType.DIFFERENTIAL:
            to_date = options.to_date or today
            if options.since:
                return ImportType.DIFFERENTIAL, options.since, to_date
            async with self.session_maker() as session:
                latest = await BillingPersistenceService(session).latest_bill_date()
            if latest is None:
                logger.info("differential_import_no_data_running_unbounded")
                return ImportType.FULL, None, to_date
            return ImportType.DIFFERENTIAL, latest, to_date

        start, end = validate_date_range(options.from_date, options.to_date or today)
        return ImportType.PERIOD, start, end

    async def run(self, options: ImportOptions, today: Optional[date] = None) -> ImportResult:
        today = today or date.today()
        import_type, from_date, to_date = await self._resolve_window(options, today)

        async with self.session_maker() as session, session.begin():
            log = await BillingPersistenceService(session).start_import(
                import_type, from_date, to_date
            )
            import_id = log.id

        result = ImportResult(
            import_id=import_id,
            type=import_type.value,
            status=ImportStatus.RUNNING.value,
            from_date=from_date,
            to_date=to_date,
        )
        structlog.contextvars.bind_contextvars(import_id=import_id, import_type=import_type.value)
        logger.info(
            "import_started",
            from_date=str(from_date) if from_date else None,
            to_date=str(to_date) if to_date else None,
        )
        try:
            await self._execute(options, result, today)
        except (ExternalAPIError, SQLAlchemyError, ImportAbortedError) as e:
            message = e.message if isinstance(e, ImportAbortedError) else str(e)
            await self._fail(result, message)
            if isinstance(e, ImportAbortedError):
                raise
            raise ImportAbortedError(message, details={"import_id": import_id}) from e
        except Exception as e:
            await self._fail(result, f"{type(e).__name__}: {e}")
            raise
        finally:
            structlog.contextvars.unbind_contextvars("import_id", "import_type")

        result.status = ImportStatus.SUCCESS.value
        async with self.session_maker() as session, session.begin():
            await BillingPersistenceService(session).complete_import(
                import_id, self._stats(result)
            )
        logger.info("import_completed", import_id=import_id, **self._stats(result))
        return result

    async def _fail(self, result: ImportResult, message: str) -> None:
        result.status = ImportStatus.FAILED.value
        async with self.session_maker() as session, session.begin():
            await BillingPersistenceService(session).fail_import(
                result.import_id, message, self._stats(result)
            )
        logger.error("import_failed", error=message, **self._stats(result))

    @staticmethod
    def _stats(result: ImportResult) -> Dict[str, int]:
        return {
            "bills": result.bills,
            "details": result.details,
            "projects": result.projects,
            "failures": result.failures,
        }

    async def _execute(
        self, options: ImportOptions, result: ImportResult, today: date
    ) -> None:
        if options.mode == ImportType.FULL:
            async with self.session_maker() as session, session.begin():
                await BillingPersistenceService(session).clear_all()

        projects = await self._load_projects()
        async with self.session_maker() as session, session.begin():
            result.projects = await BillingPersistenceService(session).upsert_projects(projects)
        project_ids = [p.id for p in projects]

        if options.include_inventory:
            result.inventory = await InventorySyncService(
                self.source, self.session_maker, self.batch_size
            ).run()

        async with self.session_maker() as session:
            inventory_map = await build_resource_type_map(session)
        context = ClassificationContext.build(project_ids, inventory_map)

        try:
            bill_ids = await self.source.list_bill_ids(result.from_date, result.to_date)
        except ExternalAPIError as e:
            raise ImportAbortedError(f"Cannot list bills: {e.message}") from e

        if result.type == ImportType.DIFFERENTIAL.value:
            async with self.session_maker() as session:
                existing = await BillingPersistenceService(session).existing_bill_ids(bill_ids)
            result.skipped = len(existing)
            bill_ids = [bill_id for bill_id in bill_ids if bill_id not in existing]

        logger.info("bills_to_import", count=len(bill_ids), skipped=result.skipped)

        bill_semaphore = asyncio.Semaphore(self.batch_size)

        async def _bounded(bill_id: str) -> Optional[int]:
            async with bill_semaphore:
                return await self._import_bill(bill_id, context, options.include_account)

        outcomes = await asyncio.gather(*(_bounded(bill_id) for bill_id in bill_ids))
        for lines_written in outcomes:
            if lines_written is None:
                result.failures += 1
            else:
                result.bills += 1
                result.details += lines_written

        if options.include_consumption:
            result.consumption = await ConsumptionSyncService(
                self.source, self.session_maker
            ).run(today)
        if options.include_account:
            result.account = await AccountSyncService(self.source, self.session_maker).run()
        if options.include_cloud_details:
            result.cloud_details = await CloudDetailsSyncService(
                self.source, self.session_maker
            ).run(project_ids, today)

    async def _load_projects(self) -> List[ProjectRecord]:
        try:
            project_ids = await self._call(self.source.list_project_ids)
        except ExternalAPIError as e:
            raise ImportAbortedError(f"Cannot list projects: {e.message}") from e

        async def _fetch(project_id: str) -> ProjectRecord:
            try:
                return await self._call(self.source.get_project, project_id)
            except ExternalAPIError as e:
                # Keep the id so its lines still link to the project.
                logger.warning("project_info_unavailable", project_id=project_id, error=str(e))
                return ProjectRecord(id=project_id, name=project_id)

        return list(await asyncio.gather(*(_fetch(pid) for pid in project_ids)))

    async def _import_bill(
        self, bill_id: str, context: ClassificationContext, include_account: bool
    ) -> Optional[int]:
        """Fetch, classify and store one bill. Returns lines written, or None on failure."""
        try:
            bill = await self._call(self.source.get_bill, bill_id)
            detail_ids = await self._call(self.source.list_bill_detail_ids, bill_id)
            lines: List[BillLineRecord] = list(
                await asyncio.gather(
                    *(
                        self._call(self.source.get_bill_detail, bill_id, detail_id)
                        for detail_id in detail_ids
                    )
                )
            )
        except ExternalAPIError as e:
            logger.error("bill_fetch_failed", bill_id=bill_id, error=str(e), code=e.code)
            return None
        except ValueError as e:
            logger.error(
                "bill_fetch_failed", bill_id=bill_id, error=str(e), code="malformed_payload"
            )
            return None

        payment: Optional[PaymentRecord] = None
        if include_account:
            try:
                payment = await self._call(self.source.get_bill_payment, bill_id)
            except ExternalAPIError as e:
                logger.warning("bill_payment_unavailable", bill_id=bill_id, error=str(e))

        try:
            async with self._write_lock:
                async with self.session_maker() as session, session.begin():
                    written = await BillingPersistenceService(session).save_bill(
                        bill, lines, context, payment
                    )
        except SQLAlchemyError as e:
            logger.error("bill_persist_failed", bill_id=bill_id, error=str(e))
            return None

        logger.debug("bill_imported", bill_id=bill_id, lines=written)
        return written
