from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from billsight.models.billing import Bill, BillDetail, Project
from billsight.models.import_log import ImportStatus, ImportType
from billsight.modules.billing.domain.classification import ClassificationContext
from billsight.modules.billing.domain.persistence import BillingPersistenceService
from billsight.schemas.billing import BillLineRecord, BillRecord, PaymentRecord, ProjectRecord
from billsight.shared.core.exceptions import ResourceNotFoundError

P1 = "e" * 32


def _bill(bill_id="FR1", day=date(2025, 5, 1), total="30.00"):
    return BillRecord(
        id=bill_id,
        bill_date=day,
        price_without_tax=Decimal(total),
        price_with_tax=Decimal(total) * Decimal("1.2"),
        tax=Decimal(total) * Decimal("0.2"),
    )


def _lines():
    return [
        BillLineRecord(id="1", domain=P1, description="Instance b2-7", total_price=Decimal("20.00")),
        BillLineRecord(id="2", domain="ks12345", description="Backup storage", total_price=Decimal("10.00")),
    ]


@pytest.mark.asyncio
async def test_save_bill_classifies_lines(db_session):
    service = BillingPersistenceService(db_session)
    await service.upsert_projects([ProjectRecord(id=P1, name="prod")])
    context = ClassificationContext.build(project_ids=await service.project_ids())

    written = await service.save_bill(_bill(), _lines(), context)
    await db_session.commit()

    assert written == 2
    details = {d.id: d for d in (await db_session.execute(select(BillDetail))).scalars()}
    assert details["FR1_1"].project_id == P1
    assert details["FR1_1"].service_type == "Compute"
    assert details["FR1_1"].resource_type == "cloud_project"
    assert details["FR1_2"].project_id is None
    assert details["FR1_2"].service_type == "Backup"
    assert details["FR1_2"].resource_type == "dedicated_server"


@pytest.mark.asyncio
async def test_save_bill_twice_replaces_lines(db_session):
    service = BillingPersistenceService(db_session)
    context = ClassificationContext()

    await service.save_bill(_bill(), _lines(), context)
    await service.save_bill(_bill(total="40.00"), _lines()[:1], context)
    await db_session.commit()

    bills = (await db_session.execute(select(Bill))).scalars().all()
    assert len(bills) == 1
    assert bills[0].price_without_tax == Decimal("40.00")
    count = (await db_session.execute(select(func.count(BillDetail.id)))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_payment_fields_only_written_when_given(db_session):
    service = BillingPersistenceService(db_session)
    payment = PaymentRecord(payment_type="creditCard", payment_date=date(2025, 5, 3))

    await service.save_bill(_bill(), [], ClassificationContext(), payment)
    await service.save_bill(_bill(), [], ClassificationContext())
    await db_session.commit()

    bill = await service.get_bill("FR1")
    assert bill["payment_type"] == "creditCard"
    assert bill["payment_date"] == "2025-05-03"
    assert bill["payment_status"] == "paid"


@pytest.mark.asyncio
async def test_upsert_projects_updates_name(db_session):
    service = BillingPersistenceService(db_session)

    await service.upsert_projects([ProjectRecord(id=P1, name="old")])
    await service.upsert_projects([ProjectRecord(id=P1, name="new", status="ok")])
    await db_session.commit()

    project = await db_session.get(Project, P1)
    await db_session.refresh(project)
    assert project.name == "new"
    assert project.status == "ok"


@pytest.mark.asyncio
async def test_latest_date_and_existing_ids(db_session):
    service = BillingPersistenceService(db_session)
    assert await service.latest_bill_date() is None

    await service.save_bill(_bill("A", date(2025, 1, 1)), [], ClassificationContext())
    await service.save_bill(_bill("B", date(2025, 3, 1)), [], ClassificationContext())
    await db_session.commit()

    assert await service.latest_bill_date() == date(2025, 3, 1)
    assert await service.existing_bill_ids(["A", "C"]) == {"A"}
    assert await service.bill_exists("B")
    assert not await service.bill_exists("C")


@pytest.mark.asyncio
async def test_clear_all_keeps_import_history(db_session):
    service = BillingPersistenceService(db_session)
    await service.upsert_projects([ProjectRecord(id=P1, name="prod")])
    await service.save_bill(_bill(), _lines(), ClassificationContext())
    log = await service.start_import(ImportType.FULL, None, None)
    await db_session.commit()

    await service.clear_all()
    await db_session.commit()

    assert await service.list_bills() == []
    assert await service.project_ids() == set()
    status = await service.import_status()
    assert status["latest"]["id"] == log.id


@pytest.mark.asyncio
async def test_list_bills_and_details(db_session):
    service = BillingPersistenceService(db_session)
    await service.save_bill(_bill("A", date(2025, 1, 1)), _lines(), ClassificationContext())
    await service.save_bill(_bill("B", date(2025, 3, 1)), [], ClassificationContext())
    await db_session.commit()

    bills = await service.list_bills()
    assert [b["id"] for b in bills] == ["B", "A"]
    assert bills[1]["details_count"] == 2
    assert bills[1]["price_with_tax"] == 36.0

    ranged = await service.list_bills(from_date=date(2025, 2, 1))
    assert [b["id"] for b in ranged] == ["B"]

    details = await service.bill_details("A")
    assert [d["id"] for d in details] == ["A_1", "A_2"]
    assert details[0]["total_price"] == 20.0


@pytest.mark.asyncio
async def test_get_bill_not_found(db_session):
    with pytest.raises(ResourceNotFoundError):
        await BillingPersistenceService(db_session).get_bill("missing")


@pytest.mark.asyncio
async def test_import_log_lifecycle(db_session):
    service = BillingPersistenceService(db_session)

    first = await service.start_import(ImportType.PERIOD, date(2025, 1, 1), date(2025, 1, 31))
    await service.complete_import(first.id, {"bills": 3, "details": 10, "projects": 2, "failures": 1})
    second = await service.start_import(ImportType.DIFFERENTIAL, date(2025, 2, 1), None)
    await service.fail_import(second.id, "Cannot list bills: boom")
    await db_session.commit()

    status = await service.import_status()
    assert status["latest"]["id"] == second.id
    assert status["latest"]["status"] == ImportStatus.FAILED.value
    assert status["latest"]["error_message"] == "Cannot list bills: boom"
    done = next(h for h in status["history"] if h["id"] == first.id)
    assert done["status"] == "success"
    assert done["bills_imported"] == 3
    assert done["failures"] == 1
    assert done["from_date"] == "2025-01-01"
