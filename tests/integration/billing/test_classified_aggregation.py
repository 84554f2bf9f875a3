from datetime import date
from decimal import Decimal

import pytest

from billsight.modules.billing.domain.aggregator import BillingAggregator
from billsight.modules.billing.domain.classification import ClassificationContext
from billsight.modules.billing.domain.persistence import BillingPersistenceService
from billsight.schemas.billing import BillLineRecord, BillRecord, ProjectRecord

PROJECT = "0123456789abcdef0123456789abcdef"
RANGE = ("2025-04-01", "2025-04-30")


@pytest.mark.asyncio
async def test_stored_lines_aggregate_by_classification(db_session):
    service = BillingPersistenceService(db_session)
    await service.upsert_projects([ProjectRecord(id=PROJECT, name="web")])
    context = ClassificationContext.build(await service.project_ids())
    await service.save_bill(
        BillRecord(id="FR9", bill_date=date(2025, 4, 30), price_without_tax=Decimal("148")),
        [
            BillLineRecord(id="1", domain=PROJECT, description="Instance b2-7", total_price=Decimal("36.00")),
            BillLineRecord(id="2", domain="ns123.ovh.net", description="Server rental", total_price=Decimal("100.00")),
            BillLineRecord(id="3", domain="unknown-thing", description="SSL Certificate", total_price=Decimal("12.00")),
        ],
        context,
    )
    await db_session.commit()

    by_type = await BillingAggregator.by_resource_type(db_session, *RANGE)
    by_service = await BillingAggregator.by_service(db_session, *RANGE)
    summary = await BillingAggregator.summary(db_session, *RANGE)
    daily = await BillingAggregator.daily_trend(db_session, *RANGE)

    assert [(r["resource_type"], r["total"]) for r in by_type] == [
        ("dedicated_server", 100.0),
        ("cloud_project", 36.0),
        ("other", 12.0),
    ]
    assert [(r["name"], r["value"]) for r in by_service] == [("Compute", 136.0), ("Other", 12.0)]
    assert summary["total"] == 148.0
    assert summary["cloud_total"] + summary["non_cloud_total"] == summary["total"]
    assert sum(r["cost"] for r in daily) == summary["total"]
