from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from billsight.models.consumption import CloudConsumption, CloudQuota
from billsight.models.inventory import CloudInstance
from billsight.modules.billing.domain.cloud_details import (
    CloudDetailsSyncService,
    usage_records,
)
from billsight.schemas.billing import CloudInstanceRecord

TODAY = date(2025, 6, 20)

USAGE = {
    "hourlyUsage": {
        "instance": [
            {
                "reference": "l4-90",
                "region": "GRA11",
                "details": [
                    {"instanceId": "i-1", "quantity": {"value": 720, "unit": "Hour"}, "totalPrice": 36.0},
                ],
            }
        ],
        "objectStorage": [
            {
                "reference": "pcs",
                "region": "GRA",
                "details": [
                    {"resourceId": "c-1", "quantity": {"value": 10, "unit": "GiB"}, "totalPrice": 1.2},
                ],
            }
        ],
        "volume": [{"reference": "classic", "region": "GRA", "details": []}],
    },
    "monthlyUsage": {
        "instance": [
            {"reference": "b2-7", "region": "SBG5", "details": [{"instanceId": "i-2", "totalPrice": 20.0}]}
        ],
        "certification": [],
    },
}
QUOTAS = [
    {
        "region": "GRA11",
        "instance": {
            "maxCores": 200,
            "maxInstances": 20,
            "maxRam": 200000,
            "usedCores": 8,
            "usedInstances": 2,
            "usedRAM": 16000,
        },
    }
]
PATHS = {
    "/cloud/project/p1/usage/current": USAGE,
    "/cloud/project/p1/quota": QUOTAS,
}
INSTANCES = {"p1": [CloudInstanceRecord(id="i-1", project_id="p1", flavor="l4-90", plan_code="l4-90")]}


def test_usage_records_flatten_hourly_and_monthly():
    records = usage_records("p1", USAGE)

    assert [(r.resource_type, r.resource_id, r.resource_name) for r in records] == [
        ("instance", "i-1", "l4-90"),
        ("objectStorage", "c-1", "pcs"),
        ("instance_monthly", "i-2", "b2-7"),
    ]
    assert records[0].quantity == Decimal("720")
    assert records[0].unit == "Hour"
    assert records[0].total_price == Decimal("36.0")
    assert records[2].quantity == Decimal("0")
    assert records[2].unit is None


def test_usage_without_sections_has_no_records():
    assert usage_records("p1", {}) == []


@pytest.mark.asyncio
async def test_cloud_details_are_best_effort_per_project(session_maker, path_source):
    source = path_source(PATHS, instances=INSTANCES)

    result = await CloudDetailsSyncService(source, session_maker).run(["p1", "p2"], TODAY)

    assert result == {
        "p1": {"consumption": 3, "instances": 1, "quotas": 1},
        "p2": {"consumption": -1, "instances": -1, "quotas": -1},
    }
    async with session_maker() as session:
        usage = (await session.execute(select(CloudConsumption).order_by(CloudConsumption.id))).scalars().all()
        [quota] = (await session.execute(select(CloudQuota))).scalars().all()
        instances = (await session.execute(select(CloudInstance))).scalars().all()

    assert {u.project_id for u in usage} == {"p1"}
    assert all((u.period_start, u.period_end) == (date(2025, 6, 1), TODAY) for u in usage)
    assert usage[0].region == "GRA11"
    assert usage[0].unit_price == Decimal("0")
    assert (quota.region, quota.max_cores, quota.used_cores, quota.max_ram_mb, quota.used_ram_mb) == (
        "GRA11",
        200,
        8,
        200000,
        16000,
    )
    assert [(i.id, i.flavor) for i in instances] == [("i-1", "l4-90")]


@pytest.mark.asyncio
async def test_cloud_details_resync_replaces_project_rows(session_maker, path_source):
    await CloudDetailsSyncService(
        path_source(PATHS, instances=INSTANCES), session_maker
    ).run(["p1"], TODAY)
    changed = {
        "/cloud/project/p1/usage/current": {"hourlyUsage": {"instance": USAGE["hourlyUsage"]["instance"]}},
        "/cloud/project/p1/quota": [],
    }

    result = await CloudDetailsSyncService(
        path_source(changed, instances=INSTANCES), session_maker
    ).run(["p1"], TODAY)

    assert result["p1"] == {"consumption": 1, "instances": 1, "quotas": 0}
    async with session_maker() as session:
        usage = (await session.execute(select(CloudConsumption))).scalars().all()
        quotas = (await session.execute(select(CloudQuota))).scalars().all()
    assert [u.resource_id for u in usage] == ["i-1"]
    assert quotas == []


@pytest.mark.asyncio
async def test_unparsable_usage_amounts_default_to_zero(session_maker, path_source):
    paths = dict(PATHS)
    paths["/cloud/project/p1/usage/current"] = {
        "hourlyUsage": {
            "instance": [{"details": [{"quantity": {"value": "many"}, "totalPrice": "NaN"}]}]
        },
    }

    result = await CloudDetailsSyncService(
        path_source(paths, instances=INSTANCES), session_maker
    ).run(["p1"], TODAY)

    assert result["p1"]["consumption"] == 1
    async with session_maker() as session:
        [usage] = (await session.execute(select(CloudConsumption))).scalars().all()
    assert (usage.quantity, usage.total_price) == (Decimal("0"), Decimal("0"))
    assert usage.resource_id is None
    assert usage.resource_name is None
