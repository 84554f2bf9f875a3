from datetime import date

import pytest

from billsight.models.consumption import CloudConsumption
from billsight.models.inventory import CloudInstance
from billsight.modules.billing.domain.gpu import detect_gpu_model, gpu_rollup, is_gpu_flavor

P1 = "c" * 32


@pytest.mark.parametrize(
    "description, expected",
    [
        ("Instance l40s-90 for 720 hours", "L40S"),
        ("Instances L4-90 (GRA11)", "L4"),
        ("instance a100-180", "A100"),
        ("Instance h100-380 monthly", "H100"),
        ("Instance t1-45", "T1"),
        ("Instance t2-le-90", "T2"),
        ("Instance v100-1", "V100"),
        ("Instance b2-7", None),
        ("AI Notebook", None),
        ("Instance GPU L40S", None),
        ("", None),
        (None, None),
    ],
)
def test_detect_gpu_model(description, expected):
    assert detect_gpu_model(description) == expected


def test_is_gpu_flavor():
    assert is_gpu_flavor("l4-90")
    assert is_gpu_flavor("H100-380")
    assert not is_gpu_flavor("b2-7")
    assert not is_gpu_flavor(None)


@pytest.mark.asyncio
async def test_gpu_rollup_ignores_service_type(db_session, seed, line):
    await seed(
        db_session,
        projects=[(P1, "ml-lab")],
        bills=[("G1", date(2025, 3, 3)), ("G2", date(2025, 4, 2))],
        lines=[
            line("G1", "1", total="100.005", domain=P1, project_id=P1,
                 description="Instance l40s-90 for 100 hours", service_type="AI/ML"),
            line("G1", "2", total="40.00", domain=P1, project_id=P1,
                 description="Instance l4-90 for 40 hours", service_type="AI/ML"),
            # AI/ML but not a GPU instance
            line("G1", "3", total="999.00", domain=P1, project_id=P1,
                 description="AI Notebook", service_type="AI/ML"),
            # GPU instance on an unknown domain, tagged Compute
            line("G2", "1", total="60.00", domain="d" * 32,
                 description="Instances h100-380", service_type="Compute"),
        ],
    )
    db_session.add(CloudInstance(id="i-1", project_id=P1, flavor="l40s-90", plan_code="l40s-90"))
    db_session.add(CloudInstance(id="i-2", project_id=P1, flavor="b2-7", plan_code="b2-7"))
    await db_session.commit()

    result = await gpu_rollup(db_session, "2025-03-01", "2025-04-30")

    assert result["total"] == 200.01
    assert result["projects_count"] == 2
    assert result["details_count"] == 3
    assert [(m["model"], m["total"]) for m in result["by_model"]] == [
        ("L40S", 100.01),
        ("H100", 60.0),
        ("L4", 40.0),
    ]
    assert result["by_project"][0] == {
        "domain": P1,
        "name": "ml-lab",
        "total": 140.01,
        "details_count": 2,
        "models": ["L4", "L40S"],
        "flavors": ["l40s-90"],
    }
    assert result["by_project"][1]["name"] == "d" * 32
    assert result["by_project"][1]["flavors"] == []
    assert result["monthly"] == [
        {"year_month": "2025-03", "total": 140.01},
        {"year_month": "2025-04", "total": 60.0},
    ]


@pytest.mark.asyncio
async def test_gpu_rollup_empty(db_session):
    result = await gpu_rollup(db_session, "2025-01-01", "2025-01-31")

    assert result["total"] == 0.0
    assert result["by_model"] == []
    assert result["by_project"] == []
    assert result["monthly"] == []


@pytest.mark.asyncio
async def test_gpu_flavors_include_usage_references(db_session, seed, line):
    await seed(
        db_session,
        projects=[(P1, "ml-lab")],
        bills=[("G1", date(2025, 5, 3))],
        lines=[
            line("G1", "1", total="80.00", domain=P1, project_id=P1,
                 description="Instance h100-380 for 10 hours", service_type="AI/ML"),
        ],
    )
    # Instance already deleted: only the usage feed still names its flavor.
    for resource_type, reference in [
        ("instance", "h100-380"),
        ("instance_monthly", "l4-90"),
        ("instance", "b2-7"),
        ("volume", "a100-180"),
    ]:
        db_session.add(CloudConsumption(
            project_id=P1,
            period_start=date(2025, 5, 1),
            period_end=date(2025, 5, 20),
            resource_type=resource_type,
            resource_name=reference,
        ))
    await db_session.commit()

    result = await gpu_rollup(db_session, "2025-05-01", "2025-05-31")

    assert result["by_project"][0]["flavors"] == ["h100-380", "l4-90"]
