"""
GPU cost rollup.

GPU membership is derived from the line description ("Instance l40s-90 ...",
"instances h100-380 ..."), not from service_type: the AI/ML category also
carries non-GPU services such as notebooks and training jobs.
"""

import re
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billsight.models.billing import Bill, BillDetail, Project
from billsight.models.consumption import CloudConsumption
from billsight.models.inventory import CloudInstance
from billsight.modules.billing.domain.aggregator import month_key
from billsight.modules.billing.domain.validation import validate_date_range
from billsight.shared.core.currency import ZERO, round_money, to_decimal

logger = structlog.get_logger()

GPU_MODELS: Dict[str, str] = {
    "l4": "L4",
    "l40s": "L40S",
    "a100": "A100",
    "h100": "H100",
    "v100": "V100",
    "t1": "T1",
    "t2": "T2",
}

# l40s before l4 so the alternation never stops at the shorter prefix.
_MODEL_ALTERNATION = "l40s|l4|a100|h100|v100|t1|t2"
GPU_INSTANCE_PATTERN = re.compile(rf"instances?\s+({_MODEL_ALTERNATION})-", re.IGNORECASE)
GPU_FLAVOR_PATTERN = re.compile(rf"^({_MODEL_ALTERNATION})-", re.IGNORECASE)


def detect_gpu_model(description: Any) -> Optional[str]:
    """Return the display name of the GPU model in a line description, if any."""
    if not description:
        return None
    match = GPU_INSTANCE_PATTERN.search(str(description))
    if match is None:
        return None
    return GPU_MODELS[match.group(1).lower()]


def is_gpu_flavor(name: Optional[str]) -> bool:
    return bool(name) and GPU_FLAVOR_PATTERN.match(name) is not None


def _ranked(totals: Dict[str, Decimal]) -> List[str]:
    return sorted(totals, key=lambda k: (-totals[k], k))


async def _gpu_flavors_by_project(
    db: AsyncSession, project_ids: List[str]
) -> Dict[str, List[str]]:
    if not project_ids:
        return {}
    rows = (
        await db.execute(
            select(CloudInstance.project_id, CloudInstance.plan_code, CloudInstance.flavor)
            .where(CloudInstance.project_id.in_(project_ids))
        )
    ).all()
    flavors: Dict[str, set[str]] = defaultdict(set)
    for row in rows:
        for name in (row.plan_code, row.flavor):
            if is_gpu_flavor(name):
                flavors[row.project_id].add(name)

    # Usage references also cover instances deleted since the last sync.
    usage_rows = (
        await db.execute(
            select(CloudConsumption.project_id, CloudConsumption.resource_name)
            .where(
                CloudConsumption.project_id.in_(project_ids),
                CloudConsumption.resource_type.like("instance%"),
            )
            .distinct()
        )
    ).all()
    for row in usage_rows:
        if is_gpu_flavor(row.resource_name):
            flavors[row.project_id].add(row.resource_name)
    return {project_id: sorted(names) for project_id, names in flavors.items()}


async def gpu_rollup(db: AsyncSession, from_date: Any, to_date: Any) -> Dict[str, Any]:
    """Totals of GPU instance lines by model, by project and by month."""
    start, end = validate_date_range(from_date, to_date)

    stmt = (
        select(
            Bill.date,
            BillDetail.domain,
            BillDetail.description,
            BillDetail.total_price,
        )
        .join(Bill, BillDetail.bill_id == Bill.id)
        .where(
            Bill.date >= start,
            Bill.date <= end,
            func.lower(BillDetail.description).like("%instance%"),
        )
        .order_by(Bill.date, BillDetail.id)
    )
    rows = (await db.execute(stmt)).all()

    total = ZERO
    lines_count = 0
    domains: set[str] = set()
    model_totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    model_counts: Dict[str, int] = defaultdict(int)
    project_totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    project_counts: Dict[str, int] = defaultdict(int)
    project_models: Dict[str, set[str]] = defaultdict(set)
    month_totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)

    for row in rows:
        model = detect_gpu_model(row.description)
        if model is None:
            continue
        amount = to_decimal(row.total_price)
        domain = row.domain or ""
        total += amount
        lines_count += 1
        domains.add(domain)
        model_totals[model] += amount
        model_counts[model] += 1
        project_totals[domain] += amount
        project_counts[domain] += 1
        project_models[domain].add(model)
        month_totals[month_key(row.date)] += amount

    names: Dict[str, str] = {}
    flavors: Dict[str, List[str]] = {}
    if domains:
        domain_ids = sorted(domains)
        name_rows = (
            await db.execute(select(Project.id, Project.name).where(Project.id.in_(domain_ids)))
        ).all()
        names = {row.id: row.name for row in name_rows if row.name}
        flavors = await _gpu_flavors_by_project(db, domain_ids)

    logger.debug("gpu_rollup_computed", lines=lines_count, domains=len(domains))

    return {
        "period": {"from": start.isoformat(), "to": end.isoformat()},
        "total": round_money(total),
        "projects_count": len(domains),
        "details_count": lines_count,
        "by_model": [
            {
                "model": model,
                "total": round_money(model_totals[model]),
                "details_count": model_counts[model],
            }
            for model in _ranked(model_totals)
        ],
        "by_project": [
            {
                "domain": domain,
                "name": names.get(domain, domain),
                "total": round_money(project_totals[domain]),
                "details_count": project_counts[domain],
                "models": sorted(project_models[domain]),
                "flavors": flavors.get(domain, []),
            }
            for domain in _ranked(project_totals)
        ],
        "monthly": [
            {"year_month": key, "total": round_money(month_totals[key])}
            for key in sorted(month_totals)
        ],
    }
