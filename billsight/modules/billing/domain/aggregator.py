"""
Cost aggregation over classified billing lines.

Every range query joins bill_details to bills and filters on the bill date,
inclusive on both ends. Sums stay Decimal until the row is built; amounts
are rounded to cents (half away from zero) only in the returned payloads.
"""

from calendar import monthrange
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import Select, case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billsight.models.billing import Bill, BillDetail, Project
from billsight.modules.billing.domain.resource_classifier import ResourceType
from billsight.modules.billing.domain.service_classifier import ServiceCategory
from billsight.modules.billing.domain.validation import (
    parse_trailing_months,
    validate_date_range,
)
from billsight.shared.core.currency import ZERO, round_money, to_decimal

logger = structlog.get_logger()

TOP_PROJECTS_LIMIT = 5
DEFAULT_TREND_MONTHS = 6
UNKNOWN_PROJECT_NAME = "Unknown"

SERVICE_COLORS: Dict[str, str] = {
    ServiceCategory.COMPUTE.value: "#3b82f6",
    ServiceCategory.STORAGE.value: "#10b981",
    ServiceCategory.NETWORK.value: "#f59e0b",
    ServiceCategory.DATABASE.value: "#8b5cf6",
    ServiceCategory.AI_ML.value: "#ec4899",
    ServiceCategory.OTHER.value: "#6b7280",
}

RESOURCE_TYPE_META: Dict[str, tuple[str, str]] = {
    ResourceType.CLOUD_PROJECT.value: ("Public Cloud projects", "#3b82f6"),
    ResourceType.DEDICATED_SERVER.value: ("Dedicated servers", "#6366f1"),
    ResourceType.VPS.value: ("VPS", "#0ea5e9"),
    ResourceType.STORAGE.value: ("Storage", "#10b981"),
    ResourceType.LOAD_BALANCER.value: ("Load balancers", "#f59e0b"),
    ResourceType.DOMAIN.value: ("Domain names", "#84cc16"),
    ResourceType.IP_SERVICE.value: ("IP services", "#f97316"),
    ResourceType.PRIVATE_CLOUD.value: ("Private Cloud", "#8b5cf6"),
    ResourceType.PRIVATE_CLOUD_HOST.value: ("Private Cloud hosts", "#a855f7"),
    ResourceType.PRIVATE_CLOUD_DATASTORE.value: ("Private Cloud datastores", "#c084fc"),
    ResourceType.TELECOM.value: ("Telecom / SMS", "#14b8a6"),
    ResourceType.WEB_CLOUD.value: ("Web Cloud", "#06b6d4"),
    ResourceType.LICENSE.value: ("Licenses", "#eab308"),
    ResourceType.BACKUP.value: ("Backup", "#64748b"),
    ResourceType.TELEPHONY.value: ("Telephony", "#2dd4bf"),
    ResourceType.SUPPORT.value: ("Support", "#f43f5e"),
    ResourceType.OTHER.value: ("Other", "#6b7280"),
}

MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def service_color(service_type: Optional[str]) -> str:
    return SERVICE_COLORS.get(service_type or "", SERVICE_COLORS[ServiceCategory.OTHER.value])


def resource_type_meta(resource_type: Optional[str]) -> tuple[str, str]:
    return RESOURCE_TYPE_META.get(
        resource_type or "", RESOURCE_TYPE_META[ResourceType.OTHER.value]
    )


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def trailing_window_start(months: int, today: date) -> date:
    """First day of the month `months` months before today's month."""
    index = today.year * 12 + (today.month - 1) - months
    return date(index // 12, index % 12 + 1, 1)


def _ranked(totals: Dict[Any, Decimal]) -> List[Any]:
    """Keys ordered by total descending, key ascending on ties."""
    return sorted(totals, key=lambda k: (-totals[k], str(k)))


def _in_range(stmt: Select, start: date, end: date) -> Select:
    return stmt.where(Bill.date >= start, Bill.date <= end)


class BillingAggregator:
    """Grouping and summary queries behind the cost dashboard."""

    @staticmethod
    async def by_project(
        db: AsyncSession, from_date: Any, to_date: Any
    ) -> List[Dict[str, Any]]:
        start, end = validate_date_range(from_date, to_date)
        stmt = _in_range(
            select(
                BillDetail.project_id,
                Project.name,
                func.sum(BillDetail.total_price).label("total"),
                func.count(BillDetail.id).label("details_count"),
            )
            .join(Bill, BillDetail.bill_id == Bill.id)
            .outerjoin(Project, BillDetail.project_id == Project.id)
            .where(BillDetail.project_id.is_not(None))
            .group_by(BillDetail.project_id, Project.name),
            start,
            end,
        )
        rows = (await db.execute(stmt)).all()

        totals = {row.project_id: to_decimal(row.total) for row in rows}
        by_id = {row.project_id: row for row in rows}
        return [
            {
                "project_id": project_id,
                "project_name": by_id[project_id].name or UNKNOWN_PROJECT_NAME,
                "total": round_money(totals[project_id]),
                "details_count": int(by_id[project_id].details_count or 0),
            }
            for project_id in _ranked(totals)
        ]

    @staticmethod
    async def by_service(
        db: AsyncSession, from_date: Any, to_date: Any
    ) -> List[Dict[str, Any]]:
        start, end = validate_date_range(from_date, to_date)
        stmt = _in_range(
            select(
                BillDetail.service_type,
                func.sum(BillDetail.total_price).label("total"),
                func.count(BillDetail.id).label("details_count"),
            )
            .join(Bill, BillDetail.bill_id == Bill.id)
            .group_by(BillDetail.service_type),
            start,
            end,
        )
        rows = (await db.execute(stmt)).all()

        totals = {row.service_type or ServiceCategory.OTHER.value: to_decimal(row.total) for row in rows}
        counts = {row.service_type or ServiceCategory.OTHER.value: int(row.details_count or 0) for row in rows}
        return [
            {
                "name": service_type,
                "value": round_money(totals[service_type]),
                "color": service_color(service_type),
                "details_count": counts[service_type],
            }
            for service_type in _ranked(totals)
        ]

    @staticmethod
    async def by_resource_type(
        db: AsyncSession, from_date: Any, to_date: Any
    ) -> List[Dict[str, Any]]:
        start, end = validate_date_range(from_date, to_date)
        stmt = _in_range(
            select(
                BillDetail.resource_type,
                func.sum(BillDetail.total_price).label("total"),
                func.count(distinct(BillDetail.domain)).label("service_count"),
                func.count(BillDetail.id).label("details_count"),
            )
            .join(Bill, BillDetail.bill_id == Bill.id)
            .group_by(BillDetail.resource_type),
            start,
            end,
        )
        rows = (await db.execute(stmt)).all()

        totals = {row.resource_type or ResourceType.OTHER.value: to_decimal(row.total) for row in rows}
        by_type = {row.resource_type or ResourceType.OTHER.value: row for row in rows}
        result = []
        for resource_type in _ranked(totals):
            label, color = resource_type_meta(resource_type)
            row = by_type[resource_type]
            result.append(
                {
                    "resource_type": resource_type,
                    "label": label,
                    "color": color,
                    "total": round_money(totals[resource_type]),
                    "service_count": int(row.service_count or 0),
                    "details_count": int(row.details_count or 0),
                }
            )
        return result

    @staticmethod
    async def resource_type_details(
        db: AsyncSession, resource_type: str, from_date: Any, to_date: Any
    ) -> List[Dict[str, Any]]:
        """
        Drill down one resource type by domain.

        The description of each domain's most expensive line is used as its
        label; domains whose lines net to zero are left out.
        """
        start, end = validate_date_range(from_date, to_date)
        stmt = _in_range(
            select(
                BillDetail.domain,
                BillDetail.description,
                BillDetail.total_price,
            )
            .join(Bill, BillDetail.bill_id == Bill.id)
            .where(BillDetail.resource_type == str(resource_type))
            .order_by(BillDetail.id),
            start,
            end,
        )
        rows = (await db.execute(stmt)).all()

        totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        counts: Dict[str, int] = defaultdict(int)
        top_line: Dict[str, tuple[Decimal, Optional[str]]] = {}
        for row in rows:
            domain = row.domain or ""
            amount = to_decimal(row.total_price)
            totals[domain] += amount
            counts[domain] += 1
            best = top_line.get(domain)
            if best is None or amount > best[0]:
                top_line[domain] = (amount, row.description)

        non_zero = {domain: total for domain, total in totals.items() if total != ZERO}
        return [
            {
                "domain": domain,
                "description": top_line[domain][1] or domain,
                "total": round_money(non_zero[domain]),
                "details_count": counts[domain],
            }
            for domain in _ranked(non_zero)
        ]

    @staticmethod
    async def daily_trend(
        db: AsyncSession, from_date: Any, to_date: Any
    ) -> List[Dict[str, Any]]:
        start, end = validate_date_range(from_date, to_date)
        stmt = _in_range(
            select(Bill.date, func.sum(BillDetail.total_price).label("total"))
            .join(Bill, BillDetail.bill_id == Bill.id)
            .group_by(Bill.date)
            .order_by(Bill.date),
            start,
            end,
        )
        rows = (await db.execute(stmt)).all()
        return [
            {
                "date": row.date.isoformat(),
                "day": row.date.day,
                "cost": round_money(row.total),
            }
            for row in rows
        ]

    @staticmethod
    async def monthly_trend(
        db: AsyncSession, months: Any = DEFAULT_TREND_MONTHS, today: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        """
        Monthly totals from the start of the month `months` months ago up to now.

        The window is independent of any dashboard date range.
        """
        window = parse_trailing_months(months, DEFAULT_TREND_MONTHS)
        start = trailing_window_start(window, today or date.today())
        stmt = (
            select(Bill.date, func.sum(BillDetail.total_price).label("total"))
            .join(Bill, BillDetail.bill_id == Bill.id)
            .where(Bill.date >= start)
            .group_by(Bill.date)
        )
        rows = (await db.execute(stmt)).all()

        totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for row in rows:
            totals[month_key(row.date)] += to_decimal(row.total)

        return [
            {
                "year_month": key,
                "month": MONTH_LABELS[int(key[5:7]) - 1],
                "cost": round_money(totals[key]),
            }
            for key in sorted(totals)
        ]

    @staticmethod
    async def summary(
        db: AsyncSession, from_date: Any, to_date: Any
    ) -> Dict[str, Any]:
        start, end = validate_date_range(from_date, to_date)
        stmt = _in_range(
            select(
                func.sum(
                    case((BillDetail.project_id.is_not(None), BillDetail.total_price), else_=0)
                ).label("cloud_total"),
                func.sum(
                    case((BillDetail.project_id.is_(None), BillDetail.total_price), else_=0)
                ).label("non_cloud_total"),
                func.sum(BillDetail.total_price).label("grand_total"),
                func.count(distinct(Bill.id)).label("bills_count"),
                func.count(distinct(BillDetail.project_id)).label("projects_count"),
            ).join(Bill, BillDetail.bill_id == Bill.id),
            start,
            end,
        )
        row = (await db.execute(stmt)).one_or_none()

        grand_total = to_decimal(row.grand_total if row else None)
        cloud_total = to_decimal(row.cloud_total if row else None)
        non_cloud_total = to_decimal(row.non_cloud_total if row else None)
        days = (end - start).days + 1

        by_project = await BillingAggregator.by_project(db, start, end)
        return {
            "period": {"from": start.isoformat(), "to": end.isoformat()},
            "total": round_money(grand_total),
            "cloud_total": round_money(cloud_total),
            "non_cloud_total": round_money(non_cloud_total),
            "daily_average": round_money(grand_total / days),
            "bills_count": int(row.bills_count or 0) if row else 0,
            "projects_count": int(row.projects_count or 0) if row else 0,
            "top_projects": [
                {
                    "project_id": p["project_id"],
                    "name": p["project_name"],
                    "value": p["total"],
                }
                for p in by_project[:TOP_PROJECTS_LIMIT]
            ],
        }

    @staticmethod
    async def project_costs(
        db: AsyncSession, project_id: str, from_date: Any, to_date: Any
    ) -> List[Dict[str, Any]]:
        """Per-day, per-service totals for one cloud project."""
        start, end = validate_date_range(from_date, to_date)
        stmt = _in_range(
            select(
                Bill.date,
                BillDetail.service_type,
                func.sum(BillDetail.total_price).label("total"),
            )
            .join(Bill, BillDetail.bill_id == Bill.id)
            .where(BillDetail.project_id == project_id)
            .group_by(Bill.date, BillDetail.service_type)
            .order_by(Bill.date, BillDetail.service_type),
            start,
            end,
        )
        rows = (await db.execute(stmt)).all()
        return [
            {
                "date": row.date.isoformat(),
                "service_type": row.service_type,
                "total": round_money(row.total),
            }
            for row in rows
        ]

    @staticmethod
    async def available_months(db: AsyncSession) -> List[Dict[str, Any]]:
        """Months that have at least one bill, newest first."""
        rows = (await db.execute(select(distinct(Bill.date)))).scalars().all()
        months = sorted({(d.year, d.month) for d in rows}, reverse=True)
        return [
            {
                "value": f"{year:04d}-{month:02d}",
                "label": f"{MONTH_NAMES[month - 1]} {year}",
                "from": date(year, month, 1).isoformat(),
                "to": date(year, month, monthrange(year, month)[1]).isoformat(),
            }
            for year, month in months
        ]
