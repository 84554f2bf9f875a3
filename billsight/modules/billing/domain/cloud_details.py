"""
Per-project cloud details: month-to-date usage, instances and quotas.

Each part of each project is best-effort. A part that fails is reported as -1
for that project and leaves the stored rows of that part untouched.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billsight.models.consumption import CloudConsumption, CloudQuota
from billsight.modules.billing.domain.inventory import upsert_cloud_instances
from billsight.schemas.billing import CloudQuotaRecord, CloudUsageRecord
from billsight.shared.adapters.base import BillingSource
from billsight.shared.adapters.feed_utils import as_dict, as_list, parse_payload
from billsight.shared.core.exceptions import ExternalAPIError

logger = structlog.get_logger()

HOURLY_USAGE_TYPES = ("instance", "volume", "snapshot", "objectStorage")
MONTHLY_USAGE_TYPES = ("instance", "volume", "certification")


def usage_records(project_id: str, usage: Dict[str, Any]) -> List[CloudUsageRecord]:
    """Flatten `hourlyUsage` / `monthlyUsage` into one record per usage detail."""
    records: List[CloudUsageRecord] = []
    for section, types, suffix in (
        ("hourlyUsage", HOURLY_USAGE_TYPES, ""),
        ("monthlyUsage", MONTHLY_USAGE_TYPES, "_monthly"),
    ):
        by_type = as_dict(usage.get(section))
        for resource_type in types:
            for item in as_list(by_type.get(resource_type)):
                item = as_dict(item)
                for detail in as_list(item.get("details")):
                    records.append(
                        CloudUsageRecord.from_api(
                            project_id, resource_type + suffix, item, as_dict(detail)
                        )
                    )
    return records


class CloudDetailsSyncService:
    def __init__(
        self,
        source: BillingSource,
        session_maker: async_sessionmaker[AsyncSession],
    ):
        self.source = source
        self.session_maker = session_maker

    async def run(
        self, project_ids: Sequence[str], today: Optional[date] = None
    ) -> Dict[str, Dict[str, int]]:
        today = today or date.today()
        results: Dict[str, Dict[str, int]] = {}
        for project_id in project_ids:
            results[project_id] = {
                "consumption": await self.sync_usage(project_id, today),
                "instances": await self.sync_instances(project_id),
                "quotas": await self.sync_quotas(project_id),
            }
        logger.info("cloud_details_synced", projects=len(results))
        return results

    async def sync_usage(self, project_id: str, today: date) -> int:
        path = f"/cloud/project/{quote(project_id, safe='')}/usage/current"
        try:
            usage = await self.source.get(path)
            records = parse_payload(
                f"usage of {project_id}", lambda: usage_records(project_id, as_dict(usage))
            )
        except ExternalAPIError as e:
            logger.error("cloud_usage_sync_failed", project_id=project_id, error=str(e))
            return -1
        if not usage:
            return 0

        month_start = today.replace(day=1)
        async with self.session_maker() as session, session.begin():
            await session.execute(
                delete(CloudConsumption).where(CloudConsumption.project_id == project_id)
            )
            session.add_all(
                CloudConsumption(
                    period_start=month_start,
                    period_end=today,
                    unit_price=0,
                    **record.model_dump(),
                )
                for record in records
            )
        return len(records)

    async def sync_instances(self, project_id: str) -> int:
        try:
            instances = await self.source.list_cloud_instances(project_id)
        except ExternalAPIError as e:
            logger.error("cloud_instances_sync_failed", project_id=project_id, error=str(e))
            return -1
        async with self.session_maker() as session, session.begin():
            return await upsert_cloud_instances(session, instances)

    async def sync_quotas(self, project_id: str) -> int:
        path = f"/cloud/project/{quote(project_id, safe='')}/quota"
        try:
            payload = await self.source.get(path)
            quotas = parse_payload(
                f"quotas of {project_id}",
                lambda: [
                    CloudQuotaRecord.from_api(project_id, as_dict(q)) for q in as_list(payload)
                ],
            )
        except ExternalAPIError as e:
            logger.error("cloud_quota_sync_failed", project_id=project_id, error=str(e))
            return -1

        async with self.session_maker() as session, session.begin():
            await session.execute(delete(CloudQuota).where(CloudQuota.project_id == project_id))
            session.add_all(CloudQuota(**quota.model_dump()) for quota in quotas)
        return len(quotas)
