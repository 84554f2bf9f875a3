"""
Inventory sync.

Pulls the account's provisioned services and stores them in
`inventory_resources`. The stored ids are what billing lines carry in their
`domain`, so `build_resource_type_map` can override pattern-based resource
type inference during classification.

Each category is best-effort: a failing category is logged and skipped and
the others still sync.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billsight.models.inventory import CloudInstance, InventoryResource
from billsight.modules.billing.domain.persistence import upsert_statement
from billsight.modules.billing.domain.resource_classifier import ResourceType
from billsight.schemas.billing import CloudInstanceRecord, InventoryItem
from billsight.shared.adapters.base import BillingSource
from billsight.shared.core.concurrency import gather_bounded
from billsight.shared.core.exceptions import ExternalAPIError

logger = structlog.get_logger()


@dataclass(frozen=True)
class InventoryCategory:
    name: str
    resource_type: ResourceType
    list_path: str
    detail_path: str
    name_keys: tuple[str, ...] = ("displayName", "name")
    state_keys: tuple[str, ...] = ("state", "status")


FLAT_CATEGORIES: tuple[InventoryCategory, ...] = (
    InventoryCategory(
        "dedicated_servers",
        ResourceType.DEDICATED_SERVER,
        "/dedicated/server",
        "/dedicated/server/{id}",
        name_keys=("displayName", "reverse"),
    ),
    InventoryCategory("vps", ResourceType.VPS, "/vps", "/vps/{id}"),
    InventoryCategory(
        "netapp_storage",
        ResourceType.STORAGE,
        "/storage/netapp",
        "/storage/netapp/{id}",
        name_keys=("name",),
    ),
    InventoryCategory(
        "ip_blocks",
        ResourceType.IP_SERVICE,
        "/ip",
        "/ip/{id}",
        name_keys=("description",),
        state_keys=(),
    ),
    InventoryCategory(
        "load_balancers",
        ResourceType.LOAD_BALANCER,
        "/ipLoadbalancing",
        "/ipLoadbalancing/{id}",
    ),
)


def _first(payload: Dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if value:
            return str(value)
    return None


class InventorySyncService:
    def __init__(
        self,
        source: BillingSource,
        session_maker: async_sessionmaker[AsyncSession],
        batch_size: int = 40,
    ):
        self.source = source
        self.session_maker = session_maker
        self.batch_size = batch_size

    async def run(self) -> Dict[str, int]:
        """Sync every category. Returns synced counts per category (-1 = skipped)."""
        results: Dict[str, int] = {}
        for category in FLAT_CATEGORIES:
            results[category.name] = await self._sync_category(
                category.name, self._collect_flat(category)
            )
        results["private_cloud_hosts"] = await self._sync_category(
            "private_cloud_hosts", self._collect_private_cloud("dedicatedHost")
        )
        results["private_cloud_datastores"] = await self._sync_category(
            "private_cloud_datastores", self._collect_private_cloud("datastore")
        )
        logger.info("inventory_sync_complete", **results)
        return results

    async def _sync_category(self, name: str, collector: Any) -> int:
        try:
            items: List[InventoryItem] = await collector
        except ExternalAPIError as e:
            logger.error("inventory_category_failed", category=name, error=str(e))
            return -1
        async with self.session_maker() as session, session.begin():
            await upsert_inventory(session, items)
        logger.info("inventory_category_synced", category=name, count=len(items))
        return len(items)

    async def _collect_flat(self, category: InventoryCategory) -> List[InventoryItem]:
        ids = [str(i) for i in await self.source.get(category.list_path) or []]

        async def _fetch(resource_id: str) -> InventoryItem:
            info = await self.source.get(
                category.detail_path.format(id=quote(resource_id, safe=""))
            ) or {}
            return InventoryItem(
                id=resource_id,
                resource_type=category.resource_type.value,
                display_name=_first(info, category.name_keys) or resource_id,
                state=_first(info, category.state_keys),
            )

        return await gather_bounded(ids, _fetch, self.batch_size)

    async def _collect_private_cloud(self, kind: str) -> List[InventoryItem]:
        """Hosts or datastores of every Private Cloud, keyed `<pcc>/host/<id>` or `<pcc>/<name>`."""
        items: List[InventoryItem] = []
        for pcc in [str(p) for p in await self.source.get("/dedicatedCloud") or []]:
            base = f"/dedicatedCloud/{quote(pcc, safe='')}/{kind}"
            child_ids = [str(c) for c in await self.source.get(base) or []]

            async def _fetch(child_id: str, pcc: str = pcc, base: str = base) -> InventoryItem:
                info = await self.source.get(f"{base}/{quote(child_id, safe='')}") or {}
                name = info.get("name") or None
                if kind == "dedicatedHost":
                    resource_id = f"{pcc}/host/{child_id}"
                    resource_type = ResourceType.PRIVATE_CLOUD_HOST
                else:
                    resource_id = f"{pcc}/{name or child_id}"
                    resource_type = ResourceType.PRIVATE_CLOUD_DATASTORE
                return InventoryItem(
                    id=resource_id,
                    resource_type=resource_type.value,
                    display_name=name or child_id,
                    parent_id=pcc,
                    state=info.get("state") or None,
                )

            items.extend(await gather_bounded(child_ids, _fetch, self.batch_size))
        return items


async def upsert_inventory(db: AsyncSession, items: Sequence[InventoryItem]) -> int:
    for item in items:
        stmt = upsert_statement(db, InventoryResource).values(
            id=item.id,
            resource_type=item.resource_type,
            display_name=item.display_name,
            parent_id=item.parent_id,
            state=item.state,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[InventoryResource.id],
            set_={
                "resource_type": stmt.excluded.resource_type,
                "display_name": stmt.excluded.display_name,
                "parent_id": stmt.excluded.parent_id,
                "state": stmt.excluded.state,
            },
        )
        await db.execute(stmt)
    return len(items)


async def build_resource_type_map(db: AsyncSession) -> Dict[str, str]:
    """`domain -> resource_type` for every stored inventory resource."""
    rows = (
        await db.execute(select(InventoryResource.id, InventoryResource.resource_type))
    ).all()
    return {row.id: row.resource_type for row in rows}


async def upsert_cloud_instances(
    db: AsyncSession, instances: Sequence[CloudInstanceRecord]
) -> int:
    for instance in instances:
        stmt = upsert_statement(db, CloudInstance).values(
            id=instance.id,
            project_id=instance.project_id,
            name=instance.name,
            flavor=instance.flavor,
            plan_code=instance.plan_code,
            region=instance.region,
            status=instance.status,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CloudInstance.id],
            set_={
                "project_id": stmt.excluded.project_id,
                "name": stmt.excluded.name,
                "flavor": stmt.excluded.flavor,
                "plan_code": stmt.excluded.plan_code,
                "region": stmt.excluded.region,
                "status": stmt.excluded.status,
            },
        )
        await db.execute(stmt)
    return len(instances)

