import pytest
from sqlalchemy import select

from billsight.models.inventory import InventoryResource
from billsight.modules.billing.domain.inventory import (
    InventorySyncService,
    build_resource_type_map,
)

PATHS = {
    "/dedicated/server": ["ns1.ip-1-2-3.eu"],
    "/dedicated/server/ns1.ip-1-2-3.eu": {"reverse": "db.example.net", "state": "ok"},
    "/vps": ["vps-1.vps.ovh.net"],
    "/vps/vps-1.vps.ovh.net": {"displayName": "", "state": "running"},
    "/ip": ["10.0.0.0/28"],
    "/ip/10.0.0.0%2F28": {"description": "failover block"},
    "/ipLoadbalancing": [],
    "/dedicatedCloud": ["pcc-1"],
    "/dedicatedCloud/pcc-1/dedicatedHost": [42],
    "/dedicatedCloud/pcc-1/dedicatedHost/42": {"name": "host-a", "state": "delivered"},
    "/dedicatedCloud/pcc-1/datastore": [7],
    "/dedicatedCloud/pcc-1/datastore/7": {"name": "ssd-ds-1"},
}


@pytest.mark.asyncio
async def test_inventory_sync_skips_failing_category(session_maker, path_source):
    result = await InventorySyncService(path_source(PATHS), session_maker, batch_size=2).run()

    assert result == {
        "dedicated_servers": 1,
        "vps": 1,
        "netapp_storage": -1,
        "ip_blocks": 1,
        "load_balancers": 0,
        "private_cloud_hosts": 1,
        "private_cloud_datastores": 1,
    }
    async with session_maker() as session:
        rows = {r.id: r for r in (await session.execute(select(InventoryResource))).scalars()}
        type_map = await build_resource_type_map(session)

    assert rows["ns1.ip-1-2-3.eu"].display_name == "db.example.net"
    assert rows["vps-1.vps.ovh.net"].display_name == "vps-1.vps.ovh.net"
    assert rows["10.0.0.0/28"].state is None
    assert rows["pcc-1/host/42"].parent_id == "pcc-1"
    assert rows["pcc-1/host/42"].display_name == "host-a"
    assert rows["pcc-1/ssd-ds-1"].resource_type == "private_cloud_datastore"
    assert type_map["ns1.ip-1-2-3.eu"] == "dedicated_server"
    assert type_map["pcc-1/host/42"] == "private_cloud_host"


@pytest.mark.asyncio
async def test_inventory_resync_updates_rows(session_maker, path_source):
    await InventorySyncService(path_source(PATHS), session_maker).run()
    changed = dict(PATHS)
    changed["/vps/vps-1.vps.ovh.net"] = {"displayName": "web", "state": "stopped"}

    await InventorySyncService(path_source(changed), session_maker).run()

    async with session_maker() as session:
        vps = await session.get(InventoryResource, "vps-1.vps.ovh.net")
    assert (vps.display_name, vps.state) == ("web", "stopped")

