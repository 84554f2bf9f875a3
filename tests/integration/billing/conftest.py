from typing import Any, Dict

import pytest

from billsight.shared.adapters.base import BillingSource
from billsight.shared.core.exceptions import ExternalAPIError


class PathSource(BillingSource):
    """Serves canned GET payloads; unknown paths fail like an unavailable endpoint."""

    def __init__(self, paths: Dict[str, Any], instances=None):
        self.paths = paths
        self.instances = instances or {}
        self.requested = []

    async def get(self, path, params=None):
        self.requested.append((path, params))
        if path not in self.paths:
            raise ExternalAPIError(f"{path} unavailable", details={"status_code": 403})
        return self.paths[path]

    async def list_cloud_instances(self, project_id):
        if project_id not in self.instances:
            raise ExternalAPIError("instances unavailable")
        return self.instances[project_id]

    async def list_project_ids(self):
        return []

    async def get_project(self, project_id):
        raise NotImplementedError

    async def list_bill_ids(self, from_date=None, to_date=None):
        return []

    async def get_bill(self, bill_id):
        raise NotImplementedError

    async def list_bill_detail_ids(self, bill_id):
        return []

    async def get_bill_detail(self, bill_id, detail_id):
        raise NotImplementedError

    async def get_bill_payment(self, bill_id):
        raise NotImplementedError


@pytest.fixture
def path_source():
    """Factory for a source answering GETs from a dict of canned payloads."""
    return PathSource
