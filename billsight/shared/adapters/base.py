from abc import ABC, abstractmethod
from datetime import date
from typing import Any, List, Optional

from billsight.schemas.billing import (
    BillLineRecord,
    BillRecord,
    CloudInstanceRecord,
    PaymentRecord,
    ProjectRecord,
)


class BillingSource(ABC):
    """
    Read-only view of the provider account consumed by the import pipeline.

    Implementations raise ExternalAPIError for any upstream failure; the
    pipeline decides which failures are fatal.
    """

    last_error: Optional[str] = None

    def _set_last_error_from_exception(self, exc: Exception, *, prefix: str | None = None) -> None:
        message = str(exc)
        self.last_error = f"{prefix}: {message}" if prefix else message

    @abstractmethod
    async def list_project_ids(self) -> List[str]:
        raise NotImplementedError()

    @abstractmethod
    async def get_project(self, project_id: str) -> ProjectRecord:
        raise NotImplementedError()

    @abstractmethod
    async def list_bill_ids(
        self, from_date: Optional[date] = None, to_date: Optional[date] = None
    ) -> List[str]:
        """Bill ids issued in the window; an open bound means unbounded on that side."""
        raise NotImplementedError()

    @abstractmethod
    async def get_bill(self, bill_id: str) -> BillRecord:
        raise NotImplementedError()

    @abstractmethod
    async def list_bill_detail_ids(self, bill_id: str) -> List[str]:
        raise NotImplementedError()

    @abstractmethod
    async def get_bill_detail(self, bill_id: str, detail_id: str) -> BillLineRecord:
        raise NotImplementedError()

    @abstractmethod
    async def get_bill_payment(self, bill_id: str) -> PaymentRecord:
        raise NotImplementedError()

    @abstractmethod
    async def list_cloud_instances(self, project_id: str) -> List[CloudInstanceRecord]:
        raise NotImplementedError()

    @abstractmethod
    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Raw read of an API path, used by inventory sync."""
        raise NotImplementedError()
