"""
OVHcloud API client for billing ingestion.

Requests are signed the way the provider expects:

    X-Ovh-Signature = "$1$" + sha1(secret+consumer+METHOD+url+body+timestamp)

where `timestamp` is the local clock shifted by the server delta read once
from `/auth/time`. Only HTTP 429 is retried (exponential backoff); a timeout
surfaces immediately as ExternalAPIError(code="upstream_timeout").
"""

import hashlib
import time
from datetime import date
from typing import Any, List, Optional
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from billsight.schemas.billing import (
    BillLineRecord,
    BillRecord,
    CloudInstanceRecord,
    PaymentRecord,
    ProjectRecord,
)
from billsight.shared.adapters.base import BillingSource
from billsight.shared.adapters.feed_utils import parse_payload
from billsight.shared.core.config import Settings, get_settings
from billsight.shared.core.exceptions import ConfigurationError, ExternalAPIError

logger = structlog.get_logger()


class RateLimitedError(ExternalAPIError):
    """HTTP 429 from the provider; retried with backoff before surfacing."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code="rate_limited", details=details)


def sign_request(
    application_secret: str,
    consumer_key: str,
    method: str,
    url: str,
    body: str,
    timestamp: int,
) -> str:
    payload = "+".join(
        [application_secret, consumer_key, method.upper(), url, body, str(timestamp)]
    )
    return "$1$" + hashlib.sha1(payload.encode("utf-8")).hexdigest()


class OVHBillingClient(BillingSource):
    """Signed, read-only client over the bill, project and inventory endpoints."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        if not (
            self.settings.OVH_APPLICATION_KEY
            and self.settings.OVH_APPLICATION_SECRET
            and self.settings.OVH_CONSUMER_KEY
        ):
            raise ConfigurationError(
                "OVH_APPLICATION_KEY, OVH_APPLICATION_SECRET and OVH_CONSUMER_KEY must be set",
                code="missing_credentials",
            )
        self.base_url = self.settings.ovh_base_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.OVH_REQUEST_TIMEOUT_SECONDS, connect=10.0),
            headers={"User-Agent": f"{self.settings.APP_NAME}/{self.settings.VERSION}"},
        )
        self._time_delta: Optional[int] = None

    async def __aenter__(self) -> "OVHBillingClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _server_time_delta(self) -> int:
        if self._time_delta is None:
            response = await self._send("GET", f"{self.base_url}/auth/time", headers={})
            try:
                server_time = int(response.json())
            except (TypeError, ValueError) as exc:
                raise ExternalAPIError(
                    f"Unexpected /auth/time response: {response.text!r}"
                ) from exc
            self._time_delta = server_time - int(time.time())
            logger.debug("ovh_time_delta_resolved", delta_seconds=self._time_delta)
        return self._time_delta

    async def _signed_headers(self, method: str, url: str, body: str) -> dict[str, str]:
        timestamp = int(time.time()) + await self._server_time_delta()
        secret = self.settings.OVH_APPLICATION_SECRET.get_secret_value()
        consumer = self.settings.OVH_CONSUMER_KEY.get_secret_value()
        return {
            "X-Ovh-Application": self.settings.OVH_APPLICATION_KEY or "",
            "X-Ovh-Consumer": consumer,
            "X-Ovh-Timestamp": str(timestamp),
            "X-Ovh-Signature": sign_request(secret, consumer, method, url, body, timestamp),
        }

    async def _send(
        self, method: str, url: str, *, headers: dict[str, str], content: str = ""
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method, url, headers=headers, content=content or None
            )
        except httpx.TimeoutException as exc:
            raise ExternalAPIError(
                f"OVH API request timed out: {method} {url}",
                code="upstream_timeout",
                details={"url": url},
            ) from exc
        except httpx.TransportError as exc:
            raise ExternalAPIError(
                f"OVH API unreachable: {exc}",
                code="upstream_unavailable",
                details={"url": url},
            ) from exc

        if response.status_code == 429:
            raise RateLimitedError(
                f"OVH API rate limited: {method} {url}", details={"url": url}
            )
        if response.status_code >= 400:
            raise ExternalAPIError(
                f"OVH API {method} {url} failed with status {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )
        return response

    async def _request(
        self, method: str, path: str, params: Optional[dict[str, Any]] = None
    ) -> Any:
        url = str(httpx.URL(f"{self.base_url}{path}", params=params or None))
        attempts = max(0, int(self.settings.OVH_RATE_LIMIT_RETRIES)) + 1
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(
                multiplier=self.settings.OVH_RATE_LIMIT_BACKOFF_SECONDS, max=30
            ),
            retry=retry_if_exception_type(RateLimitedError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "ovh_rate_limited_retry",
                            path=path,
                            attempt=attempt.retry_state.attempt_number,
                            max_attempts=attempts,
                        )
                    # Signature covers the timestamp, so every attempt is re-signed.
                    headers = await self._signed_headers(method, url, "")
                    response = await self._send(method, url, headers=headers)
        except ExternalAPIError as exc:
            self._set_last_error_from_exception(exc, prefix=f"{method} {path}")
            raise
        self.last_error = None
        if not response.content:
            return None
        return response.json()

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("GET", path, params)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def list_project_ids(self) -> List[str]:
        return [str(project_id) for project_id in await self.get("/cloud/project") or []]

    async def get_project(self, project_id: str) -> ProjectRecord:
        payload = await self.get(f"/cloud/project/{quote(project_id, safe='')}")
        return parse_payload(
            f"project {project_id}", lambda: ProjectRecord.from_api(project_id, payload or {})
        )

    async def list_cloud_instances(self, project_id: str) -> List[CloudInstanceRecord]:
        payload = await self.get(f"/cloud/project/{quote(project_id, safe='')}/instance")
        return parse_payload(
            f"instance list for {project_id}",
            lambda: [CloudInstanceRecord.from_api(project_id, item) for item in payload or []],
        )

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    async def list_bill_ids(
        self, from_date: Optional[date] = None, to_date: Optional[date] = None
    ) -> List[str]:
        params: dict[str, Any] = {}
        if from_date:
            params["date.from"] = from_date.isoformat()
        if to_date:
            params["date.to"] = to_date.isoformat()
        return [str(bill_id) for bill_id in await self.get("/me/bill", params) or []]

    async def get_bill(self, bill_id: str) -> BillRecord:
        payload = await self.get(f"/me/bill/{quote(bill_id, safe='')}")
        return parse_payload(f"bill {bill_id}", lambda: BillRecord.from_api(bill_id, payload or {}))

    async def list_bill_detail_ids(self, bill_id: str) -> List[str]:
        payload = await self.get(f"/me/bill/{quote(bill_id, safe='')}/details")
        return [str(detail_id) for detail_id in payload or []]

    async def get_bill_detail(self, bill_id: str, detail_id: str) -> BillLineRecord:
        payload = await self.get(
            f"/me/bill/{quote(bill_id, safe='')}/details/{quote(detail_id, safe='')}"
        )
        return parse_payload(
            f"bill detail {bill_id}/{detail_id}",
            lambda: BillLineRecord.from_api(detail_id, payload or {}),
        )

    async def get_bill_payment(self, bill_id: str) -> PaymentRecord:
        payload = await self.get(f"/me/bill/{quote(bill_id, safe='')}/payment")
        return parse_payload(f"payment for {bill_id}", lambda: PaymentRecord.from_api(payload))
