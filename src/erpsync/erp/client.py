"""
Async HTTP client for the ERP's service gateway.

Every call goes through `service.sbr` with a service name and a JSON
request body. The gateway answers HTTP 200 even for rejected calls, so
the `status` field of the payload is checked as well: "1" means success,
anything else carries a `statusMessage`.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from erpsync.errors import AdapterFetchError

logger = logging.getLogger(__name__)

LOAD_RECORDS_SERVICE = "CRUDServiceProvider.loadRecords"


class ErpClient:
    """
    Thin async wrapper over the ERP gateway.

    Usage:
        async with ErpClient(base_url, token) as client:
            body = await client.call(LOAD_RECORDS_SERVICE, request_body, tenant_id=1)
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Gateway root, e.g. "https://erp.example.com/mge".
            token: Bearer token; omitted from headers when empty.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (MockTransport in tests).
        """
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ErpClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def call(
        self,
        service_name: str,
        request_body: Dict[str, Any],
        *,
        tenant_id: int,
    ) -> Dict[str, Any]:
        """
        Invoke one gateway service and return its `responseBody`.

        Raises:
            AdapterFetchError: on transport errors, timeouts, non-2xx
                responses, undecodable JSON, or a rejected service call.
        """
        try:
            response = await self._http.post(
                "/service.sbr",
                params={"serviceName": service_name, "outputType": "json"},
                headers={"X-Tenant-Id": str(tenant_id)},
                json={"serviceName": service_name, "requestBody": request_body},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise AdapterFetchError(
                f"ERP returned HTTP {exc.response.status_code} for {service_name}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AdapterFetchError(f"ERP request failed: {exc!r}") from exc
        except ValueError as exc:
            raise AdapterFetchError(f"ERP returned invalid JSON: {exc}") from exc

        if str(data.get("status")) != "1":
            message = data.get("statusMessage") or "unknown error"
            raise AdapterFetchError(f"ERP rejected {service_name}: {message}")
        return data.get("responseBody") or {}
