"""Storefront Admin GraphQL client.

One pooled ``httpx.AsyncClient`` is shared by every request in the process.
Each call carries the tenant's own token; there is no default credential.
A call either fully succeeds or raises ``DownstreamFailure``: transport
errors, timeouts, non-2xx answers and GraphQL ``errors`` arrays all count.
"""

import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.errors import DownstreamFailure, MissingCredential

logger = logging.getLogger(__name__)


class StorefrontClient:
    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        low_water: Optional[int] = None,
    ):
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.low_water = settings.THROTTLE_LOW_WATER if low_water is None else low_water
        if http is None:
            http = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout or settings.STOREFRONT_TIMEOUT_SECONDS),
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        self._http = http

    def endpoint(self, shop: str) -> str:
        return f"https://{shop}/admin/api/{self.api_version}/graphql.json"

    async def query(
        self,
        shop: str,
        access_token: str,
        query: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Run one GraphQL operation and return its ``data`` object."""
        if not access_token:
            raise MissingCredential(f"No access token provided for {shop}")

        try:
            response = await self._http.post(
                self.endpoint(shop),
                json={"query": query, "variables": variables or {}},
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": access_token,
                },
            )
        except httpx.TimeoutException as exc:
            logger.error("Storefront query to %s timed out: %s", shop, exc.__class__.__name__)
            raise DownstreamFailure("Store did not respond in time") from exc
        except httpx.HTTPError as exc:
            logger.error("Storefront query to %s failed: %s", shop, exc)
            raise DownstreamFailure("Could not reach the store") from exc

        if response.is_error:
            logger.error(
                "Storefront query to %s returned %d: %s",
                shop, response.status_code, response.text[:500],
            )
            raise DownstreamFailure(
                f"Store API request failed with status {response.status_code}",
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise DownstreamFailure("Store API returned a non-JSON body", status=response.status_code) from exc
        if not isinstance(payload, dict):
            raise DownstreamFailure("Store API returned an unexpected body", status=response.status_code)

        self._check_throttle(shop, payload)

        errors = payload.get("errors")
        if errors:
            messages = [
                e.get("message", str(e)) if isinstance(e, dict) else str(e)
                for e in (errors if isinstance(errors, list) else [errors])
            ]
            logger.error("Storefront query to %s returned GraphQL errors: %s", shop, messages)
            raise DownstreamFailure(
                "Store API returned errors: " + "; ".join(messages),
                status=response.status_code,
            )

        data = payload.get("data")
        if not isinstance(data, dict):
            raise DownstreamFailure("Store API returned no data", status=response.status_code)
        return data

    def _check_throttle(self, shop: str, payload: dict[str, Any]) -> None:
        throttle = ((payload.get("extensions") or {}).get("cost") or {}).get("throttleStatus") or {}
        available = throttle.get("currentlyAvailable")
        if available is not None and available < self.low_water:
            logger.warning(
                "Storefront rate limit low for %s: %s of %s points available (restore %s/s)",
                shop, available, throttle.get("maximumAvailable"), throttle.get("restoreRate"),
            )

    async def aclose(self) -> None:
        await self._http.aclose()


_client: Optional[StorefrontClient] = None


def get_storefront_client() -> StorefrontClient:
    """FastAPI dependency returning the process-wide client."""
    global _client
    if _client is None:
        _client = StorefrontClient()
    return _client


async def close_storefront_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
