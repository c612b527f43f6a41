"""
REST client for the balance store (PostgREST-style tables).

Calls never raise to the caller: a non-2xx status, a transport error or an
unreadable body is logged and returned as None ("no data"). A successful
read with no matching rows is an empty list.
"""

import logging
from typing import Any, Optional

import httpx

from credit_proxy.config import Settings

logger = logging.getLogger(__name__)


class BalanceStoreClient:
    """Table-addressed access to the balance store over REST."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    def _headers(self, method: str) -> dict:
        headers = {
            "apikey": self.settings.store_key,
            "Authorization": f"Bearer {self.settings.store_key}",
            "Content-Type": "application/json",
        }
        if method in ("POST", "PATCH"):
            headers["Prefer"] = "return=representation"
        return headers

    async def request(
        self,
        method: str,
        table: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> Optional[Any]:
        """
        Call the store and return the decoded JSON payload.

        Returns None on any failure so callers can apply their own policy.
        """
        url = f"{self.settings.store_url}/rest/v1/{table}"

        try:
            response = await self.client.request(
                method,
                url,
                params=params,
                json=body,
                headers=self._headers(method),
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Store {method} {table} failed: {type(e).__name__}: {e}",
                extra={"method": method, "table": table},
            )
            return None

        if not response.is_success:
            logger.error(
                f"Store {method} {table} failed: {response.status_code} {response.text}",
                extra={"method": method, "table": table, "status_code": response.status_code},
            )
            return None

        if not response.content:
            return []

        try:
            return response.json()
        except ValueError:
            logger.error(
                f"Store {method} {table} returned a non-JSON body",
                extra={"method": method, "table": table},
            )
            return None

    async def select(self, table: str, filters: dict, columns: str) -> Optional[list]:
        params = {key: f"eq.{value}" for key, value in filters.items()}
        params["select"] = columns
        return await self.request("GET", table, params=params)

    async def insert(self, table: str, row: dict) -> Optional[Any]:
        return await self.request("POST", table, body=row)

    async def update(self, table: str, filters: dict, values: dict) -> Optional[Any]:
        params = {key: f"eq.{value}" for key, value in filters.items()}
        return await self.request("PATCH", table, params=params, body=values)
