"""
Supabase REST (PostgREST) reader for the migration job.

Used endpoint:
- GET /rest/v1/<table>?select=*   with `Range: <from>-<to>` for paging
"""

from __future__ import annotations

import os
from typing import Any

import httpx

DEFAULT_PAGE_SIZE = 1000


# Source failures are explicit and separable from target-side errors.
class SourceError(RuntimeError):
    pass


def _normalize_base_url(base_url: str) -> str:
    base_url = (base_url or "").strip()
    if not base_url:
        raise SourceError("SUPABASE_URL is empty.")
    return base_url.rstrip("/")


class SupabaseSource:
    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        service_key = (service_key or "").strip()
        if not service_key:
            raise SourceError("SUPABASE_SERVICE_KEY is empty.")
        self._client = httpx.AsyncClient(
            base_url=f"{_normalize_base_url(base_url)}/rest/v1",
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Accept": "application/json",
            },
            timeout=timeout_s,
            transport=transport,
        )
        self._page_size = max(1, page_size)

    @classmethod
    def from_env(cls) -> SupabaseSource:
        return cls(
            base_url=os.environ.get("SUPABASE_URL", ""),
            service_key=os.environ.get("SUPABASE_SERVICE_KEY", ""),
        )

    async def __aenter__(self) -> SupabaseSource:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_all(self, table: str) -> list[dict[str, Any]]:
        """
        Read every row of `table`, one page at a time, until a short page.
        """
        rows: list[dict[str, Any]] = []
        start = 0
        while True:
            end = start + self._page_size - 1
            resp = await self._client.get(
                f"/{table}",
                params={"select": "*"},
                headers={"Range-Unit": "items", "Range": f"{start}-{end}"},
            )
            # 206 Partial Content is the normal answer to a ranged request.
            if resp.status_code not in (200, 206):
                body = resp.text[:500]
                raise SourceError(f"Supabase read of {table} failed: {resp.status_code} {body}")

            page = resp.json()
            if not isinstance(page, list):
                raise SourceError(f"Supabase returned a non-list payload for {table}.")
            rows.extend(page)
            if len(page) < self._page_size:
                return rows
            start += self._page_size
