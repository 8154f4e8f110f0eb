"""Metabase saved-question adapter: the analytics source for candidate rows."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from capi_dispatch.constants import DELIVERY_ATTEMPTS, DELIVERY_BASE_DELAY_S, HTTP_TIMEOUT_S
from capi_dispatch.errors import UpstreamFetchError
from capi_dispatch.models import SourceRow
from capi_dispatch.retry import with_retries

logger = logging.getLogger(__name__)


class MetabaseSource:
    """Runs a saved question through ``/api/card/<id>/query/json``.

    Date range and bot id are passed as template-tag parameters when set.
    """

    def __init__(
        self,
        site_url: str,
        token: str,
        question_id: str,
        *,
        date_start: str | None = None,
        date_end: str | None = None,
        bot_id: str | None = None,
        date_start_tag: str = "date_start",
        date_end_tag: str = "date_end",
        bot_id_tag: str = "bot_id",
        attempts: int = DELIVERY_ATTEMPTS,
        base_delay_s: float = DELIVERY_BASE_DELAY_S,
        timeout_s: float = HTTP_TIMEOUT_S,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._site_url = site_url.rstrip("/")
        self._token = token
        self._question_id = question_id
        self._tag_values = [
            (date_start_tag, date_start),
            (date_end_tag, date_end),
            (bot_id_tag, bot_id),
        ]
        self._attempts = attempts
        self._base_delay_s = base_delay_s
        self._timeout_s = timeout_s
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    @property
    def query_url(self) -> str:
        return f"{self._site_url}/api/card/{self._question_id}/query/json"

    def build_parameters(self) -> list[dict[str, Any]]:
        return [
            {"type": "category", "target": ["variable", ["template-tag", tag]], "value": value}
            for tag, value in self._tag_values
            if value
        ]

    def build_body(self) -> dict[str, Any]:
        parameters = self.build_parameters()
        return {"parameters": parameters} if parameters else {}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch_raw(self) -> Any:
        """Return the decoded JSON body of the question query.

        Raises:
            UpstreamFetchError: Metabase stayed unreachable or kept failing.
        """
        client = await self._get_client()
        body = self.build_body()
        headers = {"Content-Type": "application/json", "X-Metabase-Session": self._token}

        async def _attempt() -> Any:
            response = await client.post(self.query_url, json=body, headers=headers)
            if not response.is_success:
                raise UpstreamFetchError(f"Metabase {response.status_code}: {response.text or 'unknown error'}")
            try:
                return response.json()
            except ValueError as exc:
                raise UpstreamFetchError(f"Metabase returned non-JSON (HTTP {response.status_code})") from exc

        try:
            return await with_retries(
                _attempt,
                self._attempts,
                self._base_delay_s,
                retry_on=(UpstreamFetchError, httpx.HTTPError),
                sleep=self._sleep,
                label="Metabase query",
            )
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"Metabase unreachable: {exc}") from exc

    async def fetch_rows(self) -> list[SourceRow]:
        """Return the question's rows, dropping rows that do not fit ``SourceRow``.

        Raises:
            UpstreamFetchError: the query failed or the body is not a list.
        """
        data = await self.fetch_raw()
        if not isinstance(data, list):
            raise UpstreamFetchError(f"Metabase returned {type(data).__name__}, expected a list of rows")

        rows: list[SourceRow] = []
        malformed = 0
        for index, item in enumerate(data):
            try:
                rows.append(SourceRow.model_validate(item))
            except ValidationError as exc:
                malformed += 1
                fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
                logger.debug("Skipping malformed Metabase row %d: invalid %s", index, ", ".join(fields))

        if malformed:
            logger.debug("Skipped %d malformed Metabase rows", malformed)
        logger.info(
            "Metabase question %s returned %d rows (malformed=%d)", self._question_id, len(rows), malformed
        )
        return rows
