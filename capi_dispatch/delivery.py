"""Attribution delivery client for the Meta Conversions API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

import httpx

from capi_dispatch.constants import (
    DELIVERY_ATTEMPTS,
    DELIVERY_BASE_DELAY_S,
    HTTP_TIMEOUT_S,
    META_GRAPH_API_VERSION,
    META_GRAPH_BASE_URL,
)
from capi_dispatch.errors import DeliveryError
from capi_dispatch.models import OutboundEvent
from capi_dispatch.retry import with_retries

logger = logging.getLogger(__name__)


class AttributionClient:
    """Sends event batches to ``/<version>/<pixel_id>/events`` in one request.

    The whole request is retried on any transport error, non-2xx status or
    non-JSON body. Per-event acknowledgements in the response are not
    interpreted; the body is returned as-is.
    """

    def __init__(
        self,
        pixel_id: str,
        access_token: str,
        *,
        test_event_code: str | None = None,
        api_version: str = META_GRAPH_API_VERSION,
        base_url: str = META_GRAPH_BASE_URL,
        attempts: int = DELIVERY_ATTEMPTS,
        base_delay_s: float = DELIVERY_BASE_DELAY_S,
        timeout_s: float = HTTP_TIMEOUT_S,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._pixel_id = pixel_id
        self._access_token = access_token
        self._test_event_code = test_event_code
        self._api_version = api_version
        self._base_url = base_url.rstrip("/")
        self._attempts = attempts
        self._base_delay_s = base_delay_s
        self._timeout_s = timeout_s
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    @property
    def events_url(self) -> str:
        return f"{self._base_url}/{self._api_version}/{self._pixel_id}/events"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def close(self) -> None:
        """Shut down the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _params(self) -> dict[str, str]:
        params = {"access_token": self._access_token}
        if self._test_event_code:
            params["test_event_code"] = self._test_event_code
        return params

    async def send(self, events: Sequence[OutboundEvent]) -> Any:
        """Deliver ``events`` as a single batch and return the parsed response body.

        Raises:
            ValueError: ``events`` is empty.
            DeliveryError: every attempt failed.
        """
        if not events:
            raise ValueError("Cannot deliver an empty batch")

        payload = {"data": [event.to_payload() for event in events]}
        client = await self._get_client()

        async def _attempt() -> Any:
            response = await client.post(self.events_url, params=self._params(), json=payload)
            text = response.text
            if not response.is_success:
                raise DeliveryError(f"Meta CAPI {response.status_code}: {text}", response.status_code, text)
            try:
                return response.json()
            except ValueError as exc:
                raise DeliveryError(
                    f"Meta CAPI returned non-JSON (HTTP {response.status_code}): {text[:200]}",
                    response.status_code,
                    text,
                ) from exc

        try:
            result = await with_retries(
                _attempt,
                self._attempts,
                self._base_delay_s,
                retry_on=(DeliveryError, httpx.HTTPError),
                sleep=self._sleep,
                label="Meta CAPI delivery",
            )
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Meta CAPI unreachable: {exc}") from exc

        logger.info("Meta CAPI accepted batch: events=%d", len(events))
        return result
