"""Service wiring: builds the collaborators a dispatch run needs from config."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from capi_dispatch.config import Config
from capi_dispatch.delivery import AttributionClient
from capi_dispatch.ledger import DedupLedger, RedisDedupLedger
from capi_dispatch.metabase import MetabaseSource
from capi_dispatch.orchestrator import DispatchOrchestrator, EventSink, RowSource
from capi_dispatch.redis_handle import RedisHandle, get_redis_handle

logger = logging.getLogger(__name__)


@dataclass
class DispatchServices:
    """Long-lived collaborators shared by the trigger surfaces."""

    source: RowSource
    ledger: DedupLedger
    delivery: EventSink
    exclusions: frozenset[str]
    action_source: str
    redis: RedisHandle | None = None

    def orchestrator(self) -> DispatchOrchestrator:
        return DispatchOrchestrator(
            self.source,
            self.ledger,
            self.delivery,
            exclusions=self.exclusions,
            action_source=self.action_source,
        )

    async def close(self) -> None:
        for resource in (self.source, self.delivery, self.redis):
            close = getattr(resource, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception:  # pylint: disable=broad-exception-caught
                logger.warning("Error closing %s", type(resource).__name__, exc_info=True)


def build_services(config: Config) -> DispatchServices:
    timeout_s = config.dispatch.http_timeout_s
    source = MetabaseSource(
        config.metabase.site_url,
        config.metabase.token,
        config.metabase.question_id,
        date_start=config.metabase.date_start,
        date_end=config.metabase.date_end,
        bot_id=config.metabase.bot_id,
        date_start_tag=config.metabase.date_start_tag,
        date_end_tag=config.metabase.date_end_tag,
        bot_id_tag=config.metabase.bot_id_tag,
        timeout_s=timeout_s,
    )
    delivery = AttributionClient(
        config.attribution.pixel_id,
        config.attribution.access_token,
        test_event_code=config.attribution.test_event_code,
        api_version=config.attribution.api_version,
        timeout_s=timeout_s,
    )
    redis = get_redis_handle(config.ledger.url, password=config.ledger.password)
    return DispatchServices(
        source=source,
        ledger=RedisDedupLedger(redis),
        delivery=delivery,
        exclusions=config.dispatch.test_numbers,
        action_source=config.attribution.action_source,
        redis=redis,
    )
