"""Dispatch orchestrator: fetch, filter, dedup, build, deliver, commit.

A run is all-or-nothing from the ledger's point of view: entries are written
only after the delivery client reports success for the whole batch, so a
failed run can be repeated wholesale on the next trigger.

Ledger reads and writes are not atomic across the delivery call. Two runs
overlapping on the same rows can both pass the dedup check and send the
same event; the deterministic ``event_id`` lets the attribution API collapse
those, and deployments must trigger at most one run at a time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import AbstractSet, Any, Callable, Protocol, Sequence

from capi_dispatch.constants import ACTIVITY_THRESHOLD, DEFAULT_ACTION_SOURCE
from capi_dispatch.eligibility import eligible_identity
from capi_dispatch.errors import DispatchError, UpstreamFetchError
from capi_dispatch.ledger import DedupLedger
from capi_dispatch.models import DedupKey, OutboundEvent, RunReport, SourceRow, build_outbound_event

logger = logging.getLogger(__name__)


class RowSource(Protocol):
    async def fetch_rows(self) -> list[SourceRow]: ...


class EventSink(Protocol):
    async def send(self, events: Sequence[OutboundEvent]) -> Any: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DispatchOrchestrator:
    def __init__(
        self,
        source: RowSource,
        ledger: DedupLedger,
        delivery: EventSink,
        *,
        exclusions: AbstractSet[str] = frozenset(),
        action_source: str = DEFAULT_ACTION_SOURCE,
        threshold: int = ACTIVITY_THRESHOLD,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._source = source
        self._ledger = ledger
        self._delivery = delivery
        self._exclusions = exclusions
        self._action_source = action_source
        self._threshold = threshold
        self._clock = clock

    async def run(self) -> RunReport:
        """Execute one dispatch run.

        Raises:
            UpstreamFetchError: the source could not be read; nothing was sent.
            LedgerError: the ledger was unreachable; nothing was sent, or the
                batch was sent but none of it was committed.
            DeliveryError: delivery failed after retries; nothing was committed.
        """
        rows = await self._fetch()
        run_time = self._clock()
        batch = await self._build_batch(rows, run_time)

        if not batch:
            logger.info("Dispatch run: nothing to send (rows=%d)", len(rows))
            return RunReport(processed=0)

        response = await self._delivery.send(list(batch.values()))

        await self._ledger.mark_dispatched_many(list(batch), run_time)

        logger.info("Dispatch run delivered and committed %d events", len(batch))
        return RunReport(processed=len(batch), meta=response)

    async def _fetch(self) -> list[SourceRow]:
        try:
            return await self._source.fetch_rows()
        except DispatchError:
            raise
        except Exception as exc:
            raise UpstreamFetchError(f"Source fetch failed: {exc}") from exc

    async def _build_batch(self, rows: list[SourceRow], run_time: datetime) -> dict[DedupKey, OutboundEvent]:
        event_time = int(run_time.timestamp())
        batch: dict[DedupKey, OutboundEvent] = {}
        committed: set[DedupKey] = set()
        ineligible = 0
        already_sent = 0

        for row in rows:
            identity = eligible_identity(row, self._exclusions, self._threshold)
            if identity is None:
                ineligible += 1
                continue

            key = DedupKey.for_row(row)
            # Each key hits the ledger at most once per run; later rows reuse the answer
            if key in committed or (key not in batch and await self._ledger.exists(key)):
                committed.add(key)
                already_sent += 1
                logger.debug("Skipping already dispatched event: %s", key.event_id)
                continue

            batch[key] = build_outbound_event(
                session_id=row.session_id,
                identity=identity,
                activity_count=row.activity_count,
                origin_url=row.origin_url,
                experiment_label=key.experiment_label,
                action_source=self._action_source,
                event_time=event_time,
            )

        logger.info(
            "Dispatch filter: rows=%d ineligible=%d already_sent=%d pending=%d",
            len(rows),
            ineligible,
            already_sent,
            len(batch),
        )
        return batch
