"""Manual diagnostic fire of a single synthetic event.

Bypasses the ledger and the eligibility filter. Used only from the
diagnostic route and CLI command, never from a scheduled run.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from capi_dispatch.constants import DEBUG_ACTIVITY_COUNT, DEFAULT_ACTION_SOURCE, DEFAULT_EXPERIMENT_LABEL
from capi_dispatch.identity import normalize_identity
from capi_dispatch.models import DebugFireResult, build_outbound_event
from capi_dispatch.orchestrator import EventSink, utc_now

logger = logging.getLogger(__name__)


async def fire_debug_event(
    delivery: EventSink,
    *,
    identity: str,
    session_id: str,
    experiment_label: str = DEFAULT_EXPERIMENT_LABEL,
    source_url: str | None = None,
    action_source: str = DEFAULT_ACTION_SOURCE,
    clock: Callable[[], datetime] = utc_now,
) -> DebugFireResult:
    """Send one event for ``identity``/``session_id`` and return what was sent.

    Raises:
        ValueError: ``identity`` is not a valid international phone number.
    """
    normalized = normalize_identity(identity)
    if normalized is None:
        raise ValueError("e164 must be an international phone number starting with '+'")
    if not session_id.strip():
        raise ValueError("session_id is required")

    event = build_outbound_event(
        session_id=session_id,
        identity=normalized,
        activity_count=DEBUG_ACTIVITY_COUNT,
        origin_url=source_url,
        experiment_label=experiment_label,
        action_source=action_source,
        event_time=int(clock().timestamp()),
    )
    out = await delivery.send([event])
    logger.info("Debug event fired: %s", event.event_id)
    return DebugFireResult(out=out, sent={"data": [event.to_payload()]})
