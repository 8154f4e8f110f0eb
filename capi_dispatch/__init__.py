"""Idempotent conversion event dispatch to the Meta Conversions API."""

from capi_dispatch.delivery import AttributionClient
from capi_dispatch.eligibility import eligible_identity, is_eligible
from capi_dispatch.errors import ConfigError, DeliveryError, DispatchError, LedgerError, UpstreamFetchError
from capi_dispatch.identity import event_identifier, hash_identity, normalize_identity, parse_exclusion_list
from capi_dispatch.ledger import DedupLedger, InMemoryDedupLedger, RedisDedupLedger
from capi_dispatch.metabase import MetabaseSource
from capi_dispatch.models import DedupKey, OutboundEvent, RunReport, SourceRow, build_outbound_event
from capi_dispatch.orchestrator import DispatchOrchestrator
from capi_dispatch.redis_handle import RedisHandle

__all__ = [
    "SourceRow",
    "DedupKey",
    "OutboundEvent",
    "RunReport",
    "build_outbound_event",
    "normalize_identity",
    "hash_identity",
    "event_identifier",
    "parse_exclusion_list",
    "eligible_identity",
    "is_eligible",
    "DedupLedger",
    "RedisDedupLedger",
    "InMemoryDedupLedger",
    "RedisHandle",
    "AttributionClient",
    "MetabaseSource",
    "DispatchOrchestrator",
    "DispatchError",
    "ConfigError",
    "UpstreamFetchError",
    "DeliveryError",
    "LedgerError",
]
