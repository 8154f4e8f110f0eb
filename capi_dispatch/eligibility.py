"""Eligibility filter: which source rows may ever be dispatched."""

from __future__ import annotations

from typing import AbstractSet

from capi_dispatch.constants import ACTIVITY_THRESHOLD
from capi_dispatch.identity import normalize_identity
from capi_dispatch.models import SourceRow


def eligible_identity(
    row: SourceRow,
    exclusions: AbstractSet[str] = frozenset(),
    threshold: int = ACTIVITY_THRESHOLD,
) -> str | None:
    """Return the normalized identity when the row qualifies, else None."""
    identity = normalize_identity(row.identity_raw)
    if identity is None:
        return None
    if identity in exclusions:
        return None
    if row.activity_count <= threshold:
        return None
    return identity


def is_eligible(
    row: SourceRow,
    exclusions: AbstractSet[str] = frozenset(),
    threshold: int = ACTIVITY_THRESHOLD,
) -> bool:
    return eligible_identity(row, exclusions, threshold) is not None
