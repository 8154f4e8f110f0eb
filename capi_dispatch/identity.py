"""Identity normalization, hashing and deterministic event identifiers.

Pure functions only. The raw contact identifier never leaves this module
except as a SHA-256 token.
"""

from __future__ import annotations

import hashlib
import re
from typing import Iterable

from capi_dispatch.constants import DEFAULT_EXPERIMENT_LABEL, EVENT_NAMESPACE

_E164_RE = re.compile(r"\+\d{8,16}")
_NON_PHONE_CHARS_RE = re.compile(r"[^\d+]")


def normalize_identity(raw: str | None) -> str | None:
    """Canonicalize a phone number to ``+`` followed by 8-16 digits.

    Returns None when the input is empty, lacks a leading ``+``, or does not
    match the canonical form once punctuation and whitespace are removed.
    """
    if not raw:
        return None
    trimmed = raw.strip()
    if not trimmed.startswith("+"):
        return None
    digits = _NON_PHONE_CHARS_RE.sub("", trimmed)
    if not _E164_RE.fullmatch(digits):
        return None
    return digits


def sha256_lower_hex(value: str) -> str:
    """SHA-256 of the trimmed, lower-cased value as lowercase hex."""
    return hashlib.sha256(value.strip().lower().encode("utf-8")).hexdigest()


def hash_identity(normalized: str) -> str:
    """Hash a normalized identity for transmission (leading ``+`` dropped)."""
    return sha256_lower_hex(normalized.removeprefix("+"))


def experiment_label_for(label: str | None) -> str:
    return (label or "").strip() or DEFAULT_EXPERIMENT_LABEL


def event_identifier(session_id: str, experiment_label: str | None = None) -> str:
    """Build the downstream idempotency key for a session/experiment pair.

    The receiving API deduplicates on this value, so it must stay stable
    across runs and processes.
    """
    return f"{EVENT_NAMESPACE}:{experiment_label_for(experiment_label)}:{session_id}"


def parse_exclusion_list(value: str | Iterable[str] | None) -> frozenset[str]:
    """Parse test/internal numbers from a CSV string or a list.

    Entries that normalize are kept in normalized form so that membership is
    an exact match against ``normalize_identity`` output.
    """
    if not value:
        return frozenset()
    items = value.split(",") if isinstance(value, str) else [str(item) for item in value]
    numbers: set[str] = set()
    for item in items:
        entry = item.strip()
        if not entry:
            continue
        numbers.add(normalize_identity(entry) or entry)
    return frozenset(numbers)
