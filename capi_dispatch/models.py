"""Data model for source rows, dedup keys and outbound attribution events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from capi_dispatch.constants import EVENT_NAME, LEDGER_PREFIX
from capi_dispatch.identity import event_identifier, experiment_label_for, hash_identity


class SourceRow(BaseModel):
    """One candidate event as returned by the analytics question.

    Field aliases are the column names of the saved question.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    session_id: str
    identity_raw: str | None = Field(default=None, alias="phone_e164")
    activity_count: int = Field(alias="messages_sent")
    origin_url: str | None = Field(default=None, alias="source_url")
    experiment_label: str | None = None

    @field_validator("session_id", mode="before")
    @classmethod
    def _session_id_as_text(cls, value: Any) -> Any:
        # Numeric session ids come through as JSON numbers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def experiment(self) -> str:
        return experiment_label_for(self.experiment_label)


@dataclass(frozen=True)
class DedupKey:
    """Identity of one logical event across runs: ``(experiment_label, session_id)``."""

    experiment_label: str
    session_id: str

    @classmethod
    def for_row(cls, row: SourceRow) -> "DedupKey":
        return cls(experiment_label=row.experiment, session_id=row.session_id)

    @property
    def event_id(self) -> str:
        return event_identifier(self.session_id, self.experiment_label)

    def ledger_key(self, prefix: str = LEDGER_PREFIX) -> str:
        return f"{prefix}:{self.experiment_label}:{self.session_id}"


class UserData(BaseModel):
    ph: list[str]


class CustomData(BaseModel):
    messages_sent: int
    experiment_label: str
    source_url: str | None = None


class OutboundEvent(BaseModel):
    """Payload unit for the attribution API. Built fresh per dispatch, never stored."""

    model_config = ConfigDict(frozen=True)

    event_name: str = EVENT_NAME
    event_time: int
    event_source_url: str | None = None
    action_source: str
    event_id: str
    user_data: UserData
    custom_data: CustomData

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the wire; ``event_source_url`` is omitted when unset."""
        data = self.model_dump()
        if data["event_source_url"] is None:
            del data["event_source_url"]
        return data


class RunReport(BaseModel):
    status: Literal["ok"] = "ok"
    processed: int
    meta: Any = None

    def to_response(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "processed": self.processed}
        if self.meta is not None:
            data["meta"] = self.meta
        return data


class DebugFireResult(BaseModel):
    ok: bool = True
    out: Any = None
    sent: dict[str, Any]


def build_outbound_event(
    *,
    session_id: str,
    identity: str,
    activity_count: int,
    origin_url: str | None,
    experiment_label: str | None,
    action_source: str,
    event_time: int,
) -> OutboundEvent:
    """Build an event from an already-normalized identity.

    ``identity`` is hashed here; the returned event carries only the token.
    """
    label = experiment_label_for(experiment_label)
    source_url = origin_url or None
    return OutboundEvent(
        event_time=event_time,
        event_source_url=source_url,
        action_source=action_source,
        event_id=event_identifier(session_id, label),
        user_data=UserData(ph=[hash_identity(identity)]),
        custom_data=CustomData(messages_sent=activity_count, experiment_label=label, source_url=source_url),
    )
