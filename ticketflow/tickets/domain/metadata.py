"""
Ticket Metadata
===============

Typed view of the ticket's JSON ``metadata`` column.

The column is semi-structured: the engine owns a handful of keys (TAT pause
state, extension history, escalation markers, rating) and preserves anything
else as dynamic form fields. ``from_raw`` never raises; keys that fail
validation are left out of the typed view and reported in
``invalid_fields`` so callers can log them and fail safe. Their stored values
are written back unchanged by ``to_raw`` until a mutation replaces the key.
Unreadable extension entries are kept ahead of the readable ones.
"""

from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from ticketflow.sla.domain.value_objects import ExtensionRecord, TatState


class TicketMetadata(BaseModel):
    """Engine-owned metadata plus pass-through dynamic fields."""
    model_config = ConfigDict(extra="allow")

    tat_state: Optional[TatState] = None
    extensions: List[ExtensionRecord] = Field(default_factory=list)
    last_escalation_at: Optional[datetime] = None
    escalated_breaches: List[str] = Field(default_factory=list)
    previous_assigned_to: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = None
    rated_at: Optional[datetime] = None

    _invalid_fields: FrozenSet[str] = PrivateAttr(default=frozenset())
    _invalid_values: Dict[str, Any] = PrivateAttr(default_factory=dict)
    _unreadable_extensions: List[Any] = PrivateAttr(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> "TicketMetadata":
        """Validate a stored metadata value, setting malformed keys aside."""
        if not raw:
            return cls()
        if not isinstance(raw, dict):
            meta = cls()
            meta._invalid_fields = frozenset({"*"})
            return meta

        raw = dict(raw)
        unreadable = []
        if isinstance(raw.get("extensions"), list):
            readable = []
            for item in raw["extensions"]:
                try:
                    readable.append(ExtensionRecord.model_validate(item))
                except ValidationError:
                    unreadable.append(item)
            raw["extensions"] = readable

        try:
            meta = cls.model_validate(raw)
            bad = set()
        except ValidationError as exc:
            bad = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
            meta = cls.model_validate({k: v for k, v in raw.items() if k not in bad})
            meta._invalid_values = {k: raw[k] for k in bad if k in raw}

        meta._unreadable_extensions = unreadable
        if unreadable:
            bad.add("extensions")
        meta._invalid_fields = frozenset(bad)
        return meta

    @property
    def invalid_fields(self) -> FrozenSet[str]:
        return self._invalid_fields

    @property
    def tat_state_unreliable(self) -> bool:
        """True when the pause state could not be read."""
        return bool(self._invalid_fields & {"tat_state", "*"})

    @property
    def is_paused(self) -> bool:
        return self.tat_state is not None

    def has_breach_marker(self, marker: str) -> bool:
        return marker in self.escalated_breaches

    def updated(self, **changes: Any) -> "TicketMetadata":
        """Copy with engine-owned keys replaced."""
        meta = self.model_copy(update=changes)
        meta._invalid_values = {
            k: v for k, v in self._invalid_values.items() if k not in changes
        }
        meta._unreadable_extensions = list(self._unreadable_extensions)
        return meta

    def to_raw(self) -> dict:
        """JSON-ready dict for the metadata column."""
        raw = self.model_dump(mode="json", exclude_none=True)
        if self._unreadable_extensions:
            raw["extensions"] = self._unreadable_extensions + raw.get("extensions", [])
        raw.update(self._invalid_values)
        return raw
