"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any browser-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from core.errors import PipelineError


class Phase(str, Enum):
    """Lifecycle phases of the monitor state machine."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass(frozen=True)
class NodeSnapshot:
    """Serialized view of one host node, as delivered by a ContentTree."""

    node_id: str
    text: str
    is_message: bool
    sender_hint: Optional[str] = None
    fallback_text: str = ""
    descendants: Tuple["NodeSnapshot", ...] = ()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "NodeSnapshot":
        descendants = tuple(cls.from_dict(item) for item in payload.get("descendants") or ())
        return cls(
            node_id=str(payload.get("nodeId") or ""),
            text=str(payload.get("text") or "").strip(),
            is_message=bool(payload.get("isMessage", False)),
            sender_hint=payload.get("senderHint") or None,
            fallback_text=str(payload.get("fallbackText") or "").strip(),
            descendants=descendants,
        )


@dataclass(frozen=True)
class CandidateText:
    """Raw text extracted from one content node."""

    text: str
    node_id: str
    sender_hint: Optional[str]
    timestamp: float
    observed_at: datetime


@dataclass(frozen=True)
class MatchResult:
    """A keyword hit ready for notification dispatch."""

    normalized_text: str
    matched_keyword: str
    timestamp: float
    sender_hint: Optional[str] = None
    observed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Notification:
    """Outbound notification request handed to a NotifierPort."""

    title: str
    body: str
    require_interaction: bool = True


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of running one candidate through the processing pipeline."""

    status: str
    candidate: Optional[CandidateText] = None
    match: Optional[MatchResult] = None
    error: Optional[PipelineError] = None

    MATCHED = "matched"
    NO_MATCH = "no_match"
    DUPLICATE = "duplicate"
    EMPTY = "empty"
    DROPPED = "dropped"
    ERROR = "error"

    @property
    def matched(self) -> bool:
        return self.status == self.MATCHED


@dataclass
class ScanReport:
    """Aggregated outcomes of a batch or full scan."""

    reason: str
    outcomes: list[PipelineOutcome] = field(default_factory=list)

    @property
    def matches(self) -> list[MatchResult]:
        return [outcome.match for outcome in self.outcomes if outcome.match is not None]

    @property
    def errors(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == PipelineOutcome.ERROR)
