"""
Relationship scores between agents, with derived alliances and rivalries.

Scores are kept per peer in [-100, 100]. Alliances and rivalries are derived
from score crossings and are always mutually exclusive.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

SCORE_MIN = -100.0
SCORE_MAX = 100.0
ALLIANCE_THRESHOLD = 60.0
RIVALRY_THRESHOLD = -60.0
INTERACTION_LOG_LIMIT = 20


class RelationshipStatus(StrEnum):
    STRONG_ALLY = "strong ally"
    ALLY = "ally"
    NEUTRAL = "neutral"
    RIVAL = "rival"
    STRONG_RIVAL = "strong rival"


def classify_score(score: float) -> RelationshipStatus:
    if score > 60:
        return RelationshipStatus.STRONG_ALLY
    if score > 30:
        return RelationshipStatus.ALLY
    if score < -60:
        return RelationshipStatus.STRONG_RIVAL
    if score < -30:
        return RelationshipStatus.RIVAL
    return RelationshipStatus.NEUTRAL


@dataclass
class Interaction:
    delta: float
    reason: str
    new_score: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "delta": self.delta,
            "reason": self.reason,
            "new_score": self.new_score,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Interaction:
        return cls(
            delta=float(data["delta"]),
            reason=str(data.get("reason", "")),
            new_score=float(data["new_score"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class Relationship:
    score: float = 0.0
    history: deque[Interaction] = field(
        default_factory=lambda: deque(maxlen=INTERACTION_LOG_LIMIT)
    )

    @property
    def status(self) -> RelationshipStatus:
        return classify_score(self.score)


@dataclass(frozen=True)
class RelationshipView:
    """Read-only view handed to prompt building and summaries."""

    peer_id: str
    score: float
    status: RelationshipStatus
    recent_interactions: tuple[Interaction, ...] = ()


class RelationshipLedger:
    """Per-agent map of peer relationships."""

    def __init__(self) -> None:
        self._relationships: dict[str, Relationship] = {}
        self._alliances: list[str] = []
        self._rivalries: list[str] = []

    @property
    def alliances(self) -> list[str]:
        return list(self._alliances)

    @property
    def rivalries(self) -> list[str]:
        return list(self._rivalries)

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._relationships

    def __len__(self) -> int:
        return len(self._relationships)

    def peers(self) -> list[str]:
        return list(self._relationships)

    def score_of(self, peer_id: str) -> float:
        rel = self._relationships.get(peer_id)
        return rel.score if rel else 0.0

    def update(self, peer_id: str, delta: float, reason: str) -> Relationship:
        rel = self._relationships.setdefault(peer_id, Relationship())
        rel.score = max(SCORE_MIN, min(SCORE_MAX, rel.score + delta))
        rel.history.append(Interaction(delta=delta, reason=reason, new_score=rel.score))

        if rel.score > ALLIANCE_THRESHOLD and peer_id not in self._alliances:
            self._alliances.append(peer_id)
            self._rivalries = [p for p in self._rivalries if p != peer_id]
        elif rel.score < RIVALRY_THRESHOLD and peer_id not in self._rivalries:
            self._rivalries.append(peer_id)
            self._alliances = [p for p in self._alliances if p != peer_id]
        return rel

    def view(self, peer_id: str, recent: int = 5) -> RelationshipView:
        rel = self._relationships.get(peer_id)
        if rel is None:
            return RelationshipView(peer_id=peer_id, score=0.0, status=RelationshipStatus.NEUTRAL)
        recent_items = tuple(rel.history)[-recent:] if recent > 0 else ()
        return RelationshipView(
            peer_id=peer_id,
            score=rel.score,
            status=rel.status,
            recent_interactions=recent_items,
        )

    def status_of(self, peer_id: str) -> RelationshipStatus:
        return classify_score(self.score_of(peer_id))

    def history_of(self, peer_id: str) -> list[Interaction]:
        rel = self._relationships.get(peer_id)
        return list(rel.history) if rel else []

    def to_dict(self) -> dict[str, Any]:
        return {
            "relationships": {
                peer_id: {
                    "score": rel.score,
                    "history": [item.to_dict() for item in rel.history],
                }
                for peer_id, rel in self._relationships.items()
            },
            "alliances": list(self._alliances),
            "rivalries": list(self._rivalries),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RelationshipLedger:
        ledger = cls()
        data = data or {}
        for peer_id, raw in (data.get("relationships") or {}).items():
            rel = Relationship(score=max(SCORE_MIN, min(SCORE_MAX, float(raw.get("score", 0.0)))))
            for item in raw.get("history") or []:
                rel.history.append(Interaction.from_dict(item))
            ledger._relationships[peer_id] = rel
        alliances = [p for p in data.get("alliances") or [] if p in ledger._relationships]
        ledger._alliances = list(dict.fromkeys(alliances))
        ledger._rivalries = [
            p for p in dict.fromkeys(data.get("rivalries") or []) if p not in ledger._alliances
        ]
        return ledger
