"""Debate, turn, committee and coalition records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from .config import DebateOptions


class Phase(StrEnum):
    OPENING = "opening"
    MIDDLE = "middle"
    CLOSING = "closing"
    RESOLVED = "resolved"


def compute_phase(turn_count: int, participant_count: int) -> Phase:
    """Phase of the next turn given how many turns have been taken."""
    if turn_count == 0:
        return Phase.OPENING
    if turn_count >= participant_count * 2:
        return Phase.CLOSING
    return Phase.MIDDLE


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Turn:
    debate_id: str
    sequence: int
    agent_id: str
    agent_name: str
    party: str
    model: str
    argument: str
    phase: Phase
    strategy_used: str
    fallback: bool = False
    reviewers: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: _new_id("arg"))
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "debate_id": self.debate_id,
            "sequence": self.sequence,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "party": self.party,
            "model": self.model,
            "argument": self.argument,
            "phase": self.phase.value,
            "strategy_used": self.strategy_used,
            "fallback": self.fallback,
            "reviewers": list(self.reviewers),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Turn:
        return cls(
            id=data["id"],
            debate_id=data["debate_id"],
            sequence=int(data["sequence"]),
            agent_id=data["agent_id"],
            agent_name=data.get("agent_name", ""),
            party=data.get("party", ""),
            model=data.get("model", ""),
            argument=data.get("argument", ""),
            phase=Phase(data["phase"]),
            strategy_used=data.get("strategy_used", "balanced"),
            fallback=bool(data.get("fallback", False)),
            reviewers=list(data.get("reviewers") or []),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class Debate:
    topic: str
    participants: list[str]
    options: DebateOptions = field(default_factory=DebateOptions)
    turns: list[Turn] = field(default_factory=list)
    id: str = field(default_factory=lambda: _new_id("debate"))
    started_at: datetime = field(default_factory=_now)
    resolved: bool = False
    winner_id: str | None = None
    net_scores: dict[str, int] = field(default_factory=dict)
    completed_at: datetime | None = None

    @property
    def phase(self) -> Phase:
        if self.resolved:
            return Phase.RESOLVED
        return compute_phase(len(self.turns), len(self.participants))

    @property
    def controversy_level(self) -> int:
        return self.options.controversy_level

    def turn(self, turn_id: str) -> Turn | None:
        return next((t for t in self.turns if t.id == turn_id), None)

    def arguments_excluding(self, agent_id: str) -> list[str]:
        return [t.argument for t in self.turns if t.agent_id != agent_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "participants": list(self.participants),
            "options": self.options.model_dump(),
            "turns": [t.to_dict() for t in self.turns],
            "phase": self.phase.value,
            "started_at": self.started_at.isoformat(),
            "resolved": self.resolved,
            "winner_id": self.winner_id,
            "net_scores": dict(self.net_scores),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Debate:
        completed = data.get("completed_at")
        return cls(
            id=data["id"],
            topic=data["topic"],
            participants=list(data["participants"]),
            options=DebateOptions(**(data.get("options") or {})),
            turns=[Turn.from_dict(t) for t in data.get("turns") or []],
            started_at=datetime.fromisoformat(data["started_at"]),
            resolved=bool(data.get("resolved", False)),
            winner_id=data.get("winner_id"),
            net_scores={k: int(v) for k, v in (data.get("net_scores") or {}).items()},
            completed_at=datetime.fromisoformat(completed) if completed else None,
        )


@dataclass
class Finding:
    agent_id: str
    agent_name: str
    finding: str
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "finding": self.finding,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Finding:
        return cls(
            agent_id=data["agent_id"],
            agent_name=data.get("agent_name", data["agent_id"]),
            finding=data["finding"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class Committee:
    topic: str
    members: tuple[str, ...]
    id: str = field(default_factory=lambda: _new_id("committee"))
    created_at: datetime = field(default_factory=_now)
    findings: list[Finding] = field(default_factory=list)
    consensus: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "members": list(self.members),
            "created_at": self.created_at.isoformat(),
            "findings": [f.to_dict() for f in self.findings],
            "consensus": self.consensus,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Committee:
        return cls(
            id=data["id"],
            topic=data["topic"],
            members=tuple(data["members"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            findings=[Finding.from_dict(f) for f in data.get("findings") or []],
            consensus=data.get("consensus"),
        )


@dataclass
class Coalition:
    name: str
    purpose: str
    members: tuple[str, ...]
    id: str = field(default_factory=lambda: _new_id("coalition"))
    created_at: datetime = field(default_factory=_now)
    strength: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "purpose": self.purpose,
            "members": list(self.members),
            "created_at": self.created_at.isoformat(),
            "strength": self.strength,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Coalition:
        return cls(
            id=data["id"],
            name=data["name"],
            purpose=data.get("purpose", ""),
            members=tuple(data["members"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            strength=float(data.get("strength", 0.0)),
        )
