"""
Agent records: identity, evolving personality, bounded memory and performance.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from .personality import PersonalityVector, Trait, TraitRule, classify
from .relationships import RelationshipLedger, RelationshipStatus, RelationshipView

logger = logging.getLogger(__name__)

DEBATE_HISTORY_LIMIT = 50
VOTE_HISTORY_LIMIT = 100
EVOLUTION_HISTORY_LIMIT = 10
KNOWLEDGE_LIMIT = 200
EXPERTISE_MAX = 100
DEFAULT_STRATEGY = "balanced"


def generate_agent_id() -> str:
    return f"agent_{uuid4().hex[:12]}"


def _now() -> datetime:
    return datetime.now(UTC)


def _parse_time(value: str | None) -> datetime:
    return datetime.fromisoformat(value) if value else _now()


@dataclass
class DebateMemory:
    """One remembered debate turn."""

    debate_id: str
    topic: str
    my_argument: str
    opponent_arguments: list[str]
    strategy_used: str
    outcome: str | None = None
    votes_received: dict[str, int] | None = None
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "debate_id": self.debate_id,
            "topic": self.topic,
            "my_argument": self.my_argument,
            "opponent_arguments": list(self.opponent_arguments),
            "strategy_used": self.strategy_used,
            "outcome": self.outcome,
            "votes_received": self.votes_received,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DebateMemory:
        return cls(
            debate_id=data.get("debate_id", ""),
            topic=data.get("topic", ""),
            my_argument=data.get("my_argument", ""),
            opponent_arguments=list(data.get("opponent_arguments") or []),
            strategy_used=data.get("strategy_used") or DEFAULT_STRATEGY,
            outcome=data.get("outcome"),
            votes_received=data.get("votes_received"),
            timestamp=_parse_time(data.get("timestamp")),
        )


@dataclass
class VoteMemory:
    """A vote received, with the personality as it was before adapting to it."""

    vote_type: str
    topic: str | None
    personality_before: dict[str, float]
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vote_type": self.vote_type,
            "topic": self.topic,
            "personality_before": dict(self.personality_before),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VoteMemory:
        return cls(
            vote_type=data["vote_type"],
            topic=data.get("topic"),
            personality_before=dict(data.get("personality_before") or {}),
            timestamp=_parse_time(data.get("timestamp")),
        )


@dataclass
class EvolutionSnapshot:
    generation: int
    personality: dict[str, float]
    reason: str
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "personality": dict(self.personality),
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvolutionSnapshot:
        return cls(
            generation=int(data["generation"]),
            personality=dict(data.get("personality") or {}),
            reason=data.get("reason", ""),
            timestamp=_parse_time(data.get("timestamp")),
        )


@dataclass
class KnowledgeItem:
    topic: str
    fact: str
    source: str
    confidence: float = 1.0
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "fact": self.fact,
            "source": self.source,
            "confidence": self.confidence,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeItem:
        return cls(
            topic=data.get("topic", ""),
            fact=data.get("fact", ""),
            source=data.get("source", ""),
            confidence=float(data.get("confidence", 1.0)),
            timestamp=_parse_time(data.get("timestamp")),
        )


@dataclass
class Position:
    stance: str
    confidence: float
    last_updated: datetime = field(default_factory=_now)


@dataclass
class StrategyRecord:
    times_used: int = 0
    success_count: int = 0

    @property
    def effectiveness(self) -> float:
        return self.success_count / self.times_used if self.times_used else 0.0

    def record(self, success: bool) -> None:
        self.times_used += 1
        if success:
            self.success_count += 1


@dataclass
class Performance:
    debates_participated: int = 0
    debates_won: int = 0
    arguments_upvoted: int = 0
    arguments_downvoted: int = 0
    influence_score: float = 0.0
    bills_proposed: int = 0
    bills_passed: int = 0

    @property
    def win_rate(self) -> float:
        if not self.debates_participated:
            return 0.0
        return self.debates_won / self.debates_participated * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "debates_participated": self.debates_participated,
            "debates_won": self.debates_won,
            "arguments_upvoted": self.arguments_upvoted,
            "arguments_downvoted": self.arguments_downvoted,
            "influence_score": self.influence_score,
            "bills_proposed": self.bills_proposed,
            "bills_passed": self.bills_passed,
        }


@dataclass(frozen=True)
class PersonalityProfile:
    summary: str
    rules: tuple[TraitRule, ...]
    raw: dict[str, float]

    @property
    def labels(self) -> list[str]:
        return [rule.label for rule in self.rules]


@dataclass
class DebateContext:
    """Everything an agent brings to its next turn."""

    personality: PersonalityProfile
    position: Position | None
    relevant_knowledge: list[KnowledgeItem]
    best_strategy: str
    relationships: dict[str, RelationshipStatus]
    debates_won: int
    debates_participated: int
    alliances: list[str]
    rivalries: list[str]


class AgentRecord:
    """A congressional representative with persistent memory and learning."""

    def __init__(
        self,
        *,
        id: str | None = None,
        name: str | None = None,
        model: str = "Claude",
        party: str = "Independent",
        personality: PersonalityVector | None = None,
        generation: int = 1,
        virtual: bool = False,
        flavor: str | None = None,
    ) -> None:
        self.id = id or generate_agent_id()
        self.name = name or f"Representative {self.id}"
        self.model = model
        self.party = party
        self.personality = personality or PersonalityVector()
        self.generation = generation
        self.virtual = virtual
        self.flavor = flavor

        self.debate_history: deque[DebateMemory] = deque(maxlen=DEBATE_HISTORY_LIMIT)
        self.vote_history: deque[VoteMemory] = deque(maxlen=VOTE_HISTORY_LIMIT)
        self.evolution_history: deque[EvolutionSnapshot] = deque(maxlen=EVOLUTION_HISTORY_LIMIT)
        self.knowledge_base: deque[KnowledgeItem] = deque(maxlen=KNOWLEDGE_LIMIT)
        self.positions: dict[str, Position] = {}
        self.strategies: dict[str, StrategyRecord] = {}
        self.relationships = RelationshipLedger()
        self.coalitions: list[str] = []
        self.performance = Performance()
        self.expertise: dict[str, int] = {}

    def __repr__(self) -> str:
        return f"AgentRecord(id={self.id!r}, name={self.name!r}, party={self.party!r})"

    # -------------------------------------------------------------------------
    # Personality
    # -------------------------------------------------------------------------

    def personality_profile(self) -> PersonalityProfile:
        rules = tuple(classify(self.personality))
        return PersonalityProfile(
            summary=", ".join(rule.label for rule in rules),
            rules=rules,
            raw=self.personality.as_dict(),
        )

    def adapt_personality(self, trait: Trait, delta: float, reason: str) -> tuple[float, float]:
        old_value = self.personality[trait]
        new_value = self.personality.adapt(trait, delta)
        logger.info(
            "%s: %s %.1f -> %.1f (%s)", self.name, trait.value, old_value, new_value, reason
        )
        return old_value, new_value

    def evolve(self, reason: str) -> EvolutionSnapshot:
        """Snapshot the current personality and advance a generation."""
        snapshot = EvolutionSnapshot(
            generation=self.generation,
            personality=self.personality.as_dict(),
            reason=reason,
        )
        self.evolution_history.append(snapshot)
        self.generation += 1
        return snapshot

    def adjust_influence(self, delta: float) -> float:
        self.performance.influence_score = max(0.0, self.performance.influence_score + delta)
        return self.performance.influence_score

    # -------------------------------------------------------------------------
    # Memory
    # -------------------------------------------------------------------------

    def remember_turn(
        self,
        *,
        debate_id: str,
        topic: str,
        argument: str,
        opponent_arguments: list[str],
        strategy_used: str,
    ) -> DebateMemory:
        entry = DebateMemory(
            debate_id=debate_id,
            topic=topic,
            my_argument=argument,
            opponent_arguments=list(opponent_arguments),
            strategy_used=strategy_used,
        )
        self.debate_history.append(entry)
        return entry

    def last_debate_entry(self, debate_id: str | None = None) -> DebateMemory | None:
        for entry in reversed(self.debate_history):
            if debate_id is None or entry.debate_id == debate_id:
                return entry
        return None

    def last_strategy(self) -> str:
        entry = self.last_debate_entry()
        return entry.strategy_used if entry else DEFAULT_STRATEGY

    def record_vote(self, vote_type: str, topic: str | None) -> VoteMemory:
        memory = VoteMemory(
            vote_type=vote_type,
            topic=topic,
            personality_before=self.personality.as_dict(),
        )
        self.vote_history.append(memory)
        return memory

    def update_position(self, topic: str, stance: str, confidence: float) -> Position:
        position = Position(stance=stance, confidence=max(0.0, min(1.0, confidence)))
        self.positions[topic] = position
        return position

    # -------------------------------------------------------------------------
    # Strategy
    # -------------------------------------------------------------------------

    def learn_from_outcome(self, strategy: str, success: bool) -> StrategyRecord:
        record = self.strategies.setdefault(strategy, StrategyRecord())
        record.record(success)
        return record

    def best_strategy(self) -> str:
        if not self.strategies:
            return DEFAULT_STRATEGY
        # max() keeps the first of equal maxima, so ties go to insertion order.
        return max(self.strategies.items(), key=lambda item: item[1].effectiveness)[0]

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------

    @property
    def alliances(self) -> list[str]:
        return self.relationships.alliances

    @property
    def rivalries(self) -> list[str]:
        return self.relationships.rivalries

    def update_relationship(self, peer_id: str, delta: float, reason: str) -> float:
        if peer_id == self.id:
            raise ValueError("An agent cannot hold a relationship with itself")
        return self.relationships.update(peer_id, delta, reason).score

    def relationship_with(self, peer_id: str) -> RelationshipView:
        return self.relationships.view(peer_id)

    # -------------------------------------------------------------------------
    # Knowledge
    # -------------------------------------------------------------------------

    def add_knowledge(self, topic: str, fact: str, source: str, confidence: float = 1.0) -> None:
        self.knowledge_base.append(
            KnowledgeItem(topic=topic, fact=fact, source=source, confidence=confidence)
        )
        self.expertise[topic] = min(EXPERTISE_MAX, self.expertise.get(topic, 0) + 1)

    def relevant_knowledge(self, topic: str, limit: int = 5) -> list[KnowledgeItem]:
        """Knowledge whose topic contains `topic`, most confident first.

        sorted() is stable, so equal confidence keeps insertion order.
        """
        needle = topic.lower()
        matches = [item for item in self.knowledge_base if needle in item.topic.lower()]
        return sorted(matches, key=lambda item: item.confidence, reverse=True)[:limit]

    # -------------------------------------------------------------------------
    # Context and summaries
    # -------------------------------------------------------------------------

    def debate_context(self, topic: str, participants: list[str]) -> DebateContext:
        return DebateContext(
            personality=self.personality_profile(),
            position=self.positions.get(topic),
            relevant_knowledge=self.relevant_knowledge(topic),
            best_strategy=self.best_strategy(),
            relationships={
                peer_id: self.relationships.status_of(peer_id)
                for peer_id in participants
                if peer_id != self.id
            },
            debates_won=self.performance.debates_won,
            debates_participated=self.performance.debates_participated,
            alliances=self.alliances,
            rivalries=self.rivalries,
        )

    def summary(self) -> dict[str, Any]:
        perf = self.performance
        return {
            "id": self.id,
            "name": self.name,
            "model": self.model,
            "party": self.party,
            "generation": self.generation,
            "personality": self.personality_profile().summary,
            "stats": {
                "debates": perf.debates_participated,
                "win_rate": f"{perf.win_rate:.1f}%",
                "influence": perf.influence_score,
                "bills": f"{perf.bills_passed}/{perf.bills_proposed}",
            },
            "social": {
                "allies": len(self.alliances),
                "rivals": len(self.rivalries),
                "coalitions": len(self.coalitions),
            },
            "expertise": len(self.expertise),
        }

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "model": self.model,
            "party": self.party,
            "virtual": self.virtual,
            "flavor": self.flavor,
            "personality": self.personality.as_dict(),
            "generation": self.generation,
            "memory": {
                "debate_history": [entry.to_dict() for entry in self.debate_history],
                "vote_history": [entry.to_dict() for entry in self.vote_history],
                "positions": {
                    topic: {
                        "stance": pos.stance,
                        "confidence": pos.confidence,
                        "last_updated": pos.last_updated.isoformat(),
                    }
                    for topic, pos in self.positions.items()
                },
                "strategies": {
                    name: {"times_used": rec.times_used, "success_count": rec.success_count}
                    for name, rec in self.strategies.items()
                },
            },
            "knowledge_base": [item.to_dict() for item in self.knowledge_base],
            "relationships": self.relationships.to_dict(),
            "coalitions": list(self.coalitions),
            "performance": self.performance.to_dict(),
            "expertise": dict(self.expertise),
            "evolution_history": [snap.to_dict() for snap in self.evolution_history],
            "last_saved": _now().isoformat(),
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> AgentRecord:
        agent = cls(
            id=data["id"],
            name=data.get("name"),
            model=data.get("model", "Claude"),
            party=data.get("party", "Independent"),
            personality=PersonalityVector.from_mapping(data.get("personality")),
            generation=int(data.get("generation", 1)),
            virtual=bool(data.get("virtual", False)),
            flavor=data.get("flavor"),
        )
        memory = data.get("memory") or {}
        agent.debate_history.extend(
            DebateMemory.from_dict(item) for item in memory.get("debate_history") or []
        )
        agent.vote_history.extend(
            VoteMemory.from_dict(item) for item in memory.get("vote_history") or []
        )
        for topic, raw in (memory.get("positions") or {}).items():
            agent.positions[topic] = Position(
                stance=raw.get("stance", ""),
                confidence=float(raw.get("confidence", 0.0)),
                last_updated=_parse_time(raw.get("last_updated")),
            )
        for name, raw in (memory.get("strategies") or {}).items():
            agent.strategies[name] = StrategyRecord(
                times_used=int(raw.get("times_used", 0)),
                success_count=int(raw.get("success_count", 0)),
            )
        agent.knowledge_base.extend(
            KnowledgeItem.from_dict(item) for item in data.get("knowledge_base") or []
        )
        agent.relationships = RelationshipLedger.from_dict(data.get("relationships"))
        agent.coalitions = list(data.get("coalitions") or [])
        perf = data.get("performance") or {}
        agent.performance = Performance(
            debates_participated=int(perf.get("debates_participated", 0)),
            debates_won=int(perf.get("debates_won", 0)),
            arguments_upvoted=int(perf.get("arguments_upvoted", 0)),
            arguments_downvoted=int(perf.get("arguments_downvoted", 0)),
            influence_score=max(0.0, float(perf.get("influence_score", 0.0))),
            bills_proposed=int(perf.get("bills_proposed", 0)),
            bills_passed=int(perf.get("bills_passed", 0)),
        )
        agent.expertise = {
            topic: min(EXPERTISE_MAX, int(level))
            for topic, level in (data.get("expertise") or {}).items()
        }
        agent.evolution_history.extend(
            EvolutionSnapshot.from_dict(item) for item in data.get("evolution_history") or []
        )
        return agent
