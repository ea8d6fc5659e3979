"""
Vote ledger: at most one live vote per subject (message or argument id).

Re-voting overwrites, voting `none` deletes. Aggregates are always
recomputed from the live votes.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from .errors import ValidationFailedError

logger = logging.getLogger(__name__)


class VoteType(StrEnum):
    UP = "up"
    DOWN = "down"
    NONE = "none"


class Trend(StrEnum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


def parse_vote_type(value: str | VoteType) -> VoteType:
    try:
        return VoteType(str(value).lower())
    except ValueError:
        raise ValidationFailedError(
            f"Invalid vote type {value!r}; expected one of up, down, none"
        ) from None


@dataclass(frozen=True)
class Vote:
    subject_id: str
    vote_type: VoteType
    affiliation: str
    topic: str | None = None
    agent_id: str | None = None
    debate_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    sequence: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "vote_type": self.vote_type.value,
            "affiliation": self.affiliation,
            "topic": self.topic,
            "agent_id": self.agent_id,
            "debate_id": self.debate_id,
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Vote:
        return cls(
            subject_id=data["subject_id"],
            vote_type=VoteType(data["vote_type"]),
            affiliation=data.get("affiliation", ""),
            topic=data.get("topic"),
            agent_id=data.get("agent_id"),
            debate_id=data.get("debate_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            sequence=int(data.get("sequence", 0)),
        )


@dataclass(frozen=True)
class VoteStats:
    upvotes: int
    downvotes: int
    total: int
    approval_rate: float
    net_score: int


@dataclass(frozen=True)
class VoteTrend:
    upvotes: int
    downvotes: int
    total: int
    trend: Trend


@dataclass
class VoteTally:
    upvotes: int = 0
    downvotes: int = 0

    @property
    def net(self) -> int:
        return self.upvotes - self.downvotes

    def to_dict(self) -> dict[str, int]:
        return {"upvotes": self.upvotes, "downvotes": self.downvotes}


class VoteLedger:
    """Thread-safe map of subject id -> live vote."""

    def __init__(self, votes: Iterable[Vote] = ()) -> None:
        self._lock = threading.Lock()
        self._votes: dict[str, Vote] = {}
        self._sequence = itertools.count(1)
        for vote in sorted(votes, key=lambda v: v.sequence):
            self._votes[vote.subject_id] = vote
        if self._votes:
            start = max(v.sequence for v in self._votes.values()) + 1
            self._sequence = itertools.count(start)

    def __len__(self) -> int:
        return len(self._votes)

    def __contains__(self, subject_id: object) -> bool:
        return subject_id in self._votes

    def record_vote(
        self,
        subject_id: str,
        vote_type: str | VoteType,
        affiliation: str,
        *,
        topic: str | None = None,
        agent_id: str | None = None,
        debate_id: str | None = None,
    ) -> Vote | None:
        """Record (or overwrite) the vote for `subject_id`.

        A `none` vote removes any existing vote and returns None.
        """
        parsed = parse_vote_type(vote_type)
        if parsed is VoteType.NONE:
            self.remove_vote(subject_id)
            return None

        with self._lock:
            vote = Vote(
                subject_id=subject_id,
                vote_type=parsed,
                affiliation=affiliation,
                topic=topic,
                agent_id=agent_id,
                debate_id=debate_id,
                sequence=next(self._sequence),
            )
            self._votes[subject_id] = vote
        logger.debug("Recorded %s vote for %s (%s)", parsed.value, subject_id, affiliation)
        return vote

    def remove_vote(self, subject_id: str) -> Vote | None:
        """Delete the vote for `subject_id`; returns None when there was none."""
        with self._lock:
            removed = self._votes.pop(subject_id, None)
        if removed is not None:
            logger.debug("Removed vote for %s", subject_id)
        return removed

    def get_vote(self, subject_id: str) -> Vote | None:
        return self._votes.get(subject_id)

    def all_votes(self) -> list[Vote]:
        with self._lock:
            return list(self._votes.values())

    def votes_by(
        self,
        *,
        topic: str | None = None,
        affiliation: str | None = None,
        vote_type: VoteType | None = None,
        since: datetime | None = None,
    ) -> list[Vote]:
        result: list[Vote] = []
        for vote in self.all_votes():
            if topic is not None and vote.topic != topic:
                continue
            if affiliation is not None and vote.affiliation != affiliation:
                continue
            if vote_type is not None and vote.vote_type != vote_type:
                continue
            if since is not None and vote.timestamp < since:
                continue
            result.append(vote)
        return result

    def stats(self, affiliation: str, topic: str | None = None) -> VoteStats:
        votes = self.votes_by(affiliation=affiliation, topic=topic)
        upvotes = sum(1 for v in votes if v.vote_type is VoteType.UP)
        downvotes = sum(1 for v in votes if v.vote_type is VoteType.DOWN)
        total = len(votes)
        approval_rate = round(upvotes / total * 100, 1) if total else 0.0
        return VoteStats(
            upvotes=upvotes,
            downvotes=downvotes,
            total=total,
            approval_rate=approval_rate,
            net_score=upvotes - downvotes,
        )

    def recent_trend(self, affiliation: str, count: int = 10) -> VoteTrend:
        votes = sorted(
            self.votes_by(affiliation=affiliation),
            key=lambda v: (v.timestamp, v.sequence),
            reverse=True,
        )[: max(count, 0)]
        upvotes = sum(1 for v in votes if v.vote_type is VoteType.UP)
        downvotes = sum(1 for v in votes if v.vote_type is VoteType.DOWN)
        if upvotes > downvotes:
            trend = Trend.IMPROVING
        elif downvotes > upvotes:
            trend = Trend.DECLINING
        else:
            trend = Trend.STABLE
        return VoteTrend(upvotes=upvotes, downvotes=downvotes, total=len(votes), trend=trend)

    def tally_by_agent(self, debate_id: str) -> dict[str, VoteTally]:
        """Per-author up/down counts over the live argument votes of one debate."""
        tallies: dict[str, VoteTally] = {}
        for vote in self.all_votes():
            if vote.debate_id != debate_id or vote.agent_id is None:
                continue
            tally = tallies.setdefault(vote.agent_id, VoteTally())
            if vote.vote_type is VoteType.UP:
                tally.upvotes += 1
            elif vote.vote_type is VoteType.DOWN:
                tally.downvotes += 1
        return tallies

    def clear(self) -> int:
        with self._lock:
            count = len(self._votes)
            self._votes.clear()
        return count
