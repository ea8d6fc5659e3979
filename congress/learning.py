"""
Reinforcement-style adaptation of agents from votes and debate outcomes.

Planning is pure: `plan_vote_adaptation` maps a vote and the current
personality to bounded trait deltas. `ReinforcementAdapter` commits a plan
to an `AgentRecord`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from .agent import AgentRecord
from .config import Settings, settings
from .errors import ValidationFailedError
from .personality import PersonalityVector, Trait, compensating_trait, dominant_trait
from .votes import VoteTally, VoteType, parse_vote_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteAdaptationPlan:
    vote_type: VoteType
    dominant: Trait
    paired: Trait | None
    deltas: dict[Trait, float]
    influence_delta: float


@dataclass(frozen=True)
class TraitChange:
    trait: Trait
    old: float
    new: float

    @property
    def magnitude(self) -> float:
        return abs(self.new - self.old)


@dataclass(frozen=True)
class AdaptationResult:
    agent_id: str
    vote_type: VoteType
    dominant_trait: Trait
    changes: tuple[TraitChange, ...]
    influence_score: float
    strategy: str
    strategy_effectiveness: float
    evolved: bool
    generation: int

    @property
    def magnitude(self) -> float:
        return sum(change.magnitude for change in self.changes)


@dataclass(frozen=True)
class OutcomeLearning:
    agent_id: str
    won: bool
    strategy: str
    tally: VoteTally
    changes: tuple[TraitChange, ...] = ()


def plan_vote_adaptation(
    personality: PersonalityVector,
    vote_type: VoteType,
    config: Settings = settings,
) -> VoteAdaptationPlan:
    """Map a vote onto trait deltas for the agent's dominant trait.

    Upvotes reinforce the dominant trait. Downvotes push it down and raise
    its compensating trait, with larger magnitudes than the reward.
    """
    dominant = dominant_trait(personality)
    if vote_type is VoteType.UP:
        return VoteAdaptationPlan(
            vote_type=vote_type,
            dominant=dominant,
            paired=None,
            deltas={dominant: config.upvote_trait_delta},
            influence_delta=config.upvote_influence,
        )
    if vote_type is VoteType.DOWN:
        paired = compensating_trait(dominant)
        return VoteAdaptationPlan(
            vote_type=vote_type,
            dominant=dominant,
            paired=paired,
            deltas={
                dominant: -config.downvote_trait_delta,
                paired: config.compensating_trait_delta,
            },
            influence_delta=-config.downvote_influence,
        )
    raise ValidationFailedError(f"Cannot adapt to a {vote_type.value!r} vote")


def shared_fate_pairs(net_scores: Mapping[str, int]) -> list[tuple[str, str]]:
    """Ordered pairs of distinct agents whose net scores share a strict sign."""
    pairs: list[tuple[str, str]] = []
    for agent_id, mine in net_scores.items():
        for other_id, theirs in net_scores.items():
            if agent_id == other_id:
                continue
            if (mine > 0 and theirs > 0) or (mine < 0 and theirs < 0):
                pairs.append((agent_id, other_id))
    return pairs


def pick_winner(participants: list[str], net_scores: Mapping[str, int]) -> str:
    """Highest net score; ties go to the participant registered first."""
    winner = participants[0]
    for agent_id in participants[1:]:
        if net_scores.get(agent_id, 0) > net_scores.get(winner, 0):
            winner = agent_id
    return winner


class ReinforcementAdapter:
    """Commits vote- and outcome-driven learning to agent records."""

    def __init__(self, config: Settings = settings) -> None:
        self._config = config

    def apply_vote(
        self,
        agent: AgentRecord,
        vote_type: str | VoteType,
        topic: str | None = None,
    ) -> AdaptationResult:
        parsed = parse_vote_type(vote_type)
        plan = plan_vote_adaptation(agent.personality, parsed, self._config)

        agent.record_vote(parsed.value, topic)

        changes: list[TraitChange] = []
        reason = f"{parsed.value}vote on {topic}" if topic else f"{parsed.value}vote"
        for trait, delta in plan.deltas.items():
            old, new = agent.adapt_personality(trait, delta, reason)
            changes.append(TraitChange(trait=trait, old=old, new=new))

        agent.adjust_influence(plan.influence_delta)
        if parsed is VoteType.UP:
            agent.performance.arguments_upvoted += 1
        else:
            agent.performance.arguments_downvoted += 1

        strategy = agent.last_strategy()
        record = agent.learn_from_outcome(strategy, parsed is VoteType.UP)

        magnitude = sum(change.magnitude for change in changes)
        evolved = magnitude > self._config.significance_threshold
        if evolved:
            agent.evolve(
                f"{plan.dominant.value} shifted by {magnitude:.1f} after {parsed.value}vote"
            )
            logger.info("%s evolved to generation %d", agent.name, agent.generation)

        return AdaptationResult(
            agent_id=agent.id,
            vote_type=parsed,
            dominant_trait=plan.dominant,
            changes=tuple(changes),
            influence_score=agent.performance.influence_score,
            strategy=strategy,
            strategy_effectiveness=record.effectiveness,
            evolved=evolved,
            generation=agent.generation,
        )

    def apply_outcome(
        self,
        agent: AgentRecord,
        *,
        debate_id: str,
        won: bool,
        tally: VoteTally,
    ) -> OutcomeLearning:
        entry = agent.last_debate_entry(debate_id)
        if entry is not None:
            entry.outcome = "won" if won else "lost"
            entry.votes_received = tally.to_dict()
        strategy = entry.strategy_used if entry else agent.last_strategy()

        agent.performance.debates_participated += 1
        agent.learn_from_outcome(strategy, won)

        changes: list[TraitChange] = []
        if won:
            agent.performance.debates_won += 1
            agent.adjust_influence(self._config.win_influence)
            logger.info("%s won; reinforcing %s", agent.name, strategy)
        elif tally.downvotes > tally.upvotes:
            old, new = agent.adapt_personality(
                Trait.PRAGMATISM,
                self._config.loss_pragmatism_delta,
                "Lost debate, becoming more pragmatic",
            )
            changes.append(TraitChange(trait=Trait.PRAGMATISM, old=old, new=new))
            if abs(new - old) > self._config.significance_threshold:
                agent.evolve("pragmatism changed significantly after a lost debate")

        return OutcomeLearning(
            agent_id=agent.id,
            won=won,
            strategy=strategy,
            tally=tally,
            changes=tuple(changes),
        )
