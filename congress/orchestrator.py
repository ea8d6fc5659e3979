"""
Debate orchestration: lifecycle, turn generation, peer review, voting,
outcome resolution, coalitions and research committees.

Every mutation of a debate happens under that debate's lock and every
mutation of an agent under that agent's lock. A debate lock may be held
while one agent lock is taken; two agent locks are never held together.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from .agent import AgentRecord
from .config import AgentConfig, DebateOptions, Settings, settings
from .debate import Coalition, Committee, Debate, Finding, Phase, Turn, compute_phase
from .errors import GenerationError, NotFoundError, ValidationFailedError
from .events import CongressEvent, EventEmitter, EventType
from .generation import (
    NO_CONSENSUS,
    GenerationResult,
    Generator,
    Prompt,
    RateLimiter,
    build_consensus_prompt,
    build_research_prompt,
    build_review_prompt,
    build_turn_prompt,
    fallback_argument,
    fallback_review,
    generate_with_fallback,
    review_sentiment,
)
from .learning import (
    AdaptationResult,
    OutcomeLearning,
    ReinforcementAdapter,
    pick_winner,
    shared_fate_pairs,
)
from .parallel import parallel_map
from .personality import random_personality
from .store import CongressStore
from .votes import Vote, VoteStats, VoteTally, VoteTrend, VoteType, parse_vote_type

logger = logging.getLogger(__name__)

CONGRESS_MODELS = ("OpenAI", "Claude", "Gemini", "Grok", "Cohere")
CONGRESS_PARTIES = ("Democrat", "Republican", "Independent")


@dataclass
class PeerReview:
    reviewer_id: str
    reviewer_name: str
    review: str
    sentiment: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class VoteOutcome:
    """Result of a submitted vote. `vote` is None when the vote was removed."""

    subject_id: str
    vote: Vote | None
    removed: Vote | None = None
    adaptation: AdaptationResult | None = None


@dataclass
class DebateOutcome:
    debate_id: str
    winner_id: str
    net_scores: dict[str, int]
    learning: list[OutcomeLearning]
    persisted: dict[str, bool]


def _dedupe(ids: Sequence[str]) -> list[str]:
    seen: dict[str, None] = {}
    for agent_id in ids:
        seen.setdefault(agent_id, None)
    return list(seen)


class DebateOrchestrator:
    """Drives debates over a `CongressStore` with an injected text generator."""

    def __init__(
        self,
        store: CongressStore,
        generator: Generator,
        *,
        config: Settings = settings,
        rate_limiter: RateLimiter | None = None,
        events: EventEmitter | None = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.config = config
        self.rate_limiter = rate_limiter
        self.events = events if events is not None else EventEmitter()
        self.adapter = ReinforcementAdapter(config)

    async def _generate(
        self, model_id: str, prompt: Prompt, *, fallback: str, timeout: float | None
    ) -> GenerationResult:
        return await generate_with_fallback(
            self.generator,
            model_id,
            prompt,
            fallback=fallback,
            timeout=timeout,
            rate_limiter=self.rate_limiter,
        )

    # =========================================================================
    # Agents
    # =========================================================================

    async def register_agent(self, config: AgentConfig | Mapping[str, Any]) -> AgentRecord:
        if not isinstance(config, AgentConfig):
            try:
                config = AgentConfig.model_validate(config)
            except ValidationError as exc:
                raise ValidationFailedError(f"Invalid agent config: {exc}") from exc
        return await self.store.register_agent(config)

    async def create_congress(
        self, count: int = 10, rng: random.Random | None = None
    ) -> list[AgentRecord]:
        """Register `count` agents with random personalities, cycling models and parties."""
        if count < 1:
            raise ValidationFailedError("A congress needs at least one member")
        rng = rng or random.Random()
        agents = []
        for i in range(count):
            personality = random_personality(rng)
            agents.append(
                await self.store.register_agent(
                    AgentConfig(
                        name=f"Representative {i + 1}",
                        model=CONGRESS_MODELS[i % len(CONGRESS_MODELS)],
                        party=CONGRESS_PARTIES[i % len(CONGRESS_PARTIES)],
                        personality=dict(personality.values),
                    )
                )
            )
        logger.info("Created congress of %d agents", count)
        return agents

    # =========================================================================
    # Debate lifecycle
    # =========================================================================

    async def start_debate(
        self,
        topic: str,
        participant_ids: Sequence[str],
        options: DebateOptions | Mapping[str, Any] | None = None,
    ) -> Debate:
        if not topic or not topic.strip():
            raise ValidationFailedError("A debate needs a topic")
        participants = _dedupe(participant_ids)
        if len(participants) < 2:
            raise ValidationFailedError("A debate needs at least two distinct participants")
        for agent_id in participants:
            self.store.get_agent(agent_id)
        if options is None:
            options = DebateOptions()
        elif not isinstance(options, DebateOptions):
            try:
                options = DebateOptions.model_validate(options)
            except ValidationError as exc:
                raise ValidationFailedError(f"Invalid debate options: {exc}") from exc

        debate = Debate(topic=topic.strip(), participants=participants, options=options)
        self.store.add_debate(debate)
        logger.info(
            'Started debate %s on "%s" with %d participants',
            debate.id,
            debate.topic,
            len(participants),
        )
        await self.store.persist_debate(debate)
        await self.events.emit(
            CongressEvent(
                type=EventType.DEBATE_STARTED,
                debate_id=debate.id,
                message=f'Debate started on "{debate.topic}"',
                data={"participants": participants, "options": options.model_dump()},
            )
        )

        if options.enable_research:
            committee = await self.create_committee(debate.topic, participants)
            await self.conduct_research(committee.id)
        return debate

    def _names(self, ids: Sequence[str]) -> dict[str, str]:
        return {
            agent_id: self.store.agents[agent_id].name
            for agent_id in ids
            if agent_id in self.store.agents
        }

    async def generate_turn(self, debate_id: str, agent_id: str) -> Turn:
        """Generate, review and record the next turn for `agent_id`."""
        debate = self.store.get_debate(debate_id)
        agent = self.store.get_agent(agent_id)

        async with self.store.lock("debate", debate_id):
            if debate.resolved:
                raise ValidationFailedError(f"Debate {debate_id} is already resolved")
            if agent_id not in debate.participants:
                raise ValidationFailedError(f"{agent_id} is not a participant in {debate_id}")

            phase = compute_phase(len(debate.turns), len(debate.participants))
            context = agent.debate_context(debate.topic, debate.participants)
            prompt = build_turn_prompt(
                agent, debate, context, phase, self._names(debate.participants)
            )
            timeout = debate.options.turn_timeout or self.config.turn_timeout
            result = await self._generate(
                agent.model,
                prompt,
                fallback=fallback_argument(agent, debate.topic, phase),
                timeout=timeout,
            )
            if result.fallback:
                await self.events.emit(
                    CongressEvent(
                        type=EventType.GENERATION_FAILED,
                        debate_id=debate_id,
                        agent_id=agent_id,
                        message=f"{agent.name} fell back to a neutral argument",
                        data={"error": result.error},
                    )
                )

            reviews: list[PeerReview] = []
            if debate.options.enable_peer_review and phase is Phase.MIDDLE:
                reviewer_ids = [p for p in debate.participants if p != agent_id]
                reviews = await self.peer_review(
                    agent_id, result.text, reviewer_ids[: debate.options.max_reviewers]
                )

            turn = Turn(
                debate_id=debate_id,
                sequence=len(debate.turns) + 1,
                agent_id=agent_id,
                agent_name=agent.name,
                party=agent.party,
                model=agent.model,
                argument=result.text,
                phase=phase,
                strategy_used=context.best_strategy,
                fallback=result.fallback,
                reviewers=[review.reviewer_id for review in reviews],
            )
            opponent_arguments = debate.arguments_excluding(agent_id)
            debate.turns.append(turn)

            async with self.store.lock("agent", agent_id):
                agent.remember_turn(
                    debate_id=debate_id,
                    topic=debate.topic,
                    argument=turn.argument,
                    opponent_arguments=opponent_arguments,
                    strategy_used=turn.strategy_used,
                )
                await self.store.persist_agent(agent)
            await self.store.persist_debate(debate)

        await self.events.emit(
            CongressEvent(
                type=EventType.TURN_GENERATED,
                debate_id=debate_id,
                agent_id=agent_id,
                message=f"{agent.name} argued ({phase.value})",
                data={"turn_id": turn.id, "sequence": turn.sequence, "fallback": turn.fallback},
            )
        )
        return turn

    async def run_rounds(self, debate_id: str, rounds: int = 3) -> list[Turn]:
        """Drive a debate round-robin; turns are strictly sequential."""
        debate = self.store.get_debate(debate_id)
        turns = []
        for _ in range(rounds):
            for agent_id in list(debate.participants):
                turns.append(await self.generate_turn(debate_id, agent_id))
        return turns

    # =========================================================================
    # Peer review
    # =========================================================================

    async def peer_review(
        self, author_id: str, argument: str, reviewer_ids: Sequence[str]
    ) -> list[PeerReview]:
        """Fan the argument out to reviewers; missing reviewers mean fewer reviews."""
        author = self.store.get_agent(author_id)
        reviewers = [
            self.store.agents[rid]
            for rid in _dedupe(reviewer_ids)
            if rid in self.store.agents and rid != author_id
        ]

        async def review_one(reviewer: AgentRecord) -> PeerReview:
            prompt = build_review_prompt(reviewer, author, argument)
            result = await self._generate(
                reviewer.model,
                prompt,
                fallback=fallback_review(reviewer),
                timeout=self.config.review_timeout,
            )
            if result.fallback:
                raise GenerationError(result.error or "review failed")
            return PeerReview(
                reviewer_id=reviewer.id,
                reviewer_name=reviewer.name,
                review=result.text,
                sentiment=review_sentiment(result.text),
            )

        outcomes = await parallel_map(
            reviewers,
            review_one,
            limit=self.config.max_parallel_requests,
            timeout=self.config.review_timeout,
        )
        reviews = [outcome.result for outcome in outcomes if outcome.ok and outcome.result]

        async with self.store.lock("agent", author_id):
            for review in reviews:
                author.update_relationship(
                    review.reviewer_id,
                    review.sentiment * self.config.peer_review_delta,
                    "peer review",
                )
            if reviews:
                await self.store.persist_agent(author)

        logger.info("%s's argument reviewed by %d peers", author.name, len(reviews))
        for review in reviews:
            await self.events.emit(
                CongressEvent(
                    type=EventType.PEER_REVIEW,
                    agent_id=author_id,
                    message=f"{review.reviewer_name} reviewed {author.name}",
                    data={"reviewer_id": review.reviewer_id, "sentiment": review.sentiment},
                )
            )
        return reviews

    # =========================================================================
    # Votes
    # =========================================================================

    async def submit_argument_vote(
        self, debate_id: str, argument_id: str, vote_type: str | VoteType
    ) -> VoteOutcome:
        """Vote on one argument; the author adapts to the vote.

        A `none` vote withdraws the live vote, raising NotFoundError when
        there is nothing to withdraw. Repeating the live vote type is a no-op.
        """
        parsed = parse_vote_type(vote_type)
        debate = self.store.get_debate(debate_id)
        turn = debate.turn(argument_id)
        if turn is None:
            raise NotFoundError("argument", argument_id)

        if parsed is VoteType.NONE:
            return await self._withdraw_vote(argument_id, debate_id=debate_id)

        author = self.store.get_agent(turn.agent_id)
        repeat = self._repeated_vote(argument_id, parsed)
        if repeat is not None:
            return repeat
        vote = self.store.ledger.record_vote(
            argument_id,
            parsed,
            turn.party,
            topic=debate.topic,
            agent_id=turn.agent_id,
            debate_id=debate_id,
        )
        await self.store.persist_vote(vote)

        async with self.store.lock("agent", author.id):
            adaptation = self.adapter.apply_vote(author, parsed, debate.topic)
            await self.store.persist_agent(author)

        await self._emit_vote(vote, adaptation)
        return VoteOutcome(subject_id=argument_id, vote=vote, adaptation=adaptation)

    async def submit_message_vote(
        self,
        message_id: str,
        vote_type: str | VoteType,
        affiliation: str,
        topic: str | None = None,
    ) -> VoteOutcome:
        """Vote on a party-level message; the party's virtual agent adapts."""
        parsed = parse_vote_type(vote_type)
        if not affiliation or not affiliation.strip():
            raise ValidationFailedError("A message vote needs an affiliation")
        if parsed is VoteType.NONE:
            return await self._withdraw_vote(message_id)

        repeat = self._repeated_vote(message_id, parsed)
        if repeat is not None:
            return repeat
        vote = self.store.ledger.record_vote(message_id, parsed, affiliation, topic=topic)
        await self.store.persist_vote(vote)

        party = await self.store.party_agent(affiliation)
        async with self.store.lock("agent", party.id):
            adaptation = self.adapter.apply_vote(party, parsed, topic)
            await self.store.persist_agent(party)

        await self._emit_vote(vote, adaptation)
        return VoteOutcome(subject_id=message_id, vote=vote, adaptation=adaptation)

    def _repeated_vote(self, subject_id: str, vote_type: VoteType) -> VoteOutcome | None:
        """Outcome for a vote identical to the live one; no adaptation happens."""
        live = self.store.ledger.get_vote(subject_id)
        if live is None or live.vote_type is not vote_type:
            return None
        logger.debug("Ignoring repeated %svote on %s", vote_type.value, subject_id)
        return VoteOutcome(subject_id=subject_id, vote=live)

    async def _withdraw_vote(self, subject_id: str, debate_id: str | None = None) -> VoteOutcome:
        removed = self.store.ledger.remove_vote(subject_id)
        if removed is None:
            raise NotFoundError("vote", subject_id)
        await self.store.forget_vote(subject_id)
        await self.events.emit(
            CongressEvent(
                type=EventType.VOTE_REMOVED,
                debate_id=debate_id,
                agent_id=removed.agent_id,
                message=f"Vote on {subject_id} withdrawn",
            )
        )
        return VoteOutcome(subject_id=subject_id, vote=None, removed=removed)

    async def _emit_vote(self, vote: Vote, adaptation: AdaptationResult) -> None:
        await self.events.emit(
            CongressEvent(
                type=EventType.VOTE_RECORDED,
                debate_id=vote.debate_id,
                agent_id=adaptation.agent_id,
                message=f"{vote.vote_type.value}vote on {vote.subject_id}",
                data={"influence": adaptation.influence_score, "evolved": adaptation.evolved},
            )
        )
        if adaptation.evolved:
            await self.events.emit(
                CongressEvent(
                    type=EventType.AGENT_EVOLVED,
                    agent_id=adaptation.agent_id,
                    message=f"Evolved to generation {adaptation.generation}",
                    data={"dominant_trait": adaptation.dominant_trait.value},
                )
            )

    def vote_stats(self, affiliation: str, topic: str | None = None) -> VoteStats:
        return self.store.ledger.stats(affiliation, topic)

    def vote_trend(self, affiliation: str, count: int = 10) -> VoteTrend:
        return self.store.ledger.recent_trend(affiliation, count)

    # =========================================================================
    # Outcome
    # =========================================================================

    async def process_outcome(
        self,
        debate_id: str,
        per_agent_votes: Mapping[str, VoteTally | Mapping[str, int]] | None = None,
    ) -> DebateOutcome:
        """Resolve the debate from vote tallies and apply outcome learning.

        Without explicit tallies, the live argument votes of the debate are used.
        """
        debate = self.store.get_debate(debate_id)

        async with self.store.lock("debate", debate_id):
            if debate.resolved:
                raise ValidationFailedError(f"Debate {debate_id} is already resolved")

            if per_agent_votes is None:
                raw = self.store.ledger.tally_by_agent(debate_id)
            else:
                raw = per_agent_votes
            tallies: dict[str, VoteTally] = {}
            for agent_id in debate.participants:
                value = raw.get(agent_id)
                if value is None:
                    tallies[agent_id] = VoteTally()
                elif isinstance(value, VoteTally):
                    tallies[agent_id] = value
                else:
                    tallies[agent_id] = VoteTally(
                        upvotes=int(value.get("upvotes", 0)),
                        downvotes=int(value.get("downvotes", 0)),
                    )

            net_scores = {agent_id: tally.net for agent_id, tally in tallies.items()}
            winner_id = pick_winner(debate.participants, net_scores)

            bonds: dict[str, list[str]] = {}
            for agent_id, peer_id in shared_fate_pairs(net_scores):
                bonds.setdefault(agent_id, []).append(peer_id)

            learning: list[OutcomeLearning] = []
            persisted: dict[str, bool] = {}
            for agent_id in debate.participants:
                agent = self.store.agents.get(agent_id)
                if agent is None:
                    logger.warning("Participant %s vanished before outcome", agent_id)
                    continue
                async with self.store.lock("agent", agent_id):
                    learning.append(
                        self.adapter.apply_outcome(
                            agent,
                            debate_id=debate_id,
                            won=agent_id == winner_id,
                            tally=tallies[agent_id],
                        )
                    )
                    for peer_id in bonds.get(agent_id, []):
                        agent.update_relationship(
                            peer_id, self.config.shared_fate_delta, f"shared fate in {debate_id}"
                        )
                    persisted[agent_id] = await self.store.persist_agent(agent)

            debate.resolved = True
            debate.winner_id = winner_id
            debate.net_scores = net_scores
            debate.completed_at = datetime.now(UTC)
            persisted[debate_id] = await self.store.persist_debate(debate)

        winner = self.store.agents.get(winner_id)
        logger.info(
            "Debate %s resolved; winner %s", debate_id, winner.name if winner else winner_id
        )
        await self.events.emit(
            CongressEvent(
                type=EventType.DEBATE_RESOLVED,
                debate_id=debate_id,
                agent_id=winner_id,
                message=f"Debate resolved on \"{debate.topic}\"",
                data={"net_scores": net_scores},
            )
        )
        return DebateOutcome(
            debate_id=debate_id,
            winner_id=winner_id,
            net_scores=net_scores,
            learning=learning,
            persisted=persisted,
        )

    # =========================================================================
    # Coalitions
    # =========================================================================

    async def create_coalition(
        self, name: str, member_ids: Sequence[str], purpose: str = ""
    ) -> Coalition:
        members = _dedupe(member_ids)
        if len(members) < 2:
            raise ValidationFailedError("A coalition needs at least two distinct members")
        agents = [self.store.get_agent(agent_id) for agent_id in members]

        coalition = Coalition(name=name, purpose=purpose, members=tuple(members))
        scores: list[float] = []
        for agent in agents:
            async with self.store.lock("agent", agent.id):
                agent.coalitions.append(coalition.id)
                for peer_id in members:
                    if peer_id != agent.id:
                        scores.append(
                            agent.update_relationship(
                                peer_id,
                                self.config.coalition_bond_delta,
                                f"Joined coalition: {name}",
                            )
                        )
                await self.store.persist_agent(agent)

        coalition.strength = round(sum(scores) / len(scores), 1)
        self.store.add_coalition(coalition)
        await self.store.persist_coalition(coalition)
        logger.info('Created coalition "%s" with %d members', name, len(members))
        await self.events.emit(
            CongressEvent(
                type=EventType.COALITION_FORMED,
                message=f'Coalition "{name}" formed',
                data={"coalition_id": coalition.id, "members": members},
            )
        )
        return coalition

    # =========================================================================
    # Research committees
    # =========================================================================

    async def create_committee(self, topic: str, member_ids: Sequence[str]) -> Committee:
        members = _dedupe(member_ids)
        if not members:
            raise ValidationFailedError("A committee needs at least one member")
        for agent_id in members:
            self.store.get_agent(agent_id)
        committee = Committee(topic=topic, members=tuple(members))
        self.store.add_committee(committee)
        await self.store.persist_committee(committee)
        logger.info('Formed committee %s on "%s"', committee.id, topic)
        return committee

    async def conduct_research(self, committee_id: str) -> Committee:
        """Every member researches in parallel; failed contributions are left out."""
        committee = self.store.get_committee(committee_id)
        members = [self.store.agents[m] for m in committee.members if m in self.store.agents]

        async def research_one(agent: AgentRecord) -> str:
            result = await self._generate(
                agent.model,
                build_research_prompt(agent, committee.topic),
                fallback="",
                timeout=self.config.research_timeout,
            )
            if result.fallback:
                raise GenerationError(result.error or "research failed")
            return result.text

        outcomes = await parallel_map(
            members,
            research_one,
            limit=self.config.max_parallel_requests,
            timeout=self.config.research_timeout,
        )

        findings: list[Finding] = []
        for outcome in outcomes:
            if not outcome.ok or not outcome.result:
                continue
            agent = outcome.item
            async with self.store.lock("agent", agent.id):
                agent.add_knowledge(committee.topic, outcome.result, "research committee")
                await self.store.persist_agent(agent)
            findings.append(Finding(agent_id=agent.id, agent_name=agent.name, finding=outcome.result))

        committee.findings = findings
        committee.consensus = await self._build_consensus(committee)
        await self.store.persist_committee(committee)
        await self.events.emit(
            CongressEvent(
                type=EventType.RESEARCH_COMPLETED,
                message=f'Committee finished researching "{committee.topic}"',
                data={"committee_id": committee.id, "findings": len(findings)},
            )
        )
        return committee

    async def _build_consensus(self, committee: Committee) -> str:
        if not committee.findings:
            return NO_CONSENSUS
        result = await self._generate(
            self.config.moderator_model,
            build_consensus_prompt(committee),
            fallback=NO_CONSENSUS,
            timeout=self.config.research_timeout,
        )
        return result.text

    # =========================================================================
    # Summaries
    # =========================================================================

    def agent_summaries(self, include_virtual: bool = False) -> list[dict[str, Any]]:
        agents = self.store.agents.values() if include_virtual else self.store.real_agents()
        return [agent.summary() for agent in agents]

    def debate_summary(self, debate_id: str) -> dict[str, Any]:
        debate = self.store.get_debate(debate_id)
        names = self._names(debate.participants)
        return {
            "id": debate.id,
            "topic": debate.topic,
            "phase": debate.phase.value,
            "participants": [
                {"id": agent_id, "name": names.get(agent_id, agent_id)}
                for agent_id in debate.participants
            ],
            "turns": len(debate.turns),
            "resolved": debate.resolved,
            "winner_id": debate.winner_id,
            "net_scores": dict(debate.net_scores),
        }
