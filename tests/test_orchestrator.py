import random

import pytest

from congress.config import Settings
from congress.db import MemoryPersister
from congress.debate import Phase, compute_phase
from congress.errors import NotFoundError, ValidationFailedError
from congress.events import CongressEvent, EventType
from congress.generation import NO_CONSENSUS
from congress.orchestrator import CONGRESS_MODELS, CONGRESS_PARTIES, DebateOrchestrator
from congress.personality import Trait
from congress.store import CongressStore


@pytest.mark.parametrize(
    ("turns", "participants", "phase"),
    [
        (0, 3, Phase.OPENING),
        (1, 3, Phase.MIDDLE),
        (3, 3, Phase.MIDDLE),
        (5, 3, Phase.MIDDLE),
        (6, 3, Phase.CLOSING),
        (9, 3, Phase.CLOSING),
        (0, 2, Phase.OPENING),
        (4, 2, Phase.CLOSING),
    ],
)
def test_phase_is_a_pure_function(turns: int, participants: int, phase: Phase) -> None:
    assert compute_phase(turns, participants) is phase
    assert compute_phase(turns, participants) is phase


@pytest.mark.asyncio
async def test_start_debate_validates_before_mutating(orchestrator, register) -> None:
    await register("agent_a")
    await register("agent_b")

    with pytest.raises(ValidationFailedError):
        await orchestrator.start_debate("Taxes", ["agent_a", "agent_a"])
    with pytest.raises(NotFoundError):
        await orchestrator.start_debate("Taxes", ["agent_a", "agent_ghost"])
    with pytest.raises(ValidationFailedError):
        await orchestrator.start_debate("Taxes", ["agent_a", "agent_b"], {"volume": 11})
    with pytest.raises(ValidationFailedError):
        await orchestrator.start_debate("Taxes", ["agent_a", "agent_b"], {"controversy_level": 101})
    assert orchestrator.store.debates == {}

    debate = await orchestrator.start_debate(
        "Taxes", ["agent_b", "agent_a", "agent_b"], {"controversy_level": 40}
    )
    assert debate.participants == ["agent_b", "agent_a"]
    assert debate.controversy_level == 40
    assert debate.phase is Phase.OPENING


@pytest.mark.asyncio
async def test_three_agent_debate_walks_through_phases(orchestrator, register) -> None:
    for agent_id in ("agent_a", "agent_b", "agent_c"):
        await register(agent_id)
    debate = await orchestrator.start_debate("Healthcare", ["agent_a", "agent_b", "agent_c"])

    turns = await orchestrator.run_rounds(debate.id, rounds=3)

    assert [t.phase for t in turns] == (
        [Phase.OPENING] + [Phase.MIDDLE] * 5 + [Phase.CLOSING] * 3
    )
    assert [t.sequence for t in turns] == list(range(1, 10))
    assert debate.phase is Phase.CLOSING

    agent_a = orchestrator.store.get_agent("agent_a")
    assert len(agent_a.debate_history) == 3
    last = agent_a.debate_history[-1]
    assert last.debate_id == debate.id
    assert len(last.opponent_arguments) == 4
    assert last.strategy_used == "balanced"


@pytest.mark.asyncio
async def test_generation_timeout_still_produces_a_turn(orchestrator, register, generator) -> None:
    generator.hang_models = ("Slow",)
    await register("agent_a")
    await register("agent_slow", model="Slow")
    debate = await orchestrator.start_debate("Energy", ["agent_a", "agent_slow"])

    first = await orchestrator.generate_turn(debate.id, "agent_a")
    second = await orchestrator.generate_turn(debate.id, "agent_slow")

    assert not first.fallback
    assert second.fallback
    assert "Energy" in second.argument
    assert second.phase is Phase.MIDDLE
    assert len(debate.turns) == 2
    assert debate.phase is Phase.MIDDLE


@pytest.mark.asyncio
async def test_turn_rejected_for_outsiders_and_resolved_debates(orchestrator, register) -> None:
    for agent_id in ("agent_a", "agent_b", "agent_c"):
        await register(agent_id)
    debate = await orchestrator.start_debate("Trade", ["agent_a", "agent_b"])

    with pytest.raises(ValidationFailedError):
        await orchestrator.generate_turn(debate.id, "agent_c")
    with pytest.raises(NotFoundError):
        await orchestrator.generate_turn("debate_missing", "agent_a")

    await orchestrator.process_outcome(debate.id)
    with pytest.raises(ValidationFailedError):
        await orchestrator.generate_turn(debate.id, "agent_a")
    with pytest.raises(ValidationFailedError):
        await orchestrator.process_outcome(debate.id)
    assert debate.phase is Phase.RESOLVED


@pytest.mark.asyncio
async def test_peer_review_in_middle_phase(orchestrator, register, generator) -> None:
    await register("agent_a", model="Gemini")
    await register("agent_b")
    await register("agent_c", model="Grok")
    debate = await orchestrator.start_debate(
        "Education", ["agent_a", "agent_b", "agent_c"], {"enable_peer_review": True}
    )

    opening = await orchestrator.generate_turn(debate.id, "agent_a")
    assert opening.reviewers == []

    generator.by_model = {"Gemini": "A weak and flawed point.", "Grok": "Clear and strong."}
    generator.replies = ["My middle argument."]
    middle = await orchestrator.generate_turn(debate.id, "agent_b")

    assert middle.argument == "My middle argument."
    assert middle.reviewers == ["agent_a", "agent_c"]
    author = orchestrator.store.get_agent("agent_b")
    assert author.relationships.score_of("agent_a") == -5
    assert author.relationships.score_of("agent_c") == 5


@pytest.mark.asyncio
async def test_failed_reviewer_means_fewer_reviews(orchestrator, register, generator) -> None:
    generator.fail_models = ("Broken",)
    await register("agent_a")
    await register("agent_b")
    await register("agent_x", model="Broken")
    debate = await orchestrator.start_debate(
        "Transit",
        ["agent_a", "agent_b", "agent_x"],
        {"enable_peer_review": True, "max_reviewers": 2},
    )
    await orchestrator.generate_turn(debate.id, "agent_a")
    turn = await orchestrator.generate_turn(debate.id, "agent_a")

    assert turn.reviewers == ["agent_b"]
    assert not turn.fallback


@pytest.mark.asyncio
async def test_argument_vote_adapts_author(orchestrator, register) -> None:
    await register("agent_a", party="Democrat", aggression=75)
    await register("agent_b", party="Republican")
    debate = await orchestrator.start_debate("Guns", ["agent_a", "agent_b"])
    turn = await orchestrator.generate_turn(debate.id, "agent_a")

    outcome = await orchestrator.submit_argument_vote(debate.id, turn.id, "up")

    author = orchestrator.store.get_agent("agent_a")
    assert author.personality[Trait.AGGRESSION] == 77
    assert author.performance.influence_score == 5
    assert outcome.vote is not None
    assert outcome.vote.agent_id == "agent_a"
    assert orchestrator.vote_stats("Democrat", "Guns").upvotes == 1


@pytest.mark.asyncio
async def test_repeated_vote_does_not_adapt_twice(orchestrator, register) -> None:
    await register("agent_a", party="Democrat", aggression=75)
    await register("agent_b")
    debate = await orchestrator.start_debate("Guns", ["agent_a", "agent_b"])
    turn = await orchestrator.generate_turn(debate.id, "agent_a")

    await orchestrator.submit_argument_vote(debate.id, turn.id, "up")
    repeat = await orchestrator.submit_argument_vote(debate.id, turn.id, "up")

    author = orchestrator.store.get_agent("agent_a")
    assert repeat.adaptation is None
    assert repeat.vote is not None
    assert author.performance.influence_score == 5
    assert author.personality[Trait.AGGRESSION] == 77
    assert len(author.vote_history) == 1
    assert len(orchestrator.store.ledger) == 1

    switched = await orchestrator.submit_argument_vote(debate.id, turn.id, "down")
    assert switched.adaptation is not None
    assert author.performance.influence_score == 0
    assert orchestrator.vote_stats("Democrat").downvotes == 1

    await orchestrator.submit_message_vote("m1", "up", "Green")
    again = await orchestrator.submit_message_vote("m1", "up", "Green")
    assert again.adaptation is None
    assert orchestrator.store.get_agent("party_green").performance.influence_score == 5


@pytest.mark.asyncio
async def test_withdrawing_twice_reports_not_found(orchestrator, register) -> None:
    await register("agent_a")
    await register("agent_b")
    debate = await orchestrator.start_debate("Guns", ["agent_a", "agent_b"])
    turn = await orchestrator.generate_turn(debate.id, "agent_a")
    await orchestrator.submit_argument_vote(debate.id, turn.id, "down")

    first = await orchestrator.submit_argument_vote(debate.id, turn.id, "none")
    assert first.removed is not None
    with pytest.raises(NotFoundError):
        await orchestrator.submit_argument_vote(debate.id, turn.id, "none")
    assert turn.id not in orchestrator.store.ledger


@pytest.mark.asyncio
async def test_vote_on_unknown_argument_changes_nothing(orchestrator, register) -> None:
    await register("agent_a")
    await register("agent_b")
    debate = await orchestrator.start_debate("Guns", ["agent_a", "agent_b"])

    with pytest.raises(NotFoundError):
        await orchestrator.submit_argument_vote(debate.id, "arg_missing", "up")
    with pytest.raises(ValidationFailedError):
        await orchestrator.submit_argument_vote(debate.id, "arg_missing", "sideways")
    assert len(orchestrator.store.ledger) == 0


@pytest.mark.asyncio
async def test_message_vote_creates_virtual_party_agent(orchestrator) -> None:
    outcome = await orchestrator.submit_message_vote("m1", "up", "Democrat", "Healthcare")
    await orchestrator.submit_message_vote("m2", "down", "Democrat", "Healthcare")

    party = orchestrator.store.get_agent("party_democrat")
    assert party.virtual
    assert outcome.adaptation is not None
    assert party.performance.arguments_upvoted == 1
    assert party.performance.arguments_downvoted == 1
    assert len(party.vote_history) == 2
    assert orchestrator.agent_summaries() == []
    assert len(orchestrator.agent_summaries(include_virtual=True)) == 1

    stats = orchestrator.vote_stats("Democrat")
    assert (stats.upvotes, stats.downvotes, stats.approval_rate) == (1, 1, 50.0)


@pytest.mark.asyncio
async def test_outcome_from_ledger_votes(orchestrator, register) -> None:
    await register("agent_a")
    await register("agent_b")
    debate = await orchestrator.start_debate("Climate", ["agent_a", "agent_b"])
    turn_a = await orchestrator.generate_turn(debate.id, "agent_a")
    await orchestrator.generate_turn(debate.id, "agent_b")
    await orchestrator.submit_argument_vote(debate.id, turn_a.id, "up")

    outcome = await orchestrator.process_outcome(debate.id)

    assert outcome.winner_id == "agent_a"
    assert outcome.net_scores == {"agent_a": 1, "agent_b": 0}
    winner = orchestrator.store.get_agent("agent_a")
    loser = orchestrator.store.get_agent("agent_b")
    assert winner.performance.debates_won == 1
    assert winner.performance.influence_score == 15
    assert winner.last_debate_entry(debate.id).outcome == "won"
    assert loser.last_debate_entry(debate.id).outcome == "lost"
    assert loser.performance.debates_participated == 1
    assert winner.relationships.score_of("agent_b") == 0
    assert debate.resolved
    assert debate.winner_id == "agent_a"
    assert debate.completed_at is not None


@pytest.mark.asyncio
async def test_outcome_with_explicit_tallies(orchestrator, register) -> None:
    for agent_id in ("agent_a", "agent_b", "agent_c"):
        await register(agent_id)
    debate = await orchestrator.start_debate("Budget", ["agent_a", "agent_b", "agent_c"])

    outcome = await orchestrator.process_outcome(
        debate.id,
        {
            "agent_a": {"upvotes": 0, "downvotes": 3},
            "agent_b": {"upvotes": 0, "downvotes": 1},
            "agent_c": {"upvotes": 2, "downvotes": 0},
        },
    )

    assert outcome.winner_id == "agent_c"
    a = orchestrator.store.get_agent("agent_a")
    b = orchestrator.store.get_agent("agent_b")
    c = orchestrator.store.get_agent("agent_c")
    assert a.relationships.score_of("agent_b") == 2
    assert b.relationships.score_of("agent_a") == 2
    assert c.relationships.score_of("agent_a") == 0
    assert a.personality[Trait.PRAGMATISM] == 55
    assert b.personality[Trait.PRAGMATISM] == 55
    assert c.personality[Trait.PRAGMATISM] == 50


@pytest.mark.asyncio
async def test_tied_outcome_goes_to_first_participant(orchestrator, register) -> None:
    await register("agent_a")
    await register("agent_b")
    debate = await orchestrator.start_debate("Roads", ["agent_b", "agent_a"])
    outcome = await orchestrator.process_outcome(debate.id)
    assert outcome.winner_id == "agent_b"


class _FlakyPersister(MemoryPersister):
    def __init__(self, broken_id: str) -> None:
        super().__init__()
        self.broken_id = broken_id

    async def save(self, kind, entity_id, snapshot) -> None:
        if entity_id == self.broken_id:
            raise OSError("disk full")
        await super().save(kind, entity_id, snapshot)


@pytest.mark.asyncio
async def test_persistence_failure_does_not_block_others(generator, test_settings) -> None:
    store = CongressStore(_FlakyPersister("agent_b"))
    orchestrator = DebateOrchestrator(store, generator, config=test_settings)
    for agent_id in ("agent_a", "agent_b", "agent_c"):
        await orchestrator.register_agent({"id": agent_id})
    debate = await orchestrator.start_debate("Water", ["agent_a", "agent_b", "agent_c"])

    outcome = await orchestrator.process_outcome(debate.id)

    assert outcome.persisted == {
        "agent_a": True,
        "agent_b": False,
        "agent_c": True,
        debate.id: True,
    }
    assert store.get_agent("agent_b").performance.debates_participated == 1
    assert await store.persister.load("agent", "agent_c") is not None


@pytest.mark.asyncio
async def test_coalition_bonds_every_pair(orchestrator, register) -> None:
    for agent_id in ("agent_a", "agent_b", "agent_c"):
        await register(agent_id)
    orchestrator.store.get_agent("agent_a").update_relationship("agent_b", 55, "history")

    coalition = await orchestrator.create_coalition(
        "Green Caucus", ["agent_a", "agent_b", "agent_c"], "Climate action"
    )

    a = orchestrator.store.get_agent("agent_a")
    assert a.relationships.score_of("agent_b") == 65
    assert a.alliances == ["agent_b"]
    assert orchestrator.store.get_agent("agent_c").relationships.score_of("agent_a") == 10
    assert all(
        coalition.id in orchestrator.store.get_agent(m).coalitions for m in coalition.members
    )
    assert coalition.strength == pytest.approx(round((65 + 10 * 5) / 6, 1))

    with pytest.raises(ValidationFailedError):
        await orchestrator.create_coalition("Solo", ["agent_a"])


@pytest.mark.asyncio
async def test_research_committee_skips_failed_members(orchestrator, register, generator) -> None:
    generator.fail_models = ("Broken",)
    await register("agent_a")
    await register("agent_x", model="Broken")

    committee = await orchestrator.create_committee("Housing", ["agent_a", "agent_x"])
    committee = await orchestrator.conduct_research(committee.id)

    assert [f.agent_id for f in committee.findings] == ["agent_a"]
    assert committee.consensus == generator.default
    a = orchestrator.store.get_agent("agent_a")
    assert a.expertise == {"Housing": 1}
    assert a.relevant_knowledge("Housing")[0].source == "research committee"
    assert not orchestrator.store.get_agent("agent_x").knowledge_base


@pytest.mark.asyncio
async def test_research_with_no_findings_has_no_consensus(orchestrator, register, generator) -> None:
    generator.hang_models = ("Slow",)
    await register("agent_s", model="Slow")
    committee = await orchestrator.create_committee("Housing", ["agent_s"])
    committee = await orchestrator.conduct_research(committee.id)
    assert committee.findings == []
    assert committee.consensus == NO_CONSENSUS

    with pytest.raises(NotFoundError):
        await orchestrator.conduct_research("committee_missing")


@pytest.mark.asyncio
async def test_research_option_feeds_debate_context(orchestrator, register, generator) -> None:
    await register("agent_a")
    await register("agent_b")
    debate = await orchestrator.start_debate(
        "Housing", ["agent_a", "agent_b"], {"enable_research": True}
    )
    assert len(orchestrator.store.committees) == 1
    await orchestrator.generate_turn(debate.id, "agent_a")
    assert "YOUR RELEVANT KNOWLEDGE" in generator.calls[-1]["system"]


@pytest.mark.asyncio
async def test_create_congress_cycles_models_and_parties(orchestrator) -> None:
    agents = await orchestrator.create_congress(6, random.Random(1))
    assert [a.model for a in agents] == [CONGRESS_MODELS[i % 5] for i in range(6)]
    assert [a.party for a in agents] == [CONGRESS_PARTIES[i % 3] for i in range(6)]
    assert agents[0].name == "Representative 1"
    assert len({a.id for a in agents}) == 6


@pytest.mark.asyncio
async def test_register_agent_resumes_snapshot(generator, test_settings) -> None:
    persister = MemoryPersister()
    first = DebateOrchestrator(CongressStore(persister), generator, config=test_settings)
    agent = await first.register_agent({"id": "agent_a", "name": "Alice", "flavor": "aggressive"})
    agent.adjust_influence(20)
    await first.store.persist_agent(agent)

    second = DebateOrchestrator(CongressStore(persister), generator, config=test_settings)
    resumed = await second.register_agent({"id": "agent_a", "name": "Ignored"})
    assert resumed.name == "Alice"
    assert resumed.performance.influence_score == 20
    assert resumed.personality[Trait.AGGRESSION] == 85

    with pytest.raises(ValidationFailedError):
        await second.register_agent({"id": "agent_z", "personality": {"aggression": 120}})


@pytest.mark.asyncio
async def test_events_follow_the_debate(generator, store) -> None:
    seen: list[EventType] = []
    orchestrator = DebateOrchestrator(
        store, generator, config=Settings(_env_file=None, turn_timeout=1.0)
    )

    def record(event: CongressEvent) -> None:
        seen.append(event.type)

    orchestrator.events.on_event(record)
    await orchestrator.register_agent({"id": "agent_a"})
    await orchestrator.register_agent({"id": "agent_b"})
    debate = await orchestrator.start_debate("Ports", ["agent_a", "agent_b"])
    turn = await orchestrator.generate_turn(debate.id, "agent_a")
    await orchestrator.submit_argument_vote(debate.id, turn.id, "up")
    await orchestrator.process_outcome(debate.id)

    assert seen == [
        EventType.DEBATE_STARTED,
        EventType.TURN_GENERATED,
        EventType.VOTE_RECORDED,
        EventType.DEBATE_RESOLVED,
    ]
