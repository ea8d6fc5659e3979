import asyncio

import pytest
import pytest_asyncio

from congress.config import AgentConfig
from congress.db import MemoryPersister, SqlPersister
from congress.errors import NotFoundError, PersistenceError, SchemaNotInitializedError
from congress.orchestrator import DebateOrchestrator
from congress.personality import Trait
from congress.store import CongressStore, party_agent_id


@pytest_asyncio.fixture
async def sql_persister(tmp_path):
    persister = SqlPersister(f"sqlite+aiosqlite:///{tmp_path / 'congress.db'}")
    yield persister
    await persister.dispose()


@pytest.mark.asyncio
async def test_memory_persister_copies_snapshots() -> None:
    persister = MemoryPersister()
    snapshot = {"id": "agent_a", "tags": ["x"]}
    await persister.save("agent", "agent_a", snapshot)
    snapshot["tags"].append("y")

    loaded = await persister.load("agent", "agent_a")
    assert loaded == {"id": "agent_a", "tags": ["x"]}
    assert await persister.list_ids("agent") == ["agent_a"]
    assert await persister.load("debate", "agent_a") is None
    assert await persister.delete("agent", "agent_a")
    assert not await persister.delete("agent", "agent_a")


@pytest.mark.asyncio
async def test_memory_persister_rejects_bad_input() -> None:
    persister = MemoryPersister()
    with pytest.raises(PersistenceError):
        await persister.save("senator", "x", {})
    with pytest.raises(PersistenceError):
        await persister.save("agent", "x", {"when": object()})


@pytest.mark.asyncio
async def test_sql_persister_requires_schema(sql_persister: SqlPersister) -> None:
    with pytest.raises(SchemaNotInitializedError, match="congress init-db"):
        await sql_persister.load("agent", "agent_a")


@pytest.mark.asyncio
async def test_sql_persister_crud(sql_persister: SqlPersister) -> None:
    await sql_persister.init_db()

    await sql_persister.save("agent", "agent_a", {"name": "Alice", "generation": 1})
    await sql_persister.save("agent", "agent_b", {"name": "Bob"})
    await sql_persister.save("debate", "debate_1", {"topic": "Taxes"})
    await sql_persister.save("agent", "agent_a", {"name": "Alice", "generation": 2})

    assert await sql_persister.load("agent", "agent_a") == {"name": "Alice", "generation": 2}
    assert sorted(await sql_persister.list_ids("agent")) == ["agent_a", "agent_b"]
    assert await sql_persister.list_ids("debate") == ["debate_1"]
    assert await sql_persister.load("vote", "m1") is None

    assert await sql_persister.delete("agent", "agent_b")
    assert not await sql_persister.delete("agent", "agent_b")
    assert await sql_persister.list_ids("agent") == ["agent_a"]

    with pytest.raises(PersistenceError):
        await sql_persister.list_ids("senator")


def test_party_agent_id_slugs_affiliation() -> None:
    assert party_agent_id("Democrat") == "party_democrat"
    assert party_agent_id("  Green Party! ") == "party_green_party"
    assert party_agent_id("???") == "party_unaffiliated"


def test_store_lookups_raise_not_found() -> None:
    store = CongressStore()
    with pytest.raises(NotFoundError) as exc_info:
        store.get_agent("agent_ghost")
    assert exc_info.value.kind == "agent"
    with pytest.raises(NotFoundError):
        store.get_debate("debate_ghost")


@pytest.mark.asyncio
async def test_register_applies_flavor_then_overrides() -> None:
    store = CongressStore()
    agent = await store.register_agent(
        AgentConfig(id="agent_a", flavor="aggressive", personality={Trait.AGGRESSION: 60})
    )
    assert agent.personality[Trait.AGGRESSION] == 60
    assert agent.personality[Trait.CONFRONTATIONAL] == 90
    assert agent.flavor == "aggressive"
    assert await store.register_agent(AgentConfig(id="agent_a")) is agent


@pytest.mark.asyncio
async def test_unreadable_snapshot_is_discarded() -> None:
    persister = MemoryPersister()
    await persister.save("agent", "agent_a", {"garbage": True})
    store = CongressStore(persister)

    agent = await store.register_agent(AgentConfig(id="agent_a", name="Alice"))

    assert agent.name == "Alice"
    assert agent.generation == 1


@pytest.mark.asyncio
async def test_load_all_restores_state(orchestrator, register) -> None:
    await register("agent_a", party="Democrat")
    await register("agent_b", party="Republican")
    debate = await orchestrator.start_debate("Taxes", ["agent_a", "agent_b"])
    turn = await orchestrator.generate_turn(debate.id, "agent_a")
    await orchestrator.submit_argument_vote(debate.id, turn.id, "up")
    coalition = await orchestrator.create_coalition("Budget Hawks", ["agent_a", "agent_b"])
    committee = await orchestrator.create_committee("Taxes", ["agent_a"])
    await orchestrator.conduct_research(committee.id)

    fresh = CongressStore(orchestrator.store.persister)
    loaded = await fresh.load_all()

    assert loaded == 6
    assert fresh.get_agent("agent_a").performance.influence_score == 5
    assert len(fresh.get_debate(debate.id).turns) == 1
    assert fresh.ledger.stats("Democrat", "Taxes").upvotes == 1
    assert fresh.ledger.tally_by_agent(debate.id)["agent_a"].upvotes == 1

    restored = fresh.get_coalition(fresh.get_agent("agent_a").coalitions[0])
    assert restored.id == coalition.id
    assert restored.members == ("agent_a", "agent_b")
    assert restored.strength == coalition.strength

    research = fresh.get_committee(committee.id)
    assert research.members == ("agent_a",)
    assert [f.agent_id for f in research.findings] == ["agent_a"]
    assert research.consensus == orchestrator.store.get_committee(committee.id).consensus


class _SlowLoadPersister(MemoryPersister):
    async def load(self, kind, entity_id):
        snapshot = await super().load(kind, entity_id)
        await asyncio.sleep(0.01)
        return snapshot


@pytest.mark.asyncio
async def test_concurrent_first_party_votes_share_one_agent(generator, test_settings) -> None:
    orchestrator = DebateOrchestrator(
        CongressStore(_SlowLoadPersister()), generator, config=test_settings
    )

    await asyncio.gather(
        orchestrator.submit_message_vote("m1", "up", "Green"),
        orchestrator.submit_message_vote("m2", "up", "Green"),
    )

    party = orchestrator.store.get_agent("party_green")
    assert len(orchestrator.store.ledger) == 2
    assert len(party.vote_history) == 2
    assert party.performance.influence_score == 10


@pytest.mark.asyncio
async def test_concurrent_registration_returns_one_record() -> None:
    store = CongressStore(_SlowLoadPersister())

    first, second = await asyncio.gather(
        store.register_agent(AgentConfig(id="agent_a", name="Alice")),
        store.register_agent(AgentConfig(id="agent_a", name="Alice")),
    )

    assert first is second
    assert store.agents["agent_a"] is first
