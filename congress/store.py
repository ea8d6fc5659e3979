"""
In-process registry of agents, debates, committees and coalitions.

The store owns one `asyncio.Lock` per entity. Callers take the debate lock
first and at most one agent lock at a time, never two agent locks at once.
Persistence through the store is best-effort: failures are logged and
reported as `False`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from typing import Any

from .agent import AgentRecord
from .config import AgentConfig
from .db import MemoryPersister, Persister
from .debate import Coalition, Committee, Debate
from .errors import NotFoundError
from .personality import PersonalityVector
from .personas import get_flavor
from .votes import Vote, VoteLedger

logger = logging.getLogger(__name__)


def party_agent_id(affiliation: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", affiliation.strip().lower()).strip("_")
    return f"party_{slug or 'unaffiliated'}"


class CongressStore:
    def __init__(
        self,
        persister: Persister | None = None,
        ledger: VoteLedger | None = None,
    ) -> None:
        self.persister: Persister = persister if persister is not None else MemoryPersister()
        self.ledger = ledger if ledger is not None else VoteLedger()
        self.agents: dict[str, AgentRecord] = {}
        self.debates: dict[str, Debate] = {}
        self.committees: dict[str, Committee] = {}
        self.coalitions: dict[str, Coalition] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def lock(self, kind: str, entity_id: str) -> asyncio.Lock:
        key = (kind, entity_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_agent(self, agent_id: str) -> AgentRecord:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise NotFoundError("agent", agent_id)
        return agent

    def get_debate(self, debate_id: str) -> Debate:
        debate = self.debates.get(debate_id)
        if debate is None:
            raise NotFoundError("debate", debate_id)
        return debate

    def get_committee(self, committee_id: str) -> Committee:
        committee = self.committees.get(committee_id)
        if committee is None:
            raise NotFoundError("committee", committee_id)
        return committee

    def get_coalition(self, coalition_id: str) -> Coalition:
        coalition = self.coalitions.get(coalition_id)
        if coalition is None:
            raise NotFoundError("coalition", coalition_id)
        return coalition

    def real_agents(self) -> list[AgentRecord]:
        return [agent for agent in self.agents.values() if not agent.virtual]

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    async def register_agent(self, config: AgentConfig) -> AgentRecord:
        """Register an agent, resuming its persisted snapshot when one exists.

        With an explicit id, lookup, load and insert happen under that agent's
        lock so concurrent registrations share one record.
        """
        if not config.id:
            return await self._create_agent(config)

        async with self.lock("agent", config.id):
            existing = self.agents.get(config.id)
            if existing is not None:
                return existing
            snapshot = await self._safe_load("agent", config.id)
            if snapshot is not None:
                try:
                    agent = AgentRecord.from_snapshot(snapshot)
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Discarding unreadable snapshot for %s: %s", config.id, exc)
                else:
                    self.agents[agent.id] = agent
                    logger.info("Loaded %s (generation %d)", agent.name, agent.generation)
                    return agent
            return await self._create_agent(config)

    async def _create_agent(self, config: AgentConfig) -> AgentRecord:
        values = get_flavor(config.flavor).personality().values if config.flavor else {}
        values.update(config.personality)
        agent = AgentRecord(
            id=config.id,
            name=config.name,
            model=config.model,
            party=config.party,
            personality=PersonalityVector(values=values),
            generation=config.generation,
            flavor=config.flavor,
        )
        self.agents[agent.id] = agent
        logger.info("Registered %s (%s, %s)", agent.name, agent.party, agent.model)
        await self.persist_agent(agent)
        return agent

    async def party_agent(self, affiliation: str) -> AgentRecord:
        """Virtual agent standing for a whole party, created on first use."""
        agent_id = party_agent_id(affiliation)
        agent = self.agents.get(agent_id)
        if agent is not None:
            return agent
        async with self.lock("agent", agent_id):
            agent = self.agents.get(agent_id)
            if agent is not None:
                return agent
            snapshot = await self._safe_load("agent", agent_id)
            if snapshot is not None:
                try:
                    agent = AgentRecord.from_snapshot(snapshot)
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Discarding unreadable snapshot for %s: %s", agent_id, exc)
            if agent is None:
                agent = AgentRecord(
                    id=agent_id, name=f"{affiliation} Party", party=affiliation, virtual=True
                )
            self.agents[agent_id] = agent
            return agent

    def add_debate(self, debate: Debate) -> None:
        self.debates[debate.id] = debate

    def add_committee(self, committee: Committee) -> None:
        self.committees[committee.id] = committee

    def add_coalition(self, coalition: Coalition) -> None:
        self.coalitions[coalition.id] = coalition

    # -------------------------------------------------------------------------
    # Persistence (best-effort)
    # -------------------------------------------------------------------------

    async def _safe_save(self, kind: str, entity_id: str, snapshot: dict[str, Any]) -> bool:
        try:
            await self.persister.save(kind, entity_id, snapshot)
        except Exception as exc:
            logger.error("Failed to persist %s %s: %s", kind, entity_id, exc)
            return False
        return True

    async def _safe_load(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        try:
            return await self.persister.load(kind, entity_id)
        except Exception as exc:
            logger.warning("Failed to load %s %s, starting fresh: %s", kind, entity_id, exc)
            return None

    async def persist_agent(self, agent: AgentRecord) -> bool:
        return await self._safe_save("agent", agent.id, agent.to_snapshot())

    async def persist_debate(self, debate: Debate) -> bool:
        return await self._safe_save("debate", debate.id, debate.to_dict())

    async def persist_committee(self, committee: Committee) -> bool:
        return await self._safe_save("committee", committee.id, committee.to_dict())

    async def persist_coalition(self, coalition: Coalition) -> bool:
        return await self._safe_save("coalition", coalition.id, coalition.to_dict())

    async def persist_vote(self, vote: Vote) -> bool:
        return await self._safe_save("vote", vote.subject_id, vote.to_dict())

    async def forget_vote(self, subject_id: str) -> bool:
        try:
            await self.persister.delete("vote", subject_id)
        except Exception as exc:
            logger.error("Failed to delete vote %s: %s", subject_id, exc)
            return False
        return True

    async def load_all(self) -> int:
        """Load every persisted entity and vote. Unreadable entries are skipped."""
        loaded = await self._load_kind("agent", AgentRecord.from_snapshot, self.agents)
        loaded += await self._load_kind("debate", Debate.from_dict, self.debates)
        loaded += await self._load_kind("committee", Committee.from_dict, self.committees)
        loaded += await self._load_kind("coalition", Coalition.from_dict, self.coalitions)
        loaded += await self.load_votes()
        return loaded

    async def _load_kind(
        self,
        kind: str,
        parse: Callable[[dict[str, Any]], Any],
        registry: dict[str, Any],
    ) -> int:
        count = 0
        for entity_id in await self._safe_list(kind):
            snapshot = await self._safe_load(kind, entity_id)
            if snapshot is None:
                continue
            try:
                entity = parse(snapshot)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping %s %s: %s", kind, entity_id, exc)
                continue
            registry[entity.id] = entity
            count += 1
        return count

    async def load_votes(self) -> int:
        votes: list[Vote] = []
        for subject_id in await self._safe_list("vote"):
            snapshot = await self._safe_load("vote", subject_id)
            if snapshot is None:
                continue
            try:
                votes.append(Vote.from_dict(snapshot))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping vote %s: %s", subject_id, exc)
        self.ledger = VoteLedger(votes)
        return len(votes)

    async def _safe_list(self, kind: str) -> list[str]:
        try:
            return await self.persister.list_ids(kind)
        except Exception as exc:
            logger.warning("Failed to list %s snapshots: %s", kind, exc)
            return []
