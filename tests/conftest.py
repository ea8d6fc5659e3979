"""Shared test fixtures and configuration for pytest."""

import asyncio
from typing import Any

import pytest

from congress.config import AgentConfig, Settings
from congress.db import MemoryPersister
from congress.orchestrator import DebateOrchestrator
from congress.store import CongressStore


class ScriptedGenerator:
    """Fake text generator.

    Models in `by_model` always get their fixed reply; everyone else gets
    queued replies first, then `default`. Models listed in `fail_models`
    raise; models in `hang_models` never answer.
    """

    def __init__(
        self,
        replies: list[str] | None = None,
        *,
        default: str = "A strong and compelling point about the public good.",
        fail_models: tuple[str, ...] = (),
        hang_models: tuple[str, ...] = (),
        by_model: dict[str, str] | None = None,
    ) -> None:
        self.replies = list(replies or [])
        self.by_model = dict(by_model or {})
        self.default = default
        self.fail_models = fail_models
        self.hang_models = hang_models
        self.calls: list[dict[str, Any]] = []

    async def __call__(
        self, model_id: str, system_prompt: str, user_prompt: str, params: dict[str, Any]
    ) -> str:
        self.calls.append(
            {"model": model_id, "system": system_prompt, "user": user_prompt, "params": params}
        )
        if model_id in self.fail_models:
            raise RuntimeError(f"{model_id} is unavailable")
        if model_id in self.hang_models:
            await asyncio.sleep(3600)
        if model_id in self.by_model:
            return self.by_model[model_id]
        if self.replies:
            return self.replies.pop(0)
        return self.default


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        turn_timeout=0.05,
        review_timeout=0.05,
        research_timeout=0.05,
    )


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def store() -> CongressStore:
    return CongressStore(MemoryPersister())


@pytest.fixture
def orchestrator(
    store: CongressStore, generator: ScriptedGenerator, test_settings: Settings
) -> DebateOrchestrator:
    return DebateOrchestrator(store, generator, config=test_settings)


@pytest.fixture
def register(orchestrator: DebateOrchestrator):
    """Register an agent with the given id and trait overrides."""

    async def _register(
        agent_id: str,
        *,
        party: str = "Independent",
        model: str = "Claude",
        **traits: float,
    ):
        return await orchestrator.register_agent(
            AgentConfig(
                id=agent_id,
                name=agent_id.title(),
                party=party,
                model=model,
                personality=traits,
            )
        )

    return _register
