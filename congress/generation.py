"""Text-generation seam: prompts, the generator protocol and fallback handling."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from .agent import AgentRecord, DebateContext
from .debate import Committee, Debate, Phase
from .personas import get_flavor

logger = logging.getLogger(__name__)


class Generator(Protocol):
    """Opaque async text generator: generate(model_id, system, user, params) -> text."""

    async def __call__(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        params: dict[str, Any],
    ) -> str: ...


class RateLimiter(Protocol):
    async def wait(self, model_id: str) -> bool: ...


@dataclass(frozen=True)
class Prompt:
    system: str
    user: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Result from a generation call; `fallback` is set when `text` is substituted."""

    text: str
    fallback: bool = False
    error: str | None = None
    duration_seconds: float = 0.0


async def generate_with_fallback(
    generator: Generator,
    model_id: str,
    prompt: Prompt,
    *,
    fallback: str,
    timeout: float | None,
    rate_limiter: RateLimiter | None = None,
) -> GenerationResult:
    """Call the generator; any failure, timeout or empty reply yields `fallback`."""
    start = time.monotonic()

    def degraded(error: str) -> GenerationResult:
        logger.warning("Generation with %s failed: %s", model_id, error)
        return GenerationResult(
            text=fallback,
            fallback=True,
            error=error,
            duration_seconds=time.monotonic() - start,
        )

    try:
        if rate_limiter is not None and not await rate_limiter.wait(model_id):
            return degraded("Rate limit timeout")
        call = generator(model_id, prompt.system, prompt.user, dict(prompt.params))
        if timeout is None:
            text = await call
        else:
            text = await asyncio.wait_for(call, timeout=timeout)
    except TimeoutError:
        return degraded(f"timed out after {timeout}s")
    except Exception as exc:
        return degraded(str(exc) or type(exc).__name__)

    if not isinstance(text, str) or not text.strip():
        return degraded("Empty response from generator")
    return GenerationResult(text=text.strip(), duration_seconds=time.monotonic() - start)


# =============================================================================
# Fallback texts
# =============================================================================


def fallback_argument(agent: AgentRecord, topic: str, phase: Phase) -> str:
    return f"{agent.name} ({agent.party}) stands by their {phase.value} position on \"{topic}\"."


def fallback_review(reviewer: AgentRecord) -> str:
    return f"{reviewer.name} has no review to offer."


NO_CONSENSUS = "No consensus could be synthesized from the committee findings."


# =============================================================================
# Prompt builders
# =============================================================================

_PHASE_INSTRUCTIONS = {
    Phase.OPENING: "This is your OPENING statement. Set the tone and establish your position clearly.",
    Phase.MIDDLE: "RESPOND to previous arguments. Counter their points and strengthen your position.",
    Phase.CLOSING: (
        "This is your CLOSING argument. Summarize your strongest points and deliver "
        "a compelling conclusion."
    ),
}


def _format_previous_turns(debate: Debate, limit: int = 3) -> str:
    turns = debate.turns[-limit:]
    if not turns:
        return ""
    lines = "\n".join(f"{t.agent_name} ({t.party}): {t.argument}" for t in turns)
    return f"\n\nPREVIOUS ARGUMENTS:\n{lines}"


def _format_knowledge(context: DebateContext) -> str:
    if not context.relevant_knowledge:
        return ""
    return "\n\nYOUR RELEVANT KNOWLEDGE:\n" + "\n".join(
        f"- {item.fact}" for item in context.relevant_knowledge
    )


def _format_relationships(context: DebateContext, names: dict[str, str]) -> str:
    if not context.relationships:
        return ""
    return "\n\nYOUR RELATIONSHIPS:\n" + "\n".join(
        f"{names.get(peer_id, peer_id)}: {status.value}"
        for peer_id, status in context.relationships.items()
    )


def _format_position(context: DebateContext) -> str:
    if context.position is None:
        return ""
    return (
        f"\nYOUR POSITION: {context.position.stance} "
        f"(confidence {context.position.confidence:.0%})"
    )


def build_turn_prompt(
    agent: AgentRecord,
    debate: Debate,
    context: DebateContext,
    phase: Phase,
    names: dict[str, str],
) -> Prompt:
    persona = f"{get_flavor(agent.flavor).prompt_addition}\n" if agent.flavor else ""
    intensity = (
        "passionate, hard-hitting" if debate.controversy_level >= 70 else "measured, thoughtful"
    )
    system = (
        f"You are {agent.name}, a {agent.party} representative in Congress.\n\n"
        f"PERSONALITY: {context.personality.summary or 'balanced'}\n"
        f"DEBATE PHASE: {phase.value.upper()}\n"
        f"STRATEGY: {context.best_strategy}\n"
        f"PERFORMANCE: {context.debates_won}/{context.debates_participated} debates won"
        f"{_format_position(context)}"
        f"{_format_knowledge(context)}"
        f"{_format_relationships(context, names)}\n\n"
        f"{_PHASE_INSTRUCTIONS.get(phase, '')}\n\n"
        f"{persona}"
        f"Deliver a {intensity} argument.\n"
        "Keep response 15-25 words. This is a Congressional debate - make it count!"
    )
    user = (
        f'DEBATE TOPIC: "{debate.topic}"{_format_previous_turns(debate)}\n\n'
        f"Your turn, {agent.name}. Deliver your {phase.value} argument!"
    )
    temperature = 0.85 if phase is Phase.CLOSING else 0.95
    if agent.flavor:
        temperature = round(temperature * get_flavor(agent.flavor).temperature, 2)
    return Prompt(system=system, user=user, params={"temperature": temperature})


def build_review_prompt(reviewer: AgentRecord, author: AgentRecord, argument: str) -> Prompt:
    profile = reviewer.personality_profile()
    relationship = reviewer.relationship_with(author.id)
    system = (
        f"You are {reviewer.name}, reviewing a colleague's argument.\n\n"
        f"YOUR PERSONALITY: {profile.summary or 'balanced'}\n"
        f"RELATIONSHIP WITH {author.name}: {relationship.status.value}\n\n"
        "TASK: Review the argument and provide:\n"
        "1. Strengths (1-2 points)\n"
        "2. Weaknesses or improvements (1-2 points)\n"
        "3. Overall assessment\n\n"
        "Be constructive but honest. Keep under 80 words."
    )
    user = f'{author.name}\'s argument:\n"{argument}"\n\nProvide your peer review.'
    return Prompt(system=system, user=user, params={"temperature": 0.8})


def build_research_prompt(agent: AgentRecord, topic: str) -> Prompt:
    profile = agent.personality_profile()
    expertise = ", ".join(agent.expertise) or "Developing"
    system = (
        f"You are {agent.name}, a congressional representative conducting research.\n\n"
        f"PERSONALITY: {profile.summary or 'balanced'}\n"
        f"PARTY: {agent.party}\n"
        f"EXPERTISE: {expertise}\n\n"
        f'TASK: Research "{topic}" from your perspective. Provide:\n'
        "1. Key facts (2-3)\n"
        "2. Your political perspective on the issue\n"
        "3. Policy implications\n\n"
        "Keep response under 100 words. Be analytical and cite your reasoning."
    )
    user = (
        f'Research topic: "{topic}"\n\n'
        f"Conduct your research and present findings from your {agent.party} "
        f"{profile.summary or 'balanced'} perspective."
    )
    return Prompt(system=system, user=user, params={"temperature": 0.8})


def build_consensus_prompt(committee: Committee) -> Prompt:
    findings = "\n\n".join(f"{f.agent_name}: {f.finding}" for f in committee.findings)
    system = (
        "You are a neutral moderator analyzing research committee findings.\n\n"
        "TASK: Identify areas of consensus and disagreement among the committee members.\n\n"
        "Provide:\n"
        "1. Points of agreement\n"
        "2. Points of disagreement\n"
        "3. Potential compromise positions\n\n"
        "Keep response under 150 words."
    )
    user = (
        f'Committee topic: "{committee.topic}"\n\n'
        f"Research findings:\n{findings}\n\n"
        "Analyze for consensus and disagreement."
    )
    return Prompt(system=system, user=user, params={"temperature": 0.7})


_POSITIVE_MARKERS = frozenset(
    {"strong", "compelling", "persuasive", "clear", "agree", "convincing", "solid"}
)
_NEGATIVE_MARKERS = frozenset(
    {"weak", "flawed", "unclear", "disagree", "misleading", "lacks", "unconvincing"}
)


def review_sentiment(review: str) -> int:
    """+1 when positive markers are at least as common as negative ones, else -1."""
    words = re.findall(r"[a-z]+", review.lower())
    positive = sum(1 for word in words if word in _POSITIVE_MARKERS)
    negative = sum(1 for word in words if word in _NEGATIVE_MARKERS)
    return 1 if positive >= negative else -1
