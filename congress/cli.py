"""Main CLI entry point for the agent congress."""

import asyncio
import logging
import random
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from .clients import ChatCompletionsClient
from .config import DebateOptions, settings
from .db import SqlPersister
from .debate import Turn
from .events import EventEmitter, redis_publish_handler
from .orchestrator import DebateOrchestrator
from .rate_limit import RedisRateLimiter
from .store import CongressStore

console = Console()


@asynccontextmanager
async def open_congress() -> AsyncIterator[DebateOrchestrator]:
    """Load the persisted congress and wire an orchestrator around it."""
    persister = SqlPersister(settings.database_url)
    client = ChatCompletionsClient(config=settings)
    events = EventEmitter()
    if settings.redis_events_enabled:
        events.on_event(redis_publish_handler(settings))
    rate_limiter = RedisRateLimiter(settings) if settings.redis_rate_limit_enabled else None
    try:
        store = CongressStore(persister)
        await store.load_all()
        yield DebateOrchestrator(
            store, client, config=settings, rate_limiter=rate_limiter, events=events
        )
    finally:
        await client.aclose()
        await persister.dispose()


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def main(verbose: bool) -> None:
    """Agent congress CLI.

    Register AI representatives, run debates between them and vote on their arguments.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


@main.command(name="init-db")
def init_db() -> None:
    """Create the snapshot table."""

    async def do_init() -> None:
        persister = SqlPersister(settings.database_url)
        try:
            await persister.init_db()
        finally:
            await persister.dispose()
        console.print(f"[green]Snapshot schema ready[/green] ({settings.database_url})")

    asyncio.run(do_init())


@main.command(name="create-congress")
@click.option("--count", default=10, show_default=True, help="Number of representatives")
@click.option("--seed", type=int, default=None, help="Random seed for personalities")
def create_congress(count: int, seed: int | None) -> None:
    """Register a diverse congress of representatives."""

    async def do_create() -> None:
        async with open_congress() as orchestrator:
            agents = await orchestrator.create_congress(count, random.Random(seed))
            _print_agents([agent.summary() for agent in agents], title="New Congress")

    asyncio.run(do_create())


def _print_agents(summaries: list[dict], title: str = "Congress") -> None:
    if not summaries:
        console.print("[yellow]No agents registered[/yellow]")
        return
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Party")
    table.add_column("Model")
    table.add_column("Gen", justify="right")
    table.add_column("Win rate", justify="right")
    table.add_column("Influence", justify="right")
    table.add_column("Personality")
    for s in summaries:
        table.add_row(
            s["id"],
            s["name"],
            s["party"],
            s["model"],
            str(s["generation"]),
            s["stats"]["win_rate"],
            f"{s['stats']['influence']:.0f}",
            s["personality"] or "[dim]balanced[/dim]",
        )
    console.print(table)


@main.command()
@click.option("--all", "include_virtual", is_flag=True, help="Include party agents")
def agents(include_virtual: bool) -> None:
    """List registered representatives."""

    async def list_all() -> None:
        async with open_congress() as orchestrator:
            _print_agents(orchestrator.agent_summaries(include_virtual))

    asyncio.run(list_all())


@main.command()
@click.argument("agent_id")
def agent(agent_id: str) -> None:
    """Show one representative in detail.

    AGENT_ID: The agent identifier (e.g., agent_1a2b3c4d5e6f)
    """

    async def show_agent() -> None:
        async with open_congress() as orchestrator:
            record = orchestrator.store.get_agent(agent_id)
            summary = record.summary()
            perf = record.performance
            console.print(
                Panel(
                    f"[bold]{record.name}[/bold] ({record.party}, {record.model})\n\n"
                    f"Generation: {record.generation}\n"
                    f"Personality: {summary['personality'] or 'balanced'}\n"
                    f"Debates: {perf.debates_won}/{perf.debates_participated} won\n"
                    f"Votes: +{perf.arguments_upvoted} / -{perf.arguments_downvoted}\n"
                    f"Influence: {perf.influence_score:.0f}\n"
                    f"Best strategy: {record.best_strategy()}",
                    title=f"Agent: {record.id}",
                )
            )

            traits = Table(title="Traits")
            traits.add_column("Trait", style="cyan")
            traits.add_column("Family")
            traits.add_column("Value", justify="right")
            for trait, value in record.personality.values.items():
                traits.add_row(trait.value, trait.family.value, f"{value:.1f}")
            console.print(traits)

            if record.relationships.peers():
                rel = Table(title="Relationships")
                rel.add_column("Peer", style="cyan")
                rel.add_column("Score", justify="right")
                rel.add_column("Status")
                for peer_id in record.relationships.peers():
                    view = record.relationship_with(peer_id)
                    peer = orchestrator.store.agents.get(peer_id)
                    rel.add_row(
                        peer.name if peer else peer_id, f"{view.score:.0f}", view.status.value
                    )
                console.print(rel)

    asyncio.run(show_agent())


def _print_turn(turn: Turn) -> None:
    style = "yellow" if turn.fallback else "white"
    reviewed = f" [dim](reviewed by {len(turn.reviewers)})[/dim]" if turn.reviewers else ""
    console.print(
        f"[bold cyan]{turn.agent_name}[/bold cyan] [dim]{turn.party} | {turn.phase.value} | "
        f"{turn.id}[/dim]{reviewed}\n[{style}]{turn.argument}[/{style}]\n"
    )


@main.command()
@click.argument("topic")
@click.option("-p", "--participant", "participants", multiple=True, help="Agent id (repeatable)")
@click.option("--random", "random_count", type=int, default=0, help="Pick N random agents")
@click.option("--rounds", default=3, show_default=True, help="Rounds of turns")
@click.option("--controversy", default=100, show_default=True, help="Controversy level 0-100")
@click.option("--peer-review", is_flag=True, help="Peer review middle-phase arguments")
@click.option("--research", is_flag=True, help="Research the topic before debating")
@click.option("--interactive", is_flag=True, help="Vote on each argument as it is made")
def debate(
    topic: str,
    participants: tuple[str, ...],
    random_count: int,
    rounds: int,
    controversy: int,
    peer_review: bool,
    research: bool,
    interactive: bool,
) -> None:
    """Run a full debate and resolve its outcome.

    TOPIC: What the congress debates
    """

    async def run_debate() -> None:
        async with open_congress() as orchestrator:
            ids = list(participants)
            if random_count:
                pool = [a.id for a in orchestrator.store.real_agents() if a.id not in ids]
                ids += random.sample(pool, min(random_count, len(pool)))

            options = DebateOptions(
                controversy_level=controversy,
                enable_peer_review=peer_review,
                enable_research=research,
            )
            record = await orchestrator.start_debate(topic, ids, options)
            console.print(Panel(f"[bold]{record.topic}[/bold]", title=f"Debate: {record.id}"))

            for _ in range(rounds):
                for agent_id in list(record.participants):
                    turn = await orchestrator.generate_turn(record.id, agent_id)
                    _print_turn(turn)
                    if interactive:
                        choice = Prompt.ask(
                            "Vote", choices=["up", "down", "skip"], default="skip"
                        )
                        if choice != "skip":
                            await orchestrator.submit_argument_vote(record.id, turn.id, choice)

            outcome = await orchestrator.process_outcome(record.id)
            table = Table(title="Outcome")
            table.add_column("Agent", style="cyan")
            table.add_column("Net", justify="right")
            table.add_column("Result")
            for agent_id, net in outcome.net_scores.items():
                name = orchestrator.store.get_agent(agent_id).name
                result = "[green]won[/green]" if agent_id == outcome.winner_id else "lost"
                table.add_row(name, f"{net:+d}", result)
            console.print(table)

    asyncio.run(run_debate())


@main.command()
@click.argument("subject_id")
@click.argument("vote_type", type=click.Choice(["up", "down", "none"]))
@click.option("--debate", "debate_id", default=None, help="Debate id for argument votes")
@click.option("--affiliation", default=None, help="Party for message votes")
@click.option("--topic", default=None, help="Topic for message votes")
def vote(
    subject_id: str,
    vote_type: str,
    debate_id: str | None,
    affiliation: str | None,
    topic: str | None,
) -> None:
    """Vote on an argument (with --debate) or a party message (with --affiliation).

    SUBJECT_ID: Argument or message identifier
    """
    if not debate_id and not affiliation:
        raise click.UsageError("Pass --debate for an argument or --affiliation for a message")

    async def do_vote() -> None:
        async with open_congress() as orchestrator:
            if debate_id:
                outcome = await orchestrator.submit_argument_vote(debate_id, subject_id, vote_type)
            else:
                outcome = await orchestrator.submit_message_vote(
                    subject_id, vote_type, affiliation, topic
                )
            if outcome.vote is None:
                console.print(f"[yellow]Vote on {subject_id} withdrawn[/yellow]")
                return
            adaptation = outcome.adaptation
            console.print(f"[green]Recorded {vote_type}vote on {subject_id}[/green]")
            if adaptation:
                for change in adaptation.changes:
                    console.print(
                        f"  {change.trait.value}: {change.old:.1f} -> {change.new:.1f}"
                    )
                if adaptation.evolved:
                    console.print(f"  [magenta]Evolved to generation {adaptation.generation}[/magenta]")

    asyncio.run(do_vote())


@main.command()
@click.argument("affiliation")
@click.option("--topic", default=None, help="Restrict to one topic")
@click.option("--window", default=10, show_default=True, help="Votes in the trend window")
def stats(affiliation: str, topic: str | None, window: int) -> None:
    """Show vote statistics for a party.

    AFFILIATION: Party name (e.g., Democrat)
    """

    async def show_stats() -> None:
        async with open_congress() as orchestrator:
            s = orchestrator.vote_stats(affiliation, topic)
            trend = orchestrator.vote_trend(affiliation, window)
            console.print(
                Panel(
                    f"Upvotes: [green]{s.upvotes}[/green]\n"
                    f"Downvotes: [red]{s.downvotes}[/red]\n"
                    f"Total: {s.total}\n"
                    f"Approval: {s.approval_rate:.1f}%\n"
                    f"Net: {s.net_score:+d}\n"
                    f"Trend (last {trend.total}): {trend.trend.value}",
                    title=f"Votes: {affiliation}" + (f" on {topic}" if topic else ""),
                )
            )

    asyncio.run(show_stats())


@main.command()
@click.argument("topic")
@click.option("-m", "--member", "members", multiple=True, required=True, help="Agent id")
def research(topic: str, members: tuple[str, ...]) -> None:
    """Form a research committee and synthesize its findings.

    TOPIC: What the committee researches
    """

    async def do_research() -> None:
        async with open_congress() as orchestrator:
            committee = await orchestrator.create_committee(topic, members)
            committee = await orchestrator.conduct_research(committee.id)
            for finding in committee.findings:
                console.print(Panel(finding.finding, title=finding.agent_name))
            console.print(Panel(committee.consensus or "", title="Consensus"))

    asyncio.run(do_research())


@main.command()
@click.argument("name")
@click.option("-m", "--member", "members", multiple=True, required=True, help="Agent id")
@click.option("--purpose", default="", help="What the coalition stands for")
def coalition(name: str, members: tuple[str, ...], purpose: str) -> None:
    """Form a coalition; every member pair grows closer.

    NAME: Coalition name (e.g., "Green Caucus")
    """

    async def do_coalition() -> None:
        async with open_congress() as orchestrator:
            record = await orchestrator.create_coalition(name, members, purpose)
            table = Table(title=f"Coalition: {record.name}")
            table.add_column("Member", style="cyan")
            table.add_column("Allies", justify="right")
            for agent_id in record.members:
                member = orchestrator.store.get_agent(agent_id)
                table.add_row(member.name, str(len(member.alliances)))
            console.print(table)
            console.print(f"Strength: {record.strength:.1f} ({record.id})")

    asyncio.run(do_coalition())


if __name__ == "__main__":
    main()
