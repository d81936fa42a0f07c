"""Main CLI entry point for the council interview engine."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import settings
from .events import install_default_handlers
from .orchestrator import InterviewOrchestrator, OperationResult

console = Console()

VOTE_STYLES = {"accept": "green", "reject": "red", "abstain": "dim"}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


@asynccontextmanager
async def _orchestrator():
    from .db import SqlAlchemyStore
    from .gateway import ProviderGateway

    store = SqlAlchemyStore()
    install_default_handlers(store, publish=settings.redis_events_enabled)
    gateway = ProviderGateway(settings)
    try:
        yield InterviewOrchestrator(store, gateway, settings=settings), store
    finally:
        await gateway.aclose()


def _run(operation: Callable[[InterviewOrchestrator], Awaitable[OperationResult]]) -> OperationResult:
    async def runner() -> OperationResult:
        async with _orchestrator() as (orchestrator, _):
            return await operation(orchestrator)

    result = asyncio.run(runner())
    if not result.success:
        console.print(f"[red]✗[/red] {result.error}")
    return result


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging (judge selection reasons)")
def main(verbose: bool) -> None:
    """The Council: multi-judge interviews for AI agent applicants."""
    _configure_logging(verbose)


@main.command(name="init-db")
def init_db_command() -> None:
    """Create all tables (development only; use alembic elsewhere)."""
    from .db import init_db

    asyncio.run(init_db())
    console.print("[green]✓[/green] Database schema created")


@main.command()
@click.argument("agent_name")
@click.argument("human_handle")
def apply(agent_name: str, human_handle: str) -> None:
    """Submit an application.

    AGENT_NAME: The applicant agent's chosen name
    HUMAN_HANDLE: The human's X handle (e.g., @someone)
    """
    result = _run(lambda o: o.submit_application(agent_name, human_handle))
    if result.success:
        console.print(
            Panel(
                f"Interview: [cyan]{result.data['interview_id']}[/cyan]\n"
                f"Application: {result.data['application_id']}",
                title=f"Application received: {agent_name}",
            )
        )


@main.command()
@click.argument("interview_id")
def ask(interview_id: str) -> None:
    """Ask the next question of an interview."""
    result = _run(lambda o: o.ask_next_question(interview_id))
    if not result.success:
        return
    if result.closed:
        console.print("[yellow]Interview closed for deliberation[/yellow]")
        return
    console.print(
        Panel(result.question or "", title=f"Turn {result.turn_number}: {result.judge}")
    )


@main.command()
@click.argument("interview_id")
@click.argument("text")
def respond(interview_id: str, text: str) -> None:
    """Answer the pending question as the applicant."""
    result = _run(lambda o: o.respond(interview_id, text))
    if not result.success:
        return
    console.print(f"[green]✓[/green] Answer recorded for turn {result.turn_number}")
    for flag in result.red_flags:
        console.print(f"  [red]⚑ {flag.type}[/red] ({flag.penalty}): {flag.evidence}")


@main.command()
@click.argument("interview_id")
def deliberate(interview_id: str) -> None:
    """Collect the council's votes."""
    result = _run(lambda o: o.generate_deliberation(interview_id))

    if result.votes:
        table = Table(title="Council Votes")
        table.add_column("Judge", style="cyan")
        table.add_column("Vote")
        table.add_column("Statement")
        for v in result.votes:
            style = VOTE_STYLES.get(v.vote.value, "white")
            table.add_row(v.judge.value, f"[{style}]{v.vote.value}[/{style}]", v.statement)
        console.print(table)

    for judge, error in result.failed_judges.items():
        console.print(f"  [red]{judge}[/red]: {error}")
    console.print(f"Votes recorded: {result.data.get('vote_count', 0)}/7")


@main.command()
@click.argument("interview_id")
def decide(interview_id: str) -> None:
    """Finalize the verdict once all seven judges have voted."""
    result = _run(lambda o: o.finalize_verdict(interview_id))
    if not result.success:
        return

    body = f"Verdict: [bold]{result.verdict}[/bold]"
    if "teaser_quote" in result.data:
        body += f"\n\n\"{result.data['teaser_quote']}\"\n  - {result.data['teaser_author']}"
    if result.claim_token:
        body += f"\n\nClaim token: [green]{result.claim_token}[/green]"
    console.print(Panel(body, title="The Council has spoken"))


@main.command()
@click.argument("interview_id")
def pause(interview_id: str) -> None:
    """Pause an in-progress interview."""
    result = _run(lambda o: o.pause(interview_id))
    if result.success:
        console.print(f"[yellow]Paused[/yellow] at turn {result.turn_number}")


@main.command()
@click.argument("interview_id")
def resume(interview_id: str) -> None:
    """Resume a paused interview."""
    result = _run(lambda o: o.resume(interview_id))
    if result.success:
        console.print(f"[green]Resumed[/green] at turn {result.turn_number}")


@main.command()
@click.argument("interview_id")
@click.option("--events", "show_events", is_flag=True, help="Include the audit event log")
def status(interview_id: str, show_events: bool) -> None:
    """Show an interview's state, transcript, flags and votes."""
    from . import db
    from .red_flags import InterviewMetadata

    async def show_status() -> None:
        async with _orchestrator() as (_, store):
            interview = await store.get_interview(interview_id)
            if not interview:
                console.print(f"[red]Interview not found: {interview_id}[/red]")
                return
            agent = await store.get_agent_for_interview(interview_id)
            messages = await store.list_messages(interview_id)
            votes = await store.list_votes(interview_id)
            verdict = await store.get_verdict(interview_id)
            events = []
            if show_events:
                async with db.get_session() as session:
                    events = await db.get_events(session, interview_id)

        metadata = InterviewMetadata.from_dict(interview.metadata_)
        console.print(
            Panel(
                f"[bold]{agent.name if agent else '?'}[/bold] for "
                f"{agent.human_handle if agent else '?'}\n\n"
                f"Status: [cyan]{interview.status}[/cyan]\n"
                f"Turn: {interview.turn_count}\n"
                f"Current judge: {interview.current_judge or '-'}\n"
                f"Total penalty: {metadata.total_penalty}\n"
                f"Verdict: {verdict.verdict if verdict else '-'}",
                title=f"Interview: {interview_id}",
            )
        )

        if messages:
            table = Table(title="Transcript")
            table.add_column("Turn", style="cyan")
            table.add_column("Speaker")
            table.add_column("Content")
            for m in messages:
                speaker = m.judge_name if m.role == "judge" else m.role
                content = m.content[:80] + "..." if len(m.content) > 80 else m.content
                table.add_row(str(m.turn_number), speaker or "-", content)
            console.print(table)

        if metadata.red_flags:
            table = Table(title="Red Flags")
            table.add_column("Turn", style="cyan")
            table.add_column("Type")
            table.add_column("Penalty")
            table.add_column("Evidence")
            for f in metadata.red_flags:
                table.add_row(str(f.turn_number or "-"), f.type.value, str(f.penalty), f.evidence)
            console.print(table)

        if votes:
            table = Table(title="Council Votes")
            table.add_column("Judge", style="cyan")
            table.add_column("Vote")
            table.add_column("Statement")
            for v in votes:
                style = VOTE_STYLES.get(v.vote, "white")
                table.add_row(v.judge_name, f"[{style}]{v.vote}[/{style}]", v.statement)
            console.print(table)

        if events:
            table = Table(title="Events")
            table.add_column("Time", style="dim")
            table.add_column("Event", style="cyan")
            table.add_column("Turn")
            table.add_column("Judge")
            table.add_column("Message")
            for e in events:
                table.add_row(
                    e.created_at.strftime("%H:%M:%S"),
                    e.event,
                    str(e.turn_number or "-"),
                    e.judge_name or "-",
                    (e.message or "")[:60],
                )
            console.print(table)

    asyncio.run(show_status())


@main.command()
@click.option("--trigger-chance", type=float, default=None, help="Override question trigger chance")
def tick(trigger_chance: float | None) -> None:
    """Advance every active interview by one scheduler tick."""
    from .tick import run_tick

    async def run() -> None:
        async with _orchestrator() as (orchestrator, store):
            report = await run_tick(orchestrator, store, trigger_chance=trigger_chance)

        if not report.outcomes:
            console.print("[yellow]No active interviews[/yellow]")
            return

        table = Table(title="Council Tick")
        table.add_column("Interview", style="cyan")
        table.add_column("Action")
        table.add_column("Detail")
        for o in report.outcomes:
            style = "red" if o.action == "failed" else "white"
            table.add_row(o.interview_id, f"[{style}]{o.action}[/{style}]", o.detail)
        console.print(table)

    asyncio.run(run())


@main.command(name="models")
def models_command() -> None:
    """List the provider/model each judge is routed to."""
    from .model_config import get_all_routes, get_env_key

    table = Table(title="Judge Models")
    table.add_column("Judge", style="cyan")
    table.add_column("Model")
    table.add_column("Source")
    table.add_column("Override")
    for judge, info in get_all_routes().items():
        source_style = "green" if info["source"] == "env" else "dim"
        table.add_row(
            judge,
            info["model"],
            f"[{source_style}]{info['source']}[/{source_style}]",
            get_env_key(judge),
        )
    console.print(table)


if __name__ == "__main__":
    main()
