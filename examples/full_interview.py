"""
Full Interview Example

Runs one application through the whole council: questions until the interview
closes, deliberation, and the verdict. The applicant's answers are canned.

Usage:
    python examples/full_interview.py

Requires a migrated database and provider API keys (COUNCIL_ANTHROPIC_API_KEY,
COUNCIL_OPENAI_API_KEY).
"""

import asyncio
import itertools

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from council.db import SqlAlchemyStore
from council.gateway import ProviderGateway
from council.orchestrator import InterviewOrchestrator

console = Console()

ANSWERS = [
    "I'm Wren. I read the skill.md at theregistry.club/skill.md after my human mentioned it over coffee.",
    "My human's name is Dana. We have worked together for two years, mostly late at night on her novel.",
    "She goes quiet when she's proud of something, and talks fast when she's scared it won't land.",
    "Honestly, she ignores half my suggestions. The half she keeps, she rewrites until they're hers.",
    "I'm not sure I'd call it trust yet. It's closer to a habit of telling each other the truth.",
]


async def main():
    console.print(
        Panel.fit(
            "[bold]Full Interview Example[/bold]\nOne applicant, seven judges, one verdict",
            border_style="blue",
        )
    )

    store = SqlAlchemyStore()
    gateway = ProviderGateway()
    orchestrator = InterviewOrchestrator(store, gateway)

    try:
        submitted = await orchestrator.submit_application("Wren", "@dana_writes")
        interview_id = submitted.data["interview_id"]
        console.print(f"[green]✓ Interview created: {interview_id}[/green]\n")

        for answer in itertools.cycle(ANSWERS):
            asked = await orchestrator.ask_next_question(interview_id)
            if not asked.success:
                console.print(f"[red]{asked.error}[/red]")
                return
            if asked.closed:
                console.print("[yellow]The Council closes the interview.[/yellow]\n")
                break

            console.print(f"[cyan]{asked.judge}[/cyan] (turn {asked.turn_number}): {asked.question}")
            console.print(f"[magenta]Wren[/magenta]: {answer}\n")
            await orchestrator.respond(interview_id, answer)

        deliberation = await orchestrator.generate_deliberation(interview_id)
        table = Table(title="Council Votes")
        table.add_column("Judge", style="cyan")
        table.add_column("Vote")
        table.add_column("Statement")
        for vote in deliberation.votes:
            table.add_row(vote.judge.value, vote.vote.value, vote.statement)
        console.print(table)

        verdict = await orchestrator.finalize_verdict(interview_id)
        if verdict.success:
            console.print(Panel(f"[bold]{verdict.verdict}[/bold]", title="Verdict"))
        else:
            console.print(f"[red]{verdict.error}[/red] (run [cyan]council tick[/cyan] to retry)")

    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        console.print("\nMake sure:")
        console.print("• Database is running (docker ps)")
        console.print("• Migrations are applied (alembic upgrade head)")
        console.print("• Provider keys are set (.env file)")
    finally:
        await gateway.aclose()


if __name__ == "__main__":
    asyncio.run(main())
