"""Typer CLI for planning teams, previewing garbling and running a local exercise."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import structlog
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..config import DEFAULT_CONFIG_PATH, ExerciseConfig, load_config
from ..core import garbling
from ..core.errors import CannotFormTeamsError
from ..core.roles import fluency_label, role_display_name
from ..core.teams import describe_plan, plan as plan_teams
from ..utils.log import configure_logging
from ..utils.rng import build_rng
from .exercise import ExerciseService

LOGGER = structlog.get_logger(__name__)

app = typer.Typer(help="Run cross-language negotiation exercises.", invoke_without_command=False)
console = Console()

DEMO_LINES = (
    "We should focus on the regional distribution problem first",
    "Our budget allows roughly 250 thousand for the first launch",
    "Marketing wants a social campaign targeting younger customers",
    "Operations cannot scale before the warehouse contract is signed",
    "Let us agree on the financial projection before writing answers",
)

DEMO_ANSWERS = {
    1: "Mid-sized retailers without a logistics partner.",
    2: "Warehouse capacity and supplier lead times.",
    3: "Break-even by month ten on 250k initial spend.",
    4: "Targeted social campaign plus trade-show presence.",
}


def _settings(config: Optional[Path]) -> ExerciseConfig:
    load_dotenv()
    settings = load_config(config or DEFAULT_CONFIG_PATH)
    configure_logging(settings.log_level)
    return settings


@app.command("plan")
def plan(count: int = typer.Argument(..., help="Number of participants to split into teams")) -> None:
    """Show how COUNT participants would be split into teams of 4 and 5."""

    try:
        sizes = plan_teams(count)
    except CannotFormTeamsError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"{len(sizes)} teams: {describe_plan(sizes)}")


@app.command("garble")
def garble(
    text: str = typer.Argument(..., help="Message to render"),
    sender_native: bool = typer.Option(True, "--sender-native/--sender-non-native", help="Sender fluency"),
    viewer_native: bool = typer.Option(True, "--viewer-native/--viewer-non-native", help="Viewer fluency"),
    code_switched: bool = typer.Option(False, "--code-switched", help="Sender speaks their native language"),
    seed: Optional[int] = typer.Option(None, help="Seed for reproducible output"),
) -> None:
    """Render TEXT as a viewer with the given fluency would see it."""

    rendered = garbling.render(
        text,
        None,
        sender_native,
        None,
        viewer_native,
        code_switched,
        rng=build_rng(seed=seed),
    )
    typer.echo(rendered)


async def _run_demo(participants: int, seed: Optional[int], settings: ExerciseConfig) -> None:
    service = ExerciseService(config=settings, rng=build_rng(seed=seed))
    session = await service.create_session()
    LOGGER.info("demo.session", game_pin=session.game_pin, participants=participants)

    members = [await service.join_session(session.game_pin, f"Participant {index}") for index in range(1, participants + 1)]
    rosters = await service.assign_roles(session.id)

    roster_table = Table(title=f"Session {session.game_pin}")
    roster_table.add_column("Team", justify="right")
    roster_table.add_column("Name")
    roster_table.add_column("Role")
    roster_table.add_column("Fluency")
    for roster in rosters:
        for member in roster.members:
            roster_table.add_row(
                str(roster.team.team_number),
                member.name,
                role_display_name(member.role),
                fluency_label(member.is_native_speaker),
            )
    console.print(roster_table)

    await service.start_session(session.id)
    for roster in rosters:
        for position, member in enumerate(roster.members):
            await service.send_message(
                member.id,
                DEMO_LINES[position % len(DEMO_LINES)],
                is_code_switched=not member.is_native_speaker and position % 2 == 1,
            )
        await service.submit_answers(roster.members[0].id, DEMO_ANSWERS)

    for roster in rosters:
        for viewer in roster.members:
            feed = await service.team_transcript(session.id, roster.team.id, viewer.id)
            table = Table(
                title=f"Team {roster.team.team_number} as seen by {viewer.name} "
                f"({role_display_name(viewer.role)}, {fluency_label(viewer.is_native_speaker)})"
            )
            table.add_column("Sender")
            table.add_column("Message")
            table.add_column("CS", justify="center")
            for entry in feed.messages:
                table.add_row(entry.sender_name, entry.text, "yes" if entry.is_code_switched else "")
            console.print(table)

    await service.end_session(session.id)
    debrief = await service.debrief(session.id)
    for team in debrief["teams"]:
        answered = sum(1 for answer in team["answers"] if answer["answer_text"])
        console.print(f"Team {team['team_number']}: {answered}/{len(team['answers'])} answers filed")
    LOGGER.info("demo.complete", session_id=session.id, teams=len(rosters), members=len(members))


@app.command("demo")
def demo(
    participants: int = typer.Option(9, help="Number of simulated participants"),
    seed: Optional[int] = typer.Option(None, help="Seed for reproducible PINs and garbling"),
    config: Optional[Path] = typer.Option(None, help="Path to configuration JSON"),
) -> None:
    """Run a complete in-memory exercise and print every perspective."""

    settings = _settings(config)
    try:
        asyncio.run(_run_demo(participants, seed, settings))
    except CannotFormTeamsError as exc:
        LOGGER.error("demo.failed", error=str(exc))
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Interface to bind"),
    port: Optional[int] = typer.Option(None, help="Port to listen on"),
    config: Optional[Path] = typer.Option(None, help="Path to configuration JSON"),
) -> None:
    """Serve the web API with uvicorn."""

    import uvicorn

    from .web_api import create_app

    settings = _settings(config)
    bind_host = host or settings.host
    bind_port = port or settings.port
    LOGGER.info("server.start", host=bind_host, port=bind_port, enforce_deadline=settings.enforce_deadline)
    uvicorn.run(create_app(config=settings), host=bind_host, port=bind_port, log_level=settings.log_level.lower())


if __name__ == "__main__":  # pragma: no cover
    app()
