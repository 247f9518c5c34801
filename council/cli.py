"""Main CLI entry point for the agent council."""

import asyncio
import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import db
from .agents import AgentType, create_agent, delete_agent, seed_default_agents, update_agent
from .config import settings
from .errors import NotFoundError
from .fanout import FanOutResult, run_all_agents, run_single_agent
from .gatherer import refresh_project_data
from .lifecycle import (
    UNSET,
    accept_action,
    get_action_detail,
    list_actions,
    reject_action,
    update_tracking,
)
from .metrics import compute_project_metrics
from .models import SUCCESS_SCORE_MAX, SUCCESS_SCORE_MIN, ActionStatus, Base, TrackingStatus
from .pipeline import run_agents_with_synthesis

console = Console()

STATUS_STYLES = {
    "completed": "green",
    "accepted": "green",
    "active": "cyan",
    "running": "cyan",
    "pending": "yellow",
    "failed": "red",
    "rejected": "red",
}


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _styled(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def _print_fan_out(result: FanOutResult, title: str) -> None:
    table = Table(title=title)
    table.add_column("Agent", style="cyan")
    table.add_column("Type")
    table.add_column("Result")
    for outcome in result.outcomes:
        table.add_row(
            outcome.agent_name,
            outcome.agent_type,
            f"[red]{outcome.error}[/red]" if outcome.failed else "[green]ok[/green]",
        )
    console.print(table)
    style = "green" if result.failed == 0 else "yellow"
    console.print(f"[{style}]{result.summary}[/{style}] (run {result.run_id})")


@click.group()
@click.version_option(version="0.1.0")
@click.option("--log-level", default=None, help="Logging level (defaults to COUNCIL_LOG_LEVEL)")
def main(log_level: str | None) -> None:
    """Agent council CLI.

    Run role-specialized AI agents over project context and review the actions they propose.
    """
    setup_logging(log_level or settings.log_level)


# =============================================================================
# Database
# =============================================================================


@main.command(name="init-db")
def init_db() -> None:
    """Create all tables directly (development only; prefer alembic)."""
    asyncio.run(db.init_db())
    console.print("[green]Tables created[/green]")


@main.command(name="schema-check", help="Check DB schema readiness for current code.")
def schema_check() -> None:
    async def check() -> None:
        from sqlalchemy import inspect

        async with db.engine.connect() as conn:
            existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))

        missing = set(Base.metadata.tables) - existing
        if missing:
            console.print(f"[red]Missing tables: {sorted(missing)}[/red]")
            console.print("Run: `alembic upgrade head`")
            raise SystemExit(1)
        console.print("[green]Schema ready[/green]")

    asyncio.run(check())


# =============================================================================
# Projects
# =============================================================================


@main.group()
def project() -> None:
    """Manage projects."""


@project.command(name="create")
@click.argument("name")
@click.option("--owner", required=True, help="Owner (user id)")
@click.option("--description", "-d", default=None, help="Project description")
def project_create(name: str, owner: str, description: str | None) -> None:
    async def do_create() -> str:
        async with db.get_session() as session:
            created = await db.create_project(session, owner, name, description)
            return created.id

    project_id = asyncio.run(do_create())
    console.print(f"[green]✓[/green] Created project {name} ({project_id})")


@project.command(name="list")
@click.option("--owner", required=True, help="Owner (user id)")
def project_list(owner: str) -> None:
    async def do_list() -> None:
        async with db.get_session() as session:
            projects = await db.list_projects(session, owner)

        if not projects:
            console.print("[yellow]No projects found[/yellow]")
            return

        table = Table(title="Projects")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Description")
        table.add_column("Created")
        for p in projects:
            table.add_row(p.id, p.name, (p.description or "-")[:60], _fmt_time(p.created_at))
        console.print(table)

    asyncio.run(do_list())


@project.command(name="delete")
@click.argument("project_id")
@click.confirmation_option(prompt="Delete the project and everything it owns?")
def project_delete(project_id: str) -> None:
    async def do_delete() -> None:
        async with db.get_session() as session:
            found = await db.get_project(session, project_id)
            if found is None:
                raise NotFoundError(f"Project not found: {project_id}")
            await db.delete_project(session, found)

    asyncio.run(do_delete())
    console.print(f"[green]✓[/green] Deleted project {project_id}")


# =============================================================================
# Data sources
# =============================================================================


@main.group()
def source() -> None:
    """Connect and disconnect data sources."""


@source.command(name="connect")
@click.argument("project_id")
@click.argument("source_type")
@click.option("--token", required=True, envvar="COUNCIL_SOURCE_TOKEN", help="Access token")
def source_connect(project_id: str, source_type: str, token: str) -> None:
    async def do_connect() -> None:
        async with db.get_session() as session:
            if await db.get_project(session, project_id) is None:
                raise NotFoundError(f"Project not found: {project_id}")
            await db.connect_data_source(session, project_id, source_type, token)

    asyncio.run(do_connect())
    console.print(f"[green]✓[/green] Connected {source_type}")


@source.command(name="disconnect")
@click.argument("project_id")
@click.argument("source_type")
def source_disconnect(project_id: str, source_type: str) -> None:
    async def do_disconnect() -> None:
        async with db.get_session() as session:
            found = await db.get_data_source(session, project_id, source_type)
            if found is None:
                raise NotFoundError(f"No {source_type} source for project {project_id}")
            await db.disconnect_data_source(session, found)

    asyncio.run(do_disconnect())
    console.print(f"[green]✓[/green] Disconnected {source_type}")


@main.command()
@click.argument("project_id")
def refresh(project_id: str) -> None:
    """Fetch every connected source and report item counts."""
    result = asyncio.run(refresh_project_data(project_id))

    table = Table(title="Data Refresh")
    table.add_column("Source", style="cyan")
    table.add_column("Items")
    for source_type, counts in sorted(result.counts.items()):
        table.add_row(source_type, ", ".join(f"{k}: {v}" for k, v in sorted(counts.items())))
    console.print(table)
    for error in result.errors:
        console.print(f"[red]{error}[/red]")
    console.print(f"Run {result.run_id}: {_styled('completed' if result.success else 'failed')}")


# =============================================================================
# Agents
# =============================================================================


@main.group()
def agents() -> None:
    """Manage a project's agents."""


@agents.command(name="seed")
@click.argument("project_id")
def agents_seed(project_id: str) -> None:
    """Create the default agent set."""

    async def do_seed() -> list[str]:
        async with db.get_session() as session:
            created = await seed_default_agents(session, project_id)
            return [a.name for a in created]

    for name in asyncio.run(do_seed()):
        console.print(f"[green]✓[/green] {name}")


@agents.command(name="list")
@click.argument("project_id")
def agents_list(project_id: str) -> None:
    async def do_list() -> None:
        async with db.get_session() as session:
            rows = await db.get_agents(session, project_id)

        if not rows:
            console.print("[yellow]No agents configured[/yellow]")
            return

        table = Table(title="Agents")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Default")
        for a in rows:
            table.add_row(a.id, a.name, a.type, "yes" if a.is_default else "")
        console.print(table)

    asyncio.run(do_list())


@agents.command(name="add")
@click.argument("project_id")
@click.argument("name")
@click.option(
    "--type", "agent_type", type=click.Choice([t.value for t in AgentType]), default="custom"
)
@click.option("--prompt", "system_prompt", required=True, help="System prompt")
def agents_add(project_id: str, name: str, agent_type: str, system_prompt: str) -> None:
    async def do_add() -> str:
        async with db.get_session() as session:
            created = await create_agent(session, project_id, name, agent_type, system_prompt)
            return created.id

    agent_id = asyncio.run(do_add())
    console.print(f"[green]✓[/green] Added agent {name} ({agent_id})")


@agents.command(name="edit")
@click.argument("agent_id")
@click.option("--name", default=None)
@click.option("--type", "agent_type", type=click.Choice([t.value for t in AgentType]), default=None)
@click.option("--prompt", "system_prompt", default=None)
def agents_edit(
    agent_id: str, name: str | None, agent_type: str | None, system_prompt: str | None
) -> None:
    async def do_edit() -> None:
        async with db.get_session() as session:
            await update_agent(
                session, agent_id, name=name, agent_type=agent_type, system_prompt=system_prompt
            )

    asyncio.run(do_edit())
    console.print(f"[green]✓[/green] Updated agent {agent_id}")


@agents.command(name="remove")
@click.argument("agent_id")
def agents_remove(agent_id: str) -> None:
    async def do_remove() -> None:
        async with db.get_session() as session:
            await delete_agent(session, agent_id)

    asyncio.run(do_remove())
    console.print(f"[green]✓[/green] Removed agent {agent_id}")


@agents.command(name="outputs")
@click.argument("agent_id")
@click.option("--limit", default=20, help="Number of outputs to show")
def agents_outputs(agent_id: str, limit: int) -> None:
    """Show an agent's most recent outputs."""

    async def do_show() -> None:
        async with db.get_session() as session:
            outputs = await db.get_outputs_for_agent(session, agent_id, limit)

        if not outputs:
            console.print("[yellow]No outputs yet[/yellow]")
            return
        for output in outputs:
            meta = output.metadata_ or {}
            console.print(
                Panel(
                    output.output_text,
                    title=f"{meta.get('agent_name', agent_id)} | run {output.agent_run_id}",
                    subtitle=_fmt_time(output.created_at),
                    border_style="red" if meta.get("error") else "blue",
                )
            )

    asyncio.run(do_show())


# =============================================================================
# Runs
# =============================================================================


@main.command(name="run-agent")
@click.argument("agent_id")
def run_agent(agent_id: str) -> None:
    """Run a single agent."""
    result = asyncio.run(run_single_agent(agent_id))
    _print_fan_out(result, "Agent Run")
    for outcome in result.outcomes:
        console.print(Panel(outcome.output, title=outcome.agent_name))


@main.command(name="run-all")
@click.argument("project_id")
def run_all(project_id: str) -> None:
    """Run every analysis agent of a project in parallel."""
    result = asyncio.run(run_all_agents(project_id))
    _print_fan_out(result, "Analysis Run")


@main.command()
@click.argument("project_id")
def run(project_id: str) -> None:
    """Run all analysis agents, then synthesize proposed actions."""
    result = asyncio.run(run_agents_with_synthesis(project_id))
    _print_fan_out(result.fan_out, "Analysis Run")
    console.print(
        f"[green]✓[/green] {result.synthesis.count} proposed actions "
        f"(synthesis run {result.synthesis.run_id})"
    )
    console.print(f"Review with: council actions list {project_id}")


@main.command()
@click.argument("project_id")
@click.option("--limit", default=10, help="Number of runs to show")
def runs(project_id: str, limit: int) -> None:
    """List recent runs."""

    async def do_list() -> None:
        async with db.get_session() as session:
            rows = await db.list_runs(session, project_id, limit=limit)

        if not rows:
            console.print("[yellow]No runs yet[/yellow]")
            return

        table = Table(title="Runs")
        table.add_column("ID", style="dim")
        table.add_column("Type", style="cyan")
        table.add_column("Status")
        table.add_column("Started")
        table.add_column("Completed")
        table.add_column("Error")
        for r in rows:
            table.add_row(
                r.id,
                r.run_type,
                _styled(r.status),
                _fmt_time(r.started_at),
                _fmt_time(r.completed_at),
                r.error_message or "",
            )
        console.print(table)

    asyncio.run(do_list())


# =============================================================================
# Proposed actions
# =============================================================================


@main.group()
def actions() -> None:
    """Review proposed actions."""


@actions.command(name="list")
@click.argument("project_id")
@click.option("--status", type=click.Choice([s.value for s in ActionStatus]), default=None)
def actions_list(project_id: str, status: str | None) -> None:
    rows = asyncio.run(list_actions(project_id, status))
    if not rows:
        console.print("[yellow]No proposed actions[/yellow]")
        return

    table = Table(title="Proposed Actions")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Status")
    table.add_column("Created")
    for a in rows:
        table.add_row(a.id, a.title, _styled(a.status), _fmt_time(a.created_at))
    console.print(table)


@actions.command(name="show")
@click.argument("action_id")
def actions_show(action_id: str) -> None:
    detail = asyncio.run(get_action_detail(action_id))
    action = detail.action

    body = (
        f"[bold]{action.title}[/bold]\n\n"
        f"Status: {_styled(action.status)}\n\n"
        f"{action.description}\n\n"
        f"[bold]Justification[/bold]\n{action.justification}"
    )
    if detail.rejection:
        body += f"\n\n[red]Rejected:[/red] {detail.rejection.rejection_reason}"
    if detail.tracking:
        t = detail.tracking
        body += (
            f"\n\n[bold]Tracking[/bold] {t.id}\n"
            f"Status: {_styled(t.status)}\n"
            f"Score: {t.success_score if t.success_score is not None else '-'}\n"
            f"Completed: {_fmt_time(t.completed_at)}\n"
            f"Comments: {t.comments or '-'}"
        )
    console.print(Panel(body, title=f"Action {action.id}"))


@actions.command(name="accept")
@click.argument("action_id")
def actions_accept(action_id: str) -> None:
    tracking = asyncio.run(accept_action(action_id))
    console.print(f"[green]✓[/green] Accepted; tracking {tracking.id}")


@actions.command(name="reject")
@click.argument("action_id")
@click.option("--reason", "-r", required=True, help="Why the action was rejected")
def actions_reject(action_id: str, reason: str) -> None:
    asyncio.run(reject_action(action_id, reason))
    console.print("[green]✓[/green] Rejected; the reason will inform future synthesis")


@main.command()
@click.argument("tracking_id")
@click.option("--status", type=click.Choice([s.value for s in TrackingStatus]), default=None)
@click.option("--comments", "-c", default=None, help="Progress comments")
@click.option(
    "--score",
    type=click.IntRange(SUCCESS_SCORE_MIN, SUCCESS_SCORE_MAX),
    default=None,
    help="Success score (-5..5)",
)
def track(tracking_id: str, status: str | None, comments: str | None, score: int | None) -> None:
    """Update tracking of an accepted action."""
    tracking = asyncio.run(
        update_tracking(
            tracking_id,
            status=status,
            comments=comments if comments is not None else UNSET,
            success_score=score if score is not None else UNSET,
        )
    )
    console.print(
        f"[green]✓[/green] Tracking {tracking.id}: {_styled(tracking.status)}"
        f", score {tracking.success_score if tracking.success_score is not None else '-'}"
    )


@main.command()
@click.argument("project_id")
def metrics(project_id: str) -> None:
    """Show approval rates, success scores and agent activity."""

    async def do_metrics() -> dict:
        async with db.get_session() as session:
            if await db.get_project(session, project_id) is None:
                raise NotFoundError(f"Project not found: {project_id}")
            return await compute_project_metrics(session, project_id)

    data = asyncio.run(do_metrics())
    a = data["actions"]
    s = data["success_scores"]
    t = data["tracking"]
    console.print(
        Panel(
            f"Total: {a['total']}  Accepted: {a['accepted']}  "
            f"Rejected: {a['rejected']}  Pending: {a['pending']}\n"
            f"Approval rate: {a['approval_rate']}%  Rejection rate: {a['rejection_rate']}%\n"
            f"Tracking: {t['active']} active, {t['completed']} completed\n"
            f"Average score: {s['average'] if s['average'] is not None else '-'} "
            f"({s['total_scored']} scored)",
            title="Project Metrics",
        )
    )

    dist = Table(title="Success Score Distribution")
    for score in s["distribution"]:
        dist.add_column(score, justify="right")
    dist.add_row(*[str(v) for v in s["distribution"].values()])
    console.print(dist)

    if data["agent_performance"]:
        perf = Table(title="Agent Outputs (analysis runs)")
        perf.add_column("Agent", style="cyan")
        perf.add_column("Type")
        perf.add_column("Outputs", justify="right")
        for row in data["agent_performance"]:
            perf.add_row(row["name"], row["type"], str(row["count"]))
        console.print(perf)

    if data["recent_rejections"]:
        console.print("[bold]Recent rejections[/bold]")
        for r in data["recent_rejections"]:
            console.print(f"  - {r['rejection_reason']}")


if __name__ == "__main__":
    main()
