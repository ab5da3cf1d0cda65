"""CLI entrypoint for Checkpoint QA."""

import logging
from pathlib import Path
from typing import Callable, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from feedback import FeedbackCollector
from integrations import GitHubIssuesClient
from orchestrator import ApprovalResult, CheckpointManager, RunnerEvent, TestRunner
from pipeline import __version__
from pipeline.config import Config, get_config
from pipeline.errors import EngineError, FeedbackValidationError, InvalidAnswerError
from preflight import PreFlightManager
from schemas.preflight import PreFlight, QuestionType
from schemas.session import RunSummary, Session, SessionMetadata, SessionStatus
from sessions import InMemoryStore, JsonFileStore, SessionManager

app = typer.Typer(
    name="checkpoint-qa",
    help="Interactive checkpoint-based feature testing.",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    "created": "dim",
    "pre-flight": "blue",
    "testing": "blue",
    "paused": "yellow",
    "blocked": "red",
    "completed": "green",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging before any command runs."""
    level = "DEBUG" if verbose else get_config().pipeline.log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _build_store(config: Config):
    if config.storage.backend == "memory":
        return InMemoryStore()
    return JsonFileStore(config.storage.resolve_directory())


def _session_manager(config: Config | None = None) -> SessionManager:
    config = config or get_config()
    manager = SessionManager(
        store=_build_store(config),
        storage_key=config.storage.storage_key,
        current_user=config.session.current_user or "unknown",
    )
    try:
        manager.initialize()
    except EngineError as e:
        rprint(f"[red]Error loading sessions: {e}[/red]")
        raise typer.Exit(1)
    return manager


def _load(manager: SessionManager, session_id: str) -> Session:
    try:
        return manager.load_session(session_id)
    except EngineError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


# =============================================================================
# Interactive run
# =============================================================================


def _ask_question(manager: PreFlightManager, question) -> None:
    """Prompt until the question has a valid answer (or an optional one is skipped)."""
    suffix = "" if question.required else " [dim](optional)[/dim]"
    while True:
        if question.type == QuestionType.TEXT:
            if question.required:
                answer = Prompt.ask(question.text)
            else:
                answer = Prompt.ask(f"{question.text}{suffix}", default="")
        elif question.type == QuestionType.MULTI_SELECT:
            for i, option in enumerate(question.options, start=1):
                rprint(f"  {i}. {option}")
            raw = Prompt.ask(f"{question.text} (comma-separated numbers or names){suffix}")
            answer = []
            for part in (p.strip() for p in raw.split(",")):
                if part.isdigit() and 1 <= int(part) <= len(question.options):
                    answer.append(question.options[int(part) - 1])
                elif part:
                    answer.append(part)
        elif question.type == QuestionType.STEPS:
            rprint(f"{question.text}{suffix} [dim](blank action to finish)[/dim]")
            answer = []
            while True:
                action = Prompt.ask(f"  Step {len(answer) + 1} action", default="")
                if not action.strip():
                    break
                expected = Prompt.ask("    Expected result", default="")
                answer.append({"action": action, "expected": expected or None})
        else:
            raw = Prompt.ask(f"{question.text} (comma-separated){suffix}", default="")
            answer = [p.strip() for p in raw.split(",") if p.strip()]

        if not question.required and not answer:
            return
        try:
            manager.answer_question(question.id, answer)
            return
        except InvalidAnswerError as e:
            rprint(f"[red]{e}[/red]")


def _run_interview(manager: PreFlightManager, pre_flight: PreFlight) -> PreFlight:
    """Walk the operator through the pre-flight questions and approval."""
    rprint(Panel(pre_flight.feature_request, title="Pre-flight", border_style="blue"))
    if manager.is_quick_mode_eligible(pre_flight.feature_request):
        rprint("[dim]This looks like a low-risk change; keep the answers short.[/dim]")

    for question in manager.get_unanswered_questions():
        _ask_question(manager, question)

    while Confirm.ask("Flag an ambiguity?", default=False):
        description = Prompt.ask("Describe the open point")
        manager.flag_ambiguity(description)

    for ambiguity in manager.get_unresolved_ambiguities():
        resolution = Prompt.ask(f"Resolution for '{ambiguity.description}'")
        manager.resolve_ambiguity(ambiguity.id, resolution)

    approved = manager.approve()

    table = Table(title="Test Steps")
    table.add_column("#", justify="right")
    table.add_column("Action", style="cyan")
    table.add_column("Expected", style="green")
    for step in approved.steps:
        table.add_row(str(step.index), step.action, step.expected_result)
    console.print(table)
    return approved


def _print_resume_hint(session: Session) -> None:
    rprint("[yellow]Session paused. Resume with:[/yellow]")
    rprint(f"  checkpoint-qa run --resume {session.id}")


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="Session Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Checkpoints", str(summary.total_checkpoints))
    table.add_row("Passed", f"[green]{summary.passed}[/green]")
    table.add_row("Failed", f"[red]{summary.failed}[/red]")
    table.add_row("Skipped", f"[blue]{summary.skipped}[/blue]")
    table.add_row("Blockers", str(summary.blockers))
    table.add_row("Nice-to-have", str(summary.nice_to_have))
    console.print(table)


def _drive(
    runner: TestRunner,
    checkpoints: CheckpointManager,
    autosave: Callable[[], None],
) -> None:
    """Checkpoint loop: ask for decisions until the session completes or pauses."""
    session = runner.session
    while session.status in (SessionStatus.TESTING, SessionStatus.BLOCKED):
        if session.status == SessionStatus.BLOCKED:
            for blocker in session.blockers:
                rprint(f"[red]Blocker:[/red] {blocker.feedback.issue}")
            if not Confirm.ask("Has the blocker been fixed?", default=False):
                runner.save_session("Stopped while blocked")
                autosave()
                return
            resolution = Prompt.ask("Resolution", default="Fixed")
            runner.resolve_blockers(resolution)
            runner.retest_checkpoint()
            autosave()
            continue

        checkpoint = runner.get_current_checkpoint()
        if not checkpoint.is_pending:
            checkpoint = runner.retest_checkpoint()
        response = checkpoints.request_decision(checkpoint, session)

        if response.result == ApprovalResult.APPROVED:
            runner.approve_checkpoint(notes=response.notes, screenshot=response.screenshot)
        elif response.result == ApprovalResult.REJECTED:
            try:
                runner.reject_checkpoint(response.feedback)
            except FeedbackValidationError as e:
                rprint(f"[red]{e}[/red]")
                continue
        elif response.result == ApprovalResult.SKIPPED:
            runner.skip_checkpoint(response.notes)
        else:
            runner.pause_session(response.notes or "")
        autosave()


@app.command()
def run(
    feature: Optional[str] = typer.Argument(None, help="Feature to test"),
    resume: Optional[str] = typer.Option(
        None,
        "--resume",
        help="Resume a saved session by ID",
    ),
    auto_approve: bool = typer.Option(
        False,
        "--auto-approve",
        "-y",
        help="Approve every checkpoint without prompting",
    ),
    assigned_to: Optional[str] = typer.Option(
        None,
        "--assigned-to",
        help="Tester the session is assigned to",
    ),
    github_issue: Optional[str] = typer.Option(
        None,
        "--github-issue",
        help="Issue the feature is tracked under",
    ),
) -> None:
    """Run an interactive test session.

    Examples:
        checkpoint-qa run "Patient check-in"
        checkpoint-qa run --resume 3f2c...
    """
    if not feature and not resume:
        rprint("[red]Give a feature to test or --resume SESSION_ID[/red]")
        raise typer.Exit(1)

    config = get_config()
    sessions = _session_manager(config)
    preflight = PreFlightManager(config.pre_flight)
    checkpoints = CheckpointManager(console=console, auto_approve=auto_approve)
    runner = TestRunner(checkpoint_manager=checkpoints)

    runner.on(RunnerEvent.SESSION_BLOCKED, lambda _: rprint("[red]Session blocked[/red]"))
    runner.on(RunnerEvent.SESSION_PAUSED, lambda _: _print_resume_hint(runner.session))
    runner.on(RunnerEvent.SESSION_COMPLETED, _print_summary)

    def autosave() -> None:
        if config.pipeline.autosave:
            sessions.save_session(runner.session)

    rprint(f"[bold blue]Checkpoint QA v{__version__}[/bold blue]")
    try:
        if resume:
            session = runner.resume_session(_load(sessions, resume))
            rprint(f"[green]Resuming:[/green] {session.feature_name} ({session.status.value})")
            if session.status == SessionStatus.PAUSED:
                runner.resume_testing()
        else:
            session = runner.start_session(
                feature,
                metadata=SessionMetadata(
                    github_issue=github_issue,
                    assigned_to=assigned_to,
                    environment=config.session.environment,
                    version=config.session.version,
                ),
            )
            autosave()

        if session.status == SessionStatus.PRE_FLIGHT:
            if session.pre_flight is None:
                session.pre_flight = preflight.start_pre_flight(session.feature_name)
            else:
                preflight.load_pre_flight(session.pre_flight)
            if not session.pre_flight.approved:
                _run_interview(preflight, session.pre_flight)
            runner.complete_pre_flight(session.pre_flight)
            autosave()

        _drive(runner, checkpoints, autosave)
        sessions.save_session(runner.session)
    except EngineError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        rprint("\n[yellow]Interrupted[/yellow]")
        if runner.session:
            runner.save_session("Interrupted")
            sessions.save_session(runner.session)
        raise typer.Exit(130)


# =============================================================================
# Session commands
# =============================================================================


@app.command("sessions")
def list_sessions(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Only sessions in this status"),
) -> None:
    """List saved sessions."""
    manager = _session_manager()
    overviews = manager.list_sessions()
    if status:
        overviews = [o for o in overviews if o.status.value == status]

    if not overviews:
        rprint("[dim]No sessions found.[/dim]")
        return

    table = Table(title="Test Sessions")
    table.add_column("Session ID", style="cyan")
    table.add_column("Feature", style="white")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Updated", style="dim")

    for o in overviews:
        table.add_row(
            o.id,
            o.feature_name[:40] + ("..." if len(o.feature_name) > 40 else ""),
            _styled_status(o.status.value),
            f"{o.progress.checkpoints_completed}/{o.progress.total_checkpoints}",
            o.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def show(
    session_id: str = typer.Argument(..., help="Session ID to show details for"),
) -> None:
    """Show details of a session."""
    manager = _session_manager()
    session = _load(manager, session_id)

    rprint(f"[bold]Session: {session.id}[/bold]")
    rprint()
    rprint(f"[green]Feature:[/green] {session.feature_name}")
    rprint(f"[green]Status:[/green] {_styled_status(session.status.value)}")
    if session.metadata.assigned_to:
        rprint(f"[green]Assigned to:[/green] {session.metadata.assigned_to}")
    if session.imported_from:
        rprint(f"[green]Imported from:[/green] {session.imported_from}")
    rprint()

    if session.plan:
        table = Table(title="Checkpoints")
        table.add_column("#", justify="right")
        table.add_column("Action")
        table.add_column("Status")
        for c in session.plan:
            color = {"passed": "green", "failed": "red", "skipped": "blue"}.get(c.status.value, "white")
            table.add_row(str(c.index), c.action, f"[{color}]{c.status.value}[/{color}]")
        console.print(table)

    if session.feedback:
        table = Table(title="Feedback")
        table.add_column("ID", style="cyan")
        table.add_column("Priority")
        table.add_column("Category")
        table.add_column("Issue")
        table.add_column("Status")
        for f in session.feedback:
            table.add_row(
                f.id[:8],
                f.priority.value,
                FeedbackCollector.format_category(f.category),
                f.issue,
                f.status.value,
            )
        console.print(table)

    if session.summary:
        _print_summary(session.summary)


@app.command("resume-summary")
def resume_summary(
    session_id: str = typer.Argument(..., help="Session ID"),
) -> None:
    """Print the resume report for a session."""
    manager = _session_manager()
    _load(manager, session_id)
    rprint(manager.generate_resume_summary(session_id))


@app.command()
def handoff(
    session_id: str = typer.Argument(..., help="Session ID to hand off"),
    notes: str = typer.Option("", "--notes", "-n", help="Notes for the next tester"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the package to a file"),
) -> None:
    """Prepare a hand-off package for another tester."""
    manager = _session_manager()
    _load(manager, session_id)
    try:
        package = manager.prepare_handoff(session_id, notes)
    except EngineError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    for step in package.package.recommended_next_steps:
        rprint(f"[bold]{step.priority.value.upper()}[/bold] {step.action}")
        for detail in step.details:
            rprint(f"  - {detail}")

    if output:
        output.write_text(package.model_dump_json(indent=2))
        rprint(f"[green]Hand-off written to {output}[/green]")


@app.command()
def export(
    session_id: str = typer.Argument(..., help="Session ID to export"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: stdout)"),
) -> None:
    """Export a session as JSON."""
    manager = _session_manager()
    _load(manager, session_id)
    payload = manager.export_session(session_id).model_dump_json(indent=2)

    if output:
        output.write_text(payload)
        rprint(f"[green]Exported to {output}[/green]")
    else:
        typer.echo(payload)


@app.command("import")
def import_session(
    path: Path = typer.Argument(..., help="File produced by the export command"),
) -> None:
    """Import an exported session under a new ID."""
    if not path.exists():
        rprint(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)

    manager = _session_manager()
    try:
        session = manager.import_session(path.read_text())
    except ValueError as e:
        rprint(f"[red]Invalid export file: {e}[/red]")
        raise typer.Exit(1)
    except EngineError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]Imported as {session.id}[/green]")


@app.command()
def delete(
    session_id: str = typer.Argument(..., help="Session ID to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a saved session."""
    manager = _session_manager()
    session = _load(manager, session_id)

    if not yes and not Confirm.ask(f"Delete session '{session.feature_name}'?", default=False):
        rprint("[dim]Cancelled[/dim]")
        return

    try:
        manager.delete_session(session_id)
    except EngineError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    rprint(f"[green]Deleted {session_id}[/green]")


@app.command("file-issue")
def file_issue(
    session_id: str = typer.Argument(..., help="Session ID"),
    feedback_id: str = typer.Argument(..., help="Feedback ID (or unique prefix)"),
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="GitHub repo (owner/repo)"),
) -> None:
    """File a feedback item as a GitHub issue and link it."""
    config = get_config()
    manager = _session_manager(config)
    session = _load(manager, session_id)

    matches = [f for f in session.feedback if f.id.startswith(feedback_id)]
    if len(matches) != 1:
        rprint(f"[red]Feedback not found or ambiguous: {feedback_id}[/red]")
        raise typer.Exit(1)
    item = matches[0]

    client = GitHubIssuesClient(
        repo=repo or config.integrations.github_repo or None,
        token=config.integrations.github_token or None,
    )
    try:
        reference = client.create_issue(
            item, session.get_checkpoint(item.checkpoint_id or ""), session.feature_name
        )
    except ValueError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except ConnectionError as e:
        rprint(f"[red]Connection error: {e}[/red]")
        raise typer.Exit(1)

    FeedbackCollector(session.feedback).attach_external_issue(item.id, reference)
    try:
        manager.save_session(session)
    except EngineError as e:
        rprint(f"[red]Issue created but not linked: {e}[/red]")
        raise typer.Exit(1)
    rprint(f"[green]Created issue #{reference.id}:[/green] {reference.url}")


# =============================================================================
# Info commands
# =============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    config = get_config()

    rprint(f"[bold blue]Checkpoint QA[/bold blue] v{__version__}")
    rprint()
    rprint(f"[dim]Storage:[/dim] {config.storage.backend}")
    rprint(f"[dim]Environment:[/dim] {config.session.environment}")


@app.command()
def config_show() -> None:
    """Show current configuration."""
    cfg = get_config()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("storage.backend", cfg.storage.backend)
    table.add_row("storage.directory", str(cfg.storage.resolve_directory()))
    table.add_row("storage.storage_key", cfg.storage.storage_key)
    table.add_row("pre_flight.user_roles", ", ".join(cfg.pre_flight.user_roles))
    table.add_row("pre_flight.quick_mode_patterns", ", ".join(cfg.pre_flight.all_quick_mode_patterns()))
    table.add_row("session.environment", cfg.session.environment)
    table.add_row("session.version", cfg.session.version)
    table.add_row("session.current_user", cfg.session.current_user or "(unset)")
    table.add_row("pipeline.log_level", cfg.pipeline.log_level)
    table.add_row("pipeline.autosave", str(cfg.pipeline.autosave))
    table.add_row("integrations.github_repo", cfg.integrations.github_repo or "(unset)")
    table.add_row("integrations.github_token", "set" if cfg.integrations.github_token else "(unset)")

    console.print(table)


if __name__ == "__main__":
    app()
