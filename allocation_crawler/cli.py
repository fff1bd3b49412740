"""
Allocation Crawler - Command Line Interface
"""

import asyncio
import json
from typing import Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.table import Table

from allocation_crawler.applications import ApplicationCoordinator, LockReconciler, RunStatus
from allocation_crawler.core.exceptions import (
    BoardNotFoundError,
    CrawlerServiceException,
    InvalidInputError,
    JobNotFoundError,
    RunNotFoundError,
    UserNotFoundError,
)
from allocation_crawler.core.logging_config import setup_logging
from allocation_crawler.core.store import KeyValueStore, connect
from allocation_crawler.discovery import BoardCrawler
from allocation_crawler.entities import EntityStore, Job, JobStatus
from allocation_crawler.queries import QueryService
from allocation_crawler.schemas import (
    ArtifactsInput,
    BoardInput,
    JobInput,
    JobStatusUpdateInput,
    RunCreateInput,
    RunUpdateInput,
    UserInput,
    validate_input,
)

app = typer.Typer(
    name="crawler",
    help="Allocation Crawler CLI",
    add_completion=False,
)
board_app = typer.Typer(help="Manage job boards")
job_app = typer.Typer(help="Manage jobs")
run_app = typer.Typer(help="Manage application runs")
user_app = typer.Typer(help="Manage user profiles")
app.add_typer(board_app, name="board")
app.add_typer(job_app, name="job")
app.add_typer(run_app, name="run")
app.add_typer(user_app, name="user")

console = Console()


class Services:
    """Service objects sharing one store connection"""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.entities = EntityStore(store)
        self.coordinator = ApplicationCoordinator(store, self.entities)
        self.queries = QueryService(store, self.entities, self.coordinator)


def _execute(func: Callable[[Services], Awaitable[None]]) -> None:
    """Run ``func`` against a fresh connection, reporting service errors"""

    async def run():
        async with connect() as store:
            await func(Services(store))

    try:
        asyncio.run(run())
    except CrawlerServiceException as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        for error in e.details.get("errors", []):
            console.print(f"[red]  {error['field']}: {error['message']}[/red]")
        raise typer.Exit(1)


def _parse_artifacts(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Artifacts must be JSON: {e}") from e
    return validate_input(ArtifactsInput, payload).to_dict()


def _parse_answers(pairs: list[str]) -> dict[str, str]:
    answers = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise InvalidInputError(f"Answer must be KEY=VALUE: {pair}")
        answers[key] = value
    return answers


def _jobs_table(title: str, jobs: list[Job]) -> Table:
    table = Table(title=title)
    table.add_column("Board", style="dim")
    table.add_column("Job ID")
    table.add_column("Title")
    table.add_column("Location")
    table.add_column("Status")
    table.add_column("Tags")

    for job in jobs:
        table.add_row(
            job.board,
            job.job_id,
            job.title,
            job.location,
            job.status.value,
            ", ".join(sorted(job.tags)),
        )
    return table


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Log level override"),
    log_format: Optional[str] = typer.Option(None, help="Log format: json or text"),
):
    """Coordinate job discovery and application runs"""
    setup_logging(log_level, log_format)


# ==================================================================
# Boards
# ==================================================================


@board_app.command("add")
def board_add(
    board_id: str = typer.Argument(..., help="Board id (also the ATS board token)"),
    company: str = typer.Option(..., help="Company name"),
    ats: str = typer.Option("greenhouse", help="ATS provider"),
):
    """Register a board"""

    async def run(services: Services):
        data = validate_input(BoardInput, {"id": board_id, "company": company, "ats": ats})
        board = await services.entities.add_board(data.id, data.company, data.ats)
        console.print(f"[green]Board registered: {board.id} ({board.ats})[/green]")

    _execute(run)


@board_app.command("list")
def board_list():
    """List registered boards"""

    async def run(services: Services):
        boards = await services.entities.list_boards()

        table = Table(title="Boards")
        table.add_column("ID", style="dim")
        table.add_column("Company")
        table.add_column("ATS")
        table.add_column("Created")

        for board in boards:
            table.add_row(
                board.id,
                board.company,
                board.ats,
                board.created_at.strftime("%Y-%m-%d %H:%M") if board.created_at else "",
            )

        console.print(table)

    _execute(run)


@board_app.command("remove")
def board_remove(board_id: str = typer.Argument(..., help="Board id")):
    """Remove a board with its jobs, runs and locks"""

    async def run(services: Services):
        if not await services.entities.remove_board(board_id):
            raise BoardNotFoundError(board_id)
        console.print(f"[green]Board removed: {board_id}[/green]")

    _execute(run)


# ==================================================================
# Jobs
# ==================================================================


@job_app.command("add")
def job_add(
    board: str = typer.Argument(..., help="Board id"),
    job_id: str = typer.Argument(..., help="Job id within the board"),
    title: str = typer.Option("", help="Job title"),
    url: str = typer.Option("", help="Posting URL"),
    location: str = typer.Option("", help="Location"),
    department: str = typer.Option("", help="Department"),
):
    """Add (or overwrite) a job as discovered"""

    async def run(services: Services):
        data = validate_input(JobInput, {
            "job_id": job_id,
            "board": board,
            "title": title,
            "url": url,
            "location": location,
            "department": department,
        })
        job = await services.entities.add_job(data.to_new_job())
        console.print(f"[green]Job added: {job.composite_key}[/green]")
        console.print(f"Tags: {', '.join(sorted(job.tags)) or '-'}")

    _execute(run)


@job_app.command("list")
def job_list(
    board: Optional[str] = typer.Option(None, help="Filter by board"),
    status: Optional[JobStatus] = typer.Option(None, case_sensitive=False, help="Filter by status"),
    tag: Optional[str] = typer.Option(None, help="Filter by tag"),
    user: Optional[str] = typer.Option(None, help="Jobs matching a user's tags"),
):
    """List jobs"""

    async def run(services: Services):
        if user:
            if await services.entities.get_user(user) is None:
                raise UserNotFoundError(user)
            jobs = await services.queries.jobs_for_user(user, board=board, status=status)
        else:
            jobs = await services.queries.jobs(board=board, status=status, tag=tag)

        console.print(_jobs_table(f"Jobs ({len(jobs)})", jobs))

    _execute(run)


@job_app.command("show")
def job_show(
    board: str = typer.Argument(..., help="Board id"),
    job_id: str = typer.Argument(..., help="Job id"),
):
    """Show a job with its runs and lock holder"""

    async def run(services: Services):
        detail = await services.queries.job_detail(board, job_id)
        if detail is None:
            raise JobNotFoundError(board, job_id)
        console.print_json(json.dumps(detail.to_dict()))

    _execute(run)


@job_app.command("status")
def job_status(
    board: str = typer.Argument(..., help="Board id"),
    job_id: str = typer.Argument(..., help="Job id"),
    status: JobStatus = typer.Argument(..., case_sensitive=False, help="New status"),
):
    """Set a job's status manually"""

    async def run(services: Services):
        data = validate_input(
            JobStatusUpdateInput,
            {"board": board, "job_id": job_id, "status": status},
        )
        job = await services.entities.update_job_status(data.board, data.job_id, data.status)
        if job is None:
            raise JobNotFoundError(board, job_id)
        console.print(f"[green]{job.composite_key} -> {job.status.value}[/green]")

    _execute(run)


@job_app.command("remove")
def job_remove(
    board: str = typer.Argument(..., help="Board id"),
    job_id: str = typer.Argument(..., help="Job id"),
):
    """Remove a job with its runs and lock"""

    async def run(services: Services):
        if not await services.entities.remove_job(board, job_id):
            raise JobNotFoundError(board, job_id)
        console.print(f"[green]Job removed: {board}:{job_id}[/green]")

    _execute(run)


# ==================================================================
# Runs
# ==================================================================


@run_app.command("create")
def run_create(
    run_id: str = typer.Argument(..., help="Run id"),
    board: str = typer.Argument(..., help="Board id"),
    job_id: str = typer.Argument(..., help="Job id"),
    variant: str = typer.Option(..., help="Variant id"),
    artifacts: Optional[str] = typer.Option(None, help="Initial artifacts as JSON"),
):
    """Claim a job for an application run"""

    async def run(services: Services):
        data = validate_input(RunCreateInput, {
            "run_id": run_id,
            "job_id": job_id,
            "board": board,
            "variant_id": variant,
            "artifacts": _parse_artifacts(artifacts),
        })
        result = await services.coordinator.create_run(
            run_id=data.run_id,
            job_id=data.job_id,
            board=data.board,
            variant_id=data.variant_id,
            artifacts=data.artifacts.to_dict() if data.artifacts else None,
        )
        created = result.raise_for_outcome()
        console.print(f"[green]Run created: {created.run_id} for {board}:{job_id}[/green]")

    _execute(run)


@run_app.command("update")
def run_update(
    run_id: str = typer.Argument(..., help="Run id"),
    status: RunStatus = typer.Argument(..., case_sensitive=False, help="New run status"),
    error: Optional[str] = typer.Option(None, help="Failure reason"),
    artifacts: Optional[str] = typer.Option(None, help="Artifacts to merge, as JSON"),
):
    """Record run progress or outcome"""

    async def run(services: Services):
        data = validate_input(RunUpdateInput, {
            "run_id": run_id,
            "status": status,
            "error": error,
            "artifacts": _parse_artifacts(artifacts),
        })
        updated = await services.coordinator.update_run(
            data.run_id,
            data.status,
            error=data.error,
            artifacts=data.artifacts.to_dict() if data.artifacts else None,
        )
        if updated is None:
            raise RunNotFoundError(run_id)
        console.print(f"[green]Run {updated.run_id} -> {updated.status.value}[/green]")

    _execute(run)


@run_app.command("list")
def run_list(
    job_id: Optional[str] = typer.Option(None, help="Filter by job id"),
    board: Optional[str] = typer.Option(None, help="Filter by board"),
):
    """List application runs"""

    async def run(services: Services):
        runs = await services.queries.runs(job_id=job_id, board=board)

        table = Table(title=f"Runs ({len(runs)})")
        table.add_column("Run ID", style="dim")
        table.add_column("Job")
        table.add_column("Variant")
        table.add_column("Status")
        table.add_column("Started")
        table.add_column("Error")

        for job_run in runs:
            table.add_row(
                job_run.run_id,
                f"{job_run.board}:{job_run.job_id}",
                job_run.variant_id,
                job_run.status.value,
                job_run.started_at.strftime("%Y-%m-%d %H:%M:%S") if job_run.started_at else "",
                job_run.error or "",
            )

        console.print(table)

    _execute(run)


@run_app.command("unlock")
def run_unlock(
    board: str = typer.Argument(..., help="Board id"),
    job_id: str = typer.Argument(..., help="Job id"),
    run_id: Optional[str] = typer.Option(None, help="Only release if held by this run"),
):
    """Release a job's apply lock"""

    async def run(services: Services):
        if await services.coordinator.release_lock(board, job_id, run_id):
            console.print(f"[green]Lock released: {board}:{job_id}[/green]")
        else:
            console.print(f"[yellow]No matching lock on {board}:{job_id}[/yellow]")

    _execute(run)


# ==================================================================
# Users
# ==================================================================


@user_app.command("set")
def user_set(
    user_id: str = typer.Argument(..., help="User id"),
    tag: list[str] = typer.Option([], help="Interest tag (repeatable)"),
    resume: list[str] = typer.Option([], help="Resume reference (repeatable)"),
    answer: list[str] = typer.Option([], help="Stock answer as KEY=VALUE (repeatable)"),
):
    """Create or replace a user profile"""

    async def run(services: Services):
        data = validate_input(UserInput, {
            "id": user_id,
            "tags": tag,
            "resumes": resume,
            "answers": _parse_answers(answer),
        })
        user = await services.entities.upsert_user(
            data.id, resumes=data.resumes, answers=data.answers, tags=data.tags
        )
        console.print(f"[green]User saved: {user.id}[/green]")
        console.print(f"Tags: {', '.join(sorted(user.tags)) or '-'}")

    _execute(run)


@user_app.command("list")
def user_list():
    """List user profiles"""

    async def run(services: Services):
        users = await services.entities.list_users()

        table = Table(title="Users")
        table.add_column("ID", style="dim")
        table.add_column("Tags")
        table.add_column("Resumes")
        table.add_column("Answers")

        for user in users:
            table.add_row(
                user.id,
                ", ".join(sorted(user.tags)),
                str(len(user.resumes)),
                str(len(user.answers)),
            )

        console.print(table)

    _execute(run)


# ==================================================================
# Operations
# ==================================================================


@app.command()
def crawl(
    boards: Optional[list[str]] = typer.Argument(None, help="Boards to crawl (default: all)"),
):
    """Fetch postings from ATS boards"""

    async def run(services: Services):
        crawler = BoardCrawler(services.entities)
        if boards:
            reports = [await crawler.crawl(board_id) for board_id in boards]
        else:
            reports = await crawler.crawl_all()

        table = Table(title="Crawl Results")
        table.add_column("Board", style="dim")
        table.add_column("ATS")
        table.add_column("Fetched")
        table.add_column("New")
        table.add_column("Error")

        for report in reports:
            table.add_row(
                report.board,
                report.ats,
                str(report.fetched),
                str(len(report.inserted)),
                report.error or "",
            )

        console.print(table)

    _execute(run)


@app.command()
def reconcile(
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without changing anything"),
):
    """Recover queued jobs whose apply lock expired"""

    async def run(services: Services):
        report = await LockReconciler(services.coordinator).sweep(dry_run=dry_run)

        prefix = "[yellow]Dry run:[/yellow] " if dry_run else ""
        console.print(f"{prefix}examined {report.examined} queued jobs, {report.locked} still locked")
        for key in report.reverted_jobs:
            console.print(f"  reverted {key} -> discovered")
        for run_id in report.expired_runs:
            console.print(f"  expired run {run_id}")
        for key in report.waiting:
            console.print(f"  waiting on {key}")
        for key in report.skipped:
            console.print(f"  skipped {key}, changed during sweep")

    _execute(run)


@app.command()
def health():
    """Check the store connection"""

    async def run(services: Services):
        status = await services.store.health_check()
        if not status["healthy"]:
            console.print(f"[red]Store: unhealthy ({status.get('error')})[/red]")
            raise typer.Exit(1)
        console.print(f"[green]Store: healthy, {status['keys']} keys[/green]")

    _execute(run)


if __name__ == "__main__":
    app()
