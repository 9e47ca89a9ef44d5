from __future__ import annotations

import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .api.progress import summarize_progress
from .bootstrap import Container, build_container
from .config import Settings
from .errors import ServiceError
from .handoff import InMemoryHandoffQueue
from .logging_config import configure_logging
from .schemas import ProjectStatus

console = Console()


class CliState:
    """Lazily built container shared by the commands of one invocation."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._container: Optional[Container] = None

    @property
    def container(self) -> Container:
        if self._container is None:
            self._container = build_container(self.settings)
        return self._container


pass_state = click.make_pass_decorator(CliState)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="agent-builder", message="Agent Builder CLI %(version)s")
@click.option("--database-url", type=str, default=None, help="SQLAlchemy URL overriding the configured database.")
@click.option("--dry-run", is_flag=True, default=False, help="Use template specifications instead of the completion service.")
@click.option("--verbose", is_flag=True, default=False, help="Increase logging verbosity.")
@click.pass_context
def main(ctx: click.Context, database_url: Optional[str], dry_run: bool, verbose: bool) -> None:
    """Run and inspect the agent pipeline locally."""

    configure_logging(verbose=verbose, logger_name="agent_builder.cli")
    settings = Settings()
    if database_url:
        settings.database.url = database_url
    if dry_run:
        settings.dry_run = True
    ctx.obj = CliState(settings)


@main.command("init-db")
@pass_state
def init_db(state: CliState) -> None:
    """Create the database tables."""

    state.container
    console.print(f"Database ready at [bold]{state.settings.database.url}[/bold]")


@main.command("create-project")
@click.option("--owner", required=True, help="Owning user id.")
@click.option("--name", "project_name", required=True, help="Project name.")
@click.option("--prompt", "request_prompt", required=True, help="What the pipeline should build.")
@pass_state
def create_project(state: CliState, owner: str, project_name: str, request_prompt: str) -> None:
    """Create a project in PENDING state and print its id."""

    project = state.container.store.create_project(owner, project_name.strip(), request_prompt.strip())
    click.echo(project.project_id)


@main.command()
@click.argument("project_id")
@click.option("--local", is_flag=True, default=False, help="Process the queued stages in this process.")
@pass_state
def start(state: CliState, project_id: str, local: bool) -> None:
    """Start the pipeline for PROJECT_ID."""

    if local:
        state.settings.queue.backend = "memory"
    container = state.container
    try:
        result = container.orchestrator.start(project_id)
    except ServiceError as exc:
        raise click.ClickException(f"[{exc.code}] {exc.message}") from exc
    console.print(f"Project {result['project_id']} is [bold]{result['status']}[/bold]")
    if local:
        _drain(container)
        _print_status(container, project_id)


@main.command()
@click.argument("project_id")
@click.option("--task-id", default=None, help="Approve this task instead of the first one awaiting approval.")
@click.option("--local", is_flag=True, default=False, help="Process the queued stages in this process.")
@pass_state
def resume(state: CliState, project_id: str, task_id: Optional[str], local: bool) -> None:
    """Approve the stage awaiting review on PROJECT_ID and continue."""

    if local:
        state.settings.queue.backend = "memory"
    container = state.container
    try:
        result = container.orchestrator.resume(project_id, task_id)
    except ServiceError as exc:
        raise click.ClickException(f"[{exc.code}] {exc.message}") from exc
    console.print(f"Approved {result['approved_agent']}; project is [bold]{result['status']}[/bold]")
    if local:
        _drain(container)
        _print_status(container, project_id)


@main.command()
@click.option("--owner", default="local-user", show_default=True, help="Owning user id.")
@click.option("--name", "project_name", required=True, help="Project name.")
@click.option("--prompt", "request_prompt", required=True, help="What the pipeline should build.")
@pass_state
def run(state: CliState, owner: str, project_name: str, request_prompt: str) -> None:
    """Create a project and run every stage in this process."""

    state.settings.queue.backend = "memory"
    container = state.container
    project = container.store.create_project(owner, project_name.strip(), request_prompt.strip())
    container.orchestrator.start(project.project_id)
    _drain(container)
    _print_status(container, project.project_id)
    _print_artifacts(container, project.project_id)
    final = container.store.require_project(project.project_id)
    if final.status is ProjectStatus.FAILED:
        sys.exit(1)


@main.command()
@click.argument("project_id")
@pass_state
def status(state: CliState, project_id: str) -> None:
    """Show task progress for PROJECT_ID."""

    _print_status(state.container, project_id)


@main.command()
@click.argument("project_id")
@pass_state
def artifacts(state: CliState, project_id: str) -> None:
    """List the artifacts of PROJECT_ID in creation order."""

    _print_artifacts(state.container, project_id)


def _drain(container: Container) -> None:
    queue = container.queue
    if not isinstance(queue, InMemoryHandoffQueue):
        raise click.ClickException("Local processing needs the in-memory queue backend.")
    handled = queue.drain(container.processor.process)
    console.print(f"Processed {handled} hand-off message(s)")


def _print_status(container: Container, project_id: str) -> None:
    project = container.store.get_project(project_id)
    if project is None:
        raise click.ClickException(f"Project {project_id} not found")
    tasks = container.store.list_tasks(project_id)
    report = summarize_progress(project, tasks)

    table = Table(title=f"{project.project_name} ({project.status.value}, {report.progress}%)")
    table.add_column("Agent", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Progress", justify="right")
    table.add_column("Error")
    for task in tasks:
        table.add_row(task.assigned_agent, task.status.value, f"{task.progress}%", task.error_message or "")
    console.print(table)


def _print_artifacts(container: Container, project_id: str) -> None:
    table = Table(title="Artifacts")
    table.add_column("Type", no_wrap=True)
    table.add_column("Agent", no_wrap=True)
    table.add_column("Title")
    table.add_column("Location")
    for artifact in container.store.list_artifacts(project_id):
        table.add_row(artifact.artifact_type.value, artifact.agent_name, artifact.title, artifact.location)
    console.print(table)


if __name__ == "__main__":  # pragma: no cover
    main()
