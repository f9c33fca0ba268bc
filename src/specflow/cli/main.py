"""specflow CLI for the change lifecycle.

Subcommands:
    propose    Open a change against a feature
    plan       Create a change's tasks from a JSON plan file
    ready      List tasks that can be worked on now
    blocked    List open tasks and what blocks them
    advance    Show the next ready task of a change
    complete   Merge a delta file and complete a change
    archive    Drop a completed change's bookkeeping
    status     Show a change's state and task progress
    list       List live changes
    task       Start, close, or reopen a task
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum
from pathlib import Path

import typer

from specflow.config import SpecflowConfig, load_config
from specflow.document.markdown import parse_delta
from specflow.document.store import FileDocumentStore
from specflow.errors import SpecflowError
from specflow.graph.factory import create_store
from specflow.graph.models import Task, TaskStatus
from specflow.graph.protocol import TaskGraphStore
from specflow.workflow.coordinator import WorkflowCoordinator
from specflow.workflow.models import TaskSpec
from specflow.workflow.registry import ChangeRegistry

app = typer.Typer(name="specflow", no_args_is_help=True)
task_app = typer.Typer(name="task", help="Start, close, or reopen tasks.")
app.add_typer(task_app)


class Verbosity(StrEnum):
    quiet = "quiet"
    normal = "normal"
    verbose = "verbose"


def resolve_verbosity(verbose: bool, quiet: bool) -> Verbosity:
    """Resolve --verbose/--quiet flags into a Verbosity level."""
    if verbose and quiet:
        raise typer.BadParameter("--verbose and --quiet are mutually exclusive")
    if verbose:
        return Verbosity.verbose
    if quiet:
        return Verbosity.quiet
    return Verbosity.normal


def configure_logging(verbosity: Verbosity, default_level: str = "WARNING") -> None:
    if verbosity == Verbosity.verbose:
        level = logging.DEBUG
    elif verbosity == Verbosity.quiet:
        level = logging.ERROR
    else:
        level = logging.getLevelName(default_level)
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def get_config() -> SpecflowConfig:
    """Return the configuration for this invocation."""
    return load_config()


def build_coordinator(config: SpecflowConfig) -> WorkflowCoordinator:
    """Wire the store, document store, and registry named by ``config``."""
    store = create_store(config.store, config.graph_root)
    return WorkflowCoordinator(
        store=store,
        documents=FileDocumentStore(config.specs_dir),
        registry=ChangeRegistry(config.changes_path),
        lock_dir=config.locks_dir,
    )


def load_plan(path: Path) -> list[TaskSpec]:
    """Read task specs from a JSON file: a list, or ``{"tasks": [...]}``."""
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        data = data.get("tasks", [])
    if not isinstance(data, list):
        raise ValueError(f"Plan file {path} must hold a list of tasks")
    for idx, item in enumerate(data):
        _check_plan_entry(item, f"{path} task {idx + 1}")
    return [TaskSpec.from_dict(item) for item in data]


def _check_plan_entry(item: object, where: str) -> None:
    if not isinstance(item, dict):
        raise ValueError(f"{where}: expected an object")
    title = item.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValueError(f"{where}: 'title' must be a non-empty string")
    for name in ("key", "description"):
        if name in item and not isinstance(item[name], str):
            raise ValueError(f"{where}: '{name}' must be a string")
    priority = item.get("priority", 1)
    if not isinstance(priority, int) or isinstance(priority, bool):
        raise ValueError(f"{where}: 'priority' must be an integer")
    for name in ("blocked_by", "labels"):
        values = item.get(name, [])
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise ValueError(f"{where}: '{name}' must be a list of strings")


def format_task(task: Task) -> str:
    labels = ", ".join(sorted(task.labels))
    label_info = f" [{labels}]" if labels else ""
    return f"  {task.task_id} (P{task.priority}, {task.status}): {task.title}{label_info}"


@contextmanager
def _report_errors() -> Iterator[None]:
    """Print the error kind and exit non-zero on any failure."""
    try:
        yield
    except SpecflowError as exc:
        typer.echo(f"Error [{exc.kind}]: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except (ValueError, OSError) as exc:
        typer.echo(f"Error [{type(exc).__name__}]: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _coordinator() -> WorkflowCoordinator:
    with _report_errors():
        return build_coordinator(get_config())


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show errors."),
) -> None:
    """Track feature changes from proposal to a merged specification."""
    verbosity = resolve_verbosity(verbose=verbose, quiet=quiet)
    with _report_errors():
        config = get_config()
    configure_logging(verbosity, config.log_level)


@app.command()
def propose(
    feature: str = typer.Argument(..., help="Feature the change applies to."),
    name: str = typer.Argument(..., help="Change name, unique within the feature."),
    scope: str = typer.Option("", help="One-line description of the change."),
) -> None:
    """Open a change against a feature."""
    coordinator = _coordinator()
    with _report_errors():
        change_id = coordinator.propose(feature, name, scope)
        change = coordinator.get_change(change_id)
    typer.echo(f"Proposed {change_id} (epic {change.epic_id})")


@app.command()
def plan(
    change_id: str = typer.Argument(..., help="Change id as feature/name."),
    file: Path = typer.Option(..., "--file", "-f", help="JSON plan file."),
) -> None:
    """Create a change's tasks from a JSON plan file."""
    coordinator = _coordinator()
    with _report_errors():
        specs = load_plan(file)
        task_ids = coordinator.plan(change_id, specs)
    typer.echo(f"Planned {change_id}: {len(task_ids)} tasks")
    for spec, task_id in zip(specs, task_ids, strict=True):
        typer.echo(f"  {task_id}: {spec.title}")


@app.command()
def ready(
    change_id: str | None = typer.Argument(None, help="Limit to one change."),
    label: str | None = typer.Option(None, help="Limit to tasks with this label."),
) -> None:
    """List tasks that can be worked on now."""
    coordinator = _coordinator()
    with _report_errors():
        if change_id:
            tasks = coordinator.ready(change_id)
        else:
            tasks = coordinator.store.ready(label=label)
    if not tasks:
        typer.echo("No ready tasks.")
        return
    for task in tasks:
        typer.echo(format_task(task))


@app.command()
def blocked(
    label: str | None = typer.Option(None, help="Limit to tasks with this label."),
) -> None:
    """List open tasks and what blocks them."""
    coordinator = _coordinator()
    with _report_errors():
        entries = coordinator.store.blocked(label=label)
    if not entries:
        typer.echo("No blocked tasks.")
        return
    for entry in entries:
        typer.echo(f"{format_task(entry.task)} <- {', '.join(entry.blocked_by)}")


@app.command()
def advance(
    change_id: str = typer.Argument(..., help="Change id as feature/name."),
) -> None:
    """Show the next ready task of a change."""
    coordinator = _coordinator()
    with _report_errors():
        task = coordinator.advance(change_id)
    if task is None:
        typer.echo("No ready tasks.")
        return
    typer.echo(f"Next: {task.task_id}: {task.title}")


@app.command()
def complete(
    change_id: str = typer.Argument(..., help="Change id as feature/name."),
    delta_file: Path = typer.Option(..., "--delta", "-d", help="Markdown delta file."),
) -> None:
    """Merge a delta file into the feature specification and complete a change."""
    coordinator = _coordinator()
    with _report_errors():
        delta = parse_delta(delta_file.read_text())
        result = coordinator.complete(change_id, delta)
    for warning in result.warnings:
        typer.echo(f"  WARNING: {warning}")
    typer.echo(f"Completed {change_id}: {result.entry.summary}")


@app.command()
def archive(
    change_id: str = typer.Argument(..., help="Change id as feature/name."),
) -> None:
    """Drop a completed change's bookkeeping."""
    coordinator = _coordinator()
    with _report_errors():
        coordinator.archive(change_id)
    typer.echo(f"Archived {change_id}")


@app.command()
def status(
    change_id: str = typer.Argument(..., help="Change id as feature/name."),
) -> None:
    """Show a change's state and task progress."""
    coordinator = _coordinator()
    with _report_errors():
        change_status = coordinator.status(change_id)
    change = change_status.change
    progress = change_status.progress
    typer.echo(f"{change.change_id}: {change.state}")
    typer.echo(
        f"  tasks: {progress.closed_count} closed, {progress.in_progress_count} in progress, "
        f"{progress.open_count} open ({progress.percent_closed:.0f}% closed)"
    )


@app.command(name="list")
def list_cmd(
    feature: str | None = typer.Option(None, help="Limit to one feature."),
) -> None:
    """List live changes."""
    coordinator = _coordinator()
    with _report_errors():
        changes = coordinator.list_changes(feature)
    if not changes:
        typer.echo("No changes found.")
        return
    for change in changes:
        scope = f" - {change.scope}" if change.scope else ""
        typer.echo(f"  {change.change_id}: {change.state}{scope}")


def _set_status(task_id: str, status: TaskStatus) -> None:
    store: TaskGraphStore = _coordinator().store
    with _report_errors():
        store.update_status(task_id, status)
    typer.echo(f"{task_id}: {status}")


@task_app.command("start")
def task_start(task_id: str = typer.Argument(..., help="Task id.")) -> None:
    """Mark a task in progress."""
    _set_status(task_id, TaskStatus.in_progress)


@task_app.command("close")
def task_close(task_id: str = typer.Argument(..., help="Task id.")) -> None:
    """Close a task. Closed tasks cannot be reopened."""
    _set_status(task_id, TaskStatus.closed)


@task_app.command("reopen")
def task_reopen(task_id: str = typer.Argument(..., help="Task id.")) -> None:
    """Return an in-progress task to open."""
    _set_status(task_id, TaskStatus.open)


if __name__ == "__main__":
    app()
