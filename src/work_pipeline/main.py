"""CLI entrypoint for work-pipeline."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from work_pipeline import __version__
from work_pipeline.agents.controllers import (
    AgentsBacklogCommand,
    AgentsBoardsCommand,
    AgentsCliController,
    AgentsDispatchCommand,
    AgentsListCommand,
    AgentsLogCommand,
    AgentsMessageCommand,
    AgentsMutateCommand,
    AgentsRunCommand,
)
from work_pipeline.agents.models import AgentName
from work_pipeline.config import ConfigurationError

click.rich_click.USE_MARKDOWN = True
AGENTS_CONTROLLER = AgentsCliController()
AGENT_CHOICE = click.Choice([name.value for name in AgentName], case_sensitive=False)
BOARD_HELP = "Limit the matching tracker to this board id (see `agents boards`)."


@click.group()
@click.version_option(version=__version__, prog_name="work-pipeline")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def work_pipeline(log_level: str) -> None:
    """Dispatch tracker work items to a pool of coding agents."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@work_pipeline.group()
def agents() -> None:
    """Agent pool commands."""


@agents.command("list")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
def agents_list(data_dir: Path | None) -> None:
    """Show every agent with status, work item and elapsed time."""

    _emit_lines(AGENTS_CONTROLLER.list_agents(AgentsListCommand(data_dir=data_dir)))


@agents.command("log")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
@click.option("--agent", type=AGENT_CHOICE, default=None, help="Only events of this agent.")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=20,
    show_default=True,
    help="How many latest events to display.",
)
def agents_log(data_dir: Path | None, agent: str | None, limit: int) -> None:
    """Show the activity trail."""

    _emit_lines(
        AGENTS_CONTROLLER.activity(
            AgentsLogCommand(data_dir=data_dir, agent=agent, limit=limit),
        ),
    )


@agents.command("clear")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
@click.argument("agent", type=AGENT_CHOICE)
def agents_clear(data_dir: Path | None, agent: str) -> None:
    """Stop an agent's engine process and return it to idle."""

    _emit_lines(AGENTS_CONTROLLER.clear_agent(AgentsMutateCommand(data_dir=data_dir, agent=agent)))


@agents.command("clear-logs")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
@click.argument("agent", type=AGENT_CHOICE)
def agents_clear_logs(data_dir: Path | None, agent: str) -> None:
    """Drop an agent's events from the activity trail."""

    _emit_lines(AGENTS_CONTROLLER.clear_logs(AgentsMutateCommand(data_dir=data_dir, agent=agent)))


@agents.command("backlog")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
@click.option("--board", default=None, help=BOARD_HELP)
def agents_backlog(data_dir: Path | None, board: str | None) -> None:
    """Fetch and show open work items from the configured trackers."""

    _emit_lines(AGENTS_CONTROLLER.backlog(AgentsBacklogCommand(data_dir=data_dir, board=board)))


@agents.command("boards")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
def agents_boards(data_dir: Path | None) -> None:
    """List the boards (teams, projects) each tracker offers."""

    _emit_lines(AGENTS_CONTROLLER.boards(AgentsBoardsCommand(data_dir=data_dir)))


@agents.command("dispatch")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
@click.option(
    "--repo-root",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Main checkout; agent worktrees are created next to it.",
)
@click.option(
    "--wait/--no-wait",
    default=True,
    show_default=True,
    help=(
        "Block until the engine process exits. With --no-wait nothing observes the exit, "
        "so the agent is later found with a dead pid and marked as failed; a `run --auto` "
        "loop will then retry the item."
    ),
)
@click.option("--board", default=None, help=BOARD_HELP)
@click.argument("item_id")
def agents_dispatch(
    data_dir: Path | None,
    repo_root: Path | None,
    wait: bool,
    board: str | None,
    item_id: str,
) -> None:
    """Dispatch one backlog item to the first free agent and wait for the engine to finish."""

    _run_guarded(
        lambda: AGENTS_CONTROLLER.dispatch(
            AgentsDispatchCommand(
                data_dir=data_dir,
                repo_root=repo_root,
                item_id=item_id,
                wait=wait,
                board=board,
            ),
        ),
    )


@agents.command("run")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
@click.option(
    "--repo-root",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Main checkout; agent worktrees are created next to it.",
)
@click.option(
    "--auto/--manual",
    default=None,
    help="Auto-dispatch and retry on every tick. Defaults to WORK_PIPELINE_AUTO_MODE.",
)
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many ticks; runs until interrupted otherwise.",
)
@click.option(
    "--task",
    "tasks",
    multiple=True,
    help="Create a task before the loop starts. Can be repeated.",
)
@click.option("--board", default=None, help=BOARD_HELP)
def agents_run(
    data_dir: Path | None,
    repo_root: Path | None,
    auto: bool | None,
    max_ticks: int | None,
    tasks: tuple[str, ...],
    board: str | None,
) -> None:
    """Run the coordinator loop."""

    _run_guarded(
        lambda: AGENTS_CONTROLLER.run(
            AgentsRunCommand(
                data_dir=data_dir,
                repo_root=repo_root,
                auto=auto,
                max_ticks=max_ticks,
                tasks=tasks,
                board=board,
            ),
            emit=click.echo,
        ),
    )


@agents.command("message")
@click.option("--data-dir", type=click.Path(path_type=Path), default=None, help="State directory.")
@click.option(
    "--repo-root",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Fallback working directory when the agent has no worktree.",
)
@click.argument("agent", type=AGENT_CHOICE)
@click.argument("text")
def agents_message(data_dir: Path | None, repo_root: Path | None, agent: str, text: str) -> None:
    """Ask an agent a question, or send feedback on its finished work."""

    _run_guarded(
        lambda: AGENTS_CONTROLLER.message(
            AgentsMessageCommand(
                data_dir=data_dir,
                repo_root=repo_root,
                agent=agent,
                text=text,
            ),
        ),
    )


def _run_guarded(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except ConfigurationError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    work_pipeline()
