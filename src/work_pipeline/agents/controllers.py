"""Controllers for agent pool CLI commands."""

from __future__ import annotations

import logging
import queue
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from work_pipeline.agents.activity import ActivityLog
from work_pipeline.agents.actions import Action, RefreshBacklog, SelectBoard
from work_pipeline.agents.coordinator import AgentCoordinator, Ticker
from work_pipeline.agents.dispatch import AgentDispatcher
from work_pipeline.agents.engine import EngineRunner
from work_pipeline.agents.models import AgentName, AgentStatus
from work_pipeline.agents.personality import personality
from work_pipeline.agents.store import AgentStore
from work_pipeline.config import Settings
from work_pipeline.providers import create_providers
from work_pipeline.providers.base import WorkItemProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AgentsListCommand:
    """CLI input for the agent pool overview."""

    data_dir: Path | None


@dataclass(slots=True)
class AgentsLogCommand:
    """CLI input for the activity trail."""

    data_dir: Path | None
    agent: str | None
    limit: int


@dataclass(slots=True)
class AgentsMutateCommand:
    """CLI input for clear / clear-logs operations on one agent."""

    data_dir: Path | None
    agent: str


@dataclass(slots=True)
class AgentsBacklogCommand:
    data_dir: Path | None
    board: str | None = None


@dataclass(slots=True)
class AgentsBoardsCommand:
    data_dir: Path | None


@dataclass(slots=True)
class AgentsDispatchCommand:
    """CLI input for dispatching one backlog item."""

    data_dir: Path | None
    repo_root: Path | None
    item_id: str
    wait: bool
    board: str | None = None


@dataclass(slots=True)
class AgentsRunCommand:
    """CLI input for the long-running coordinator loop."""

    data_dir: Path | None
    repo_root: Path | None
    auto: bool | None
    max_ticks: int | None
    tasks: tuple[str, ...] = ()
    board: str | None = None


@dataclass(slots=True)
class AgentsMessageCommand:
    """CLI input for a one-off conversation with an agent."""

    data_dir: Path | None
    repo_root: Path | None
    agent: str
    text: str


class AgentsCliController:
    """Coordinates agent pool inspection, dispatch and loop CLI operations."""

    def __init__(
        self,
        provider_factory: Callable[[Settings], list[WorkItemProvider]] = create_providers,
    ) -> None:
        self._provider_factory = provider_factory

    def list_agents(self, command: AgentsListCommand) -> list[str]:
        settings = Settings.from_env(data_dir=command.data_dir)
        store = AgentStore(settings.registry_path)
        now = datetime.now(tz=UTC)
        lines = [f"Agents ({settings.registry_path}):"]
        for agent in store.get_all():
            line = f"- {agent.name.display_name:<8} {agent.status.value:<12}"
            if agent.work_item_id:
                line += f" {agent.work_item_id}"
                if agent.work_item_title:
                    line += f" {agent.work_item_title}"
            elapsed = agent.elapsed(now) if agent.status != AgentStatus.IDLE else None
            if elapsed is not None:
                line += f" ({_format_elapsed(elapsed)})"
            if agent.pid is not None:
                line += f" pid={agent.pid}"
            if agent.retry_count:
                line += f" retries={agent.retry_count}"
            if agent.error:
                line += f" error={agent.error}"
            lines.append(line)
            lines.append(f"    {personality(agent.name).tagline}")
        return lines

    def activity(self, command: AgentsLogCommand) -> list[str]:
        settings = Settings.from_env(data_dir=command.data_dir)
        agent = _parse_agent(command.agent) if command.agent else None
        events = ActivityLog(settings.activity_log_path).read(agent=agent, limit=command.limit)
        if not events:
            return ["No activity recorded."]
        lines = []
        for event in events:
            line = (
                f"{event.timestamp.astimezone().strftime('%Y-%m-%d %H:%M:%S')} "
                f"{event.agent.display_name:<8} {event.event}"
            )
            if event.work_item_id:
                line += f" {event.work_item_id}"
            if event.message:
                line += f": {event.message}"
            lines.append(line)
        return lines

    def clear_agent(self, command: AgentsMutateCommand) -> list[str]:
        settings = Settings.from_env(data_dir=command.data_dir)
        notices: list[str] = []
        coordinator = build_coordinator(settings, providers=[], on_notice=notices.append)
        coordinator.clear_agent(_parse_agent(command.agent))
        return notices

    def clear_logs(self, command: AgentsMutateCommand) -> list[str]:
        settings = Settings.from_env(data_dir=command.data_dir)
        notices: list[str] = []
        coordinator = build_coordinator(settings, providers=[], on_notice=notices.append)
        coordinator.clear_logs(_parse_agent(command.agent))
        return notices

    def backlog(self, command: AgentsBacklogCommand) -> list[str]:
        settings = Settings.from_env(data_dir=command.data_dir)
        notices: list[str] = []
        coordinator = build_coordinator(
            settings,
            providers=self._provider_factory(settings),
            on_notice=notices.append,
        )
        if not _load_backlog(coordinator, command.board):
            return notices
        items = coordinator.backlog
        lines = [*notices, f"Backlog: {len(items)} item(s)"]
        for item in items:
            line = f"- {item.id} [{item.source}] {item.title}"
            details = [value for value in (item.status, item.priority, item.team) if value]
            if details:
                line += f" ({', '.join(details)})"
            holder = coordinator.store.assigned_agent(item.id)
            if holder is not None:
                line += f" -> {holder.display_name}"
            lines.append(line)
        return lines

    def boards(self, command: AgentsBoardsCommand) -> list[str]:
        settings = Settings.from_env(data_dir=command.data_dir)
        notices: list[str] = []
        coordinator = build_coordinator(
            settings,
            providers=self._provider_factory(settings),
            on_notice=notices.append,
        )
        boards = coordinator.list_boards()
        lines = [*notices, f"Boards: {len(boards)}"]
        lines.extend(f"- {board.id} [{board.source}] {board.name}" for board in boards)
        return lines

    def dispatch(self, command: AgentsDispatchCommand) -> list[str]:
        settings = _agent_settings(command.data_dir, command.repo_root)
        notices: list[str] = []
        coordinator = build_coordinator(
            settings,
            providers=self._provider_factory(settings),
            on_notice=notices.append,
        )
        if not _load_backlog(coordinator, command.board):
            return notices
        handle = coordinator.dispatch_selected(command.item_id)
        if handle is None:
            return notices

        notices.append(f"Branch: {handle.branch}")
        notices.append(f"Worktree: {handle.worktree_path}")
        notices.append(f"Log: {coordinator.dispatcher.agent_log_path(handle.agent)}")
        if command.wait:
            handle.monitor.join()
            coordinator.process_pending()
            agent = coordinator.store.get(handle.agent)
            notices.append(f"{handle.agent.display_name} finished: {agent.status.value}")
        return notices

    def run(
        self,
        command: AgentsRunCommand,
        emit: Callable[[str], None] | None = None,
    ) -> list[str]:
        """Run the coordinator loop until interrupted or ``max_ticks`` ticks elapsed."""

        settings = _agent_settings(command.data_dir, command.repo_root)
        auto_mode = settings.agents.auto_mode if command.auto is None else command.auto
        coordinator = build_coordinator(
            settings,
            providers=self._provider_factory(settings),
            on_notice=emit,
        )
        coordinator.auto_mode = auto_mode
        if command.board is None:
            coordinator.handle(RefreshBacklog())
        else:
            coordinator.handle(SelectBoard(board_id=command.board))
        for title in command.tasks:
            coordinator.create_task(title)

        stop = threading.Event()
        ticker = Ticker(coordinator.actions, settings.agents.tick_seconds)
        ticker.start()
        try:
            with _signal_handlers(stop):
                coordinator.run(
                    stop=stop,
                    max_ticks=command.max_ticks,
                    poll_seconds=min(0.5, settings.agents.tick_seconds),
                )
        finally:
            ticker.stop()

        busy = [
            agent.name.display_name
            for agent in coordinator.store.get_all()
            if agent.status != AgentStatus.IDLE
        ]
        lines = [
            f"Coordinator stopped after {coordinator.ticks} tick(s) "
            f"in {'AUTO' if auto_mode else 'MANUAL'} mode.",
        ]
        if busy:
            lines.append(f"Agents still holding work: {', '.join(busy)}")
        return lines

    def message(self, command: AgentsMessageCommand) -> list[str]:
        settings = _agent_settings(command.data_dir, command.repo_root)
        coordinator = build_coordinator(settings, providers=[])
        worker = coordinator.message_agent(_parse_agent(command.agent), command.text)
        if worker is not None:
            worker.join()
            coordinator.process_pending()
        return [
            _render_chat_line(message.role, message.agent, message.text)
            for message in coordinator.conversation
        ]


def build_coordinator(
    settings: Settings,
    *,
    providers: list[WorkItemProvider] | None = None,
    on_notice: Callable[[str], None] | None = None,
    actions: queue.Queue[Action] | None = None,
) -> AgentCoordinator:
    """Wire store, activity log, engine and dispatcher from settings."""

    action_queue: queue.Queue[Action] = actions if actions is not None else queue.Queue()
    store = AgentStore(settings.registry_path)
    activity = ActivityLog(settings.activity_log_path)
    dispatcher = AgentDispatcher(
        store=store,
        activity=activity,
        engine=EngineRunner(
            command=settings.agents.engine_command,
            unattended_flag=settings.agents.engine_unattended_flag,
        ),
        actions=action_queue,
        repo_root=settings.agents.repo_root,
        logs_dir=settings.logs_dir,
        remote=settings.agents.remote,
        base_branch=settings.agents.base_branch,
        context_filename=settings.agents.context_filename,
    )
    return AgentCoordinator(
        store=store,
        dispatcher=dispatcher,
        activity=activity,
        providers=providers,
        actions=action_queue,
        max_retries=settings.agents.max_retries,
        auto_mode=settings.agents.auto_mode,
        on_notice=on_notice,
    )


def _agent_settings(data_dir: Path | None, repo_root: Path | None) -> Settings:
    settings = Settings.from_env(data_dir=data_dir)
    if repo_root is not None:
        settings.agents.repo_root = repo_root
    settings.validate_for_agents()
    return settings


def _load_backlog(coordinator: AgentCoordinator, board: str | None) -> bool:
    if board is None:
        coordinator.refresh_backlog()
        return True
    return coordinator.select_board(board)


def _parse_agent(value: str) -> AgentName:
    try:
        return AgentName(value.strip().lower())
    except ValueError as error:
        known = ", ".join(name.value for name in AgentName)
        raise ValueError(f"Unknown agent {value!r}; expected one of: {known}") from error


def _format_elapsed(elapsed: timedelta) -> str:
    seconds = max(0, int(elapsed.total_seconds()))
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{seconds:02d}s"
    return f"{seconds}s"


def _render_chat_line(role: str, agent: AgentName | None, text: str) -> str:
    if role == "agent" and agent is not None:
        return f"{agent.display_name}: {text}"
    if role == "user":
        return f"You: {text}"
    return f"* {text}"


@contextmanager
def _signal_handlers(stop: threading.Event) -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        logger.info("Received %s, stopping coordinator", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


__all__ = [
    "AgentsBacklogCommand",
    "AgentsBoardsCommand",
    "AgentsCliController",
    "AgentsDispatchCommand",
    "AgentsListCommand",
    "AgentsLogCommand",
    "AgentsMessageCommand",
    "AgentsMutateCommand",
    "AgentsRunCommand",
    "build_coordinator",
]
