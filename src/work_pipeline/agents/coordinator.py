"""Action-queue coordinator: the only mutator of the agent registry and backlog.

Every input (timer ticks, operator commands, process-completion notices) arrives
as an action on one queue and is handled to completion before the next one, so
registry, backlog and the claimed-item set need no locks.
"""

from __future__ import annotations

import logging
import os
import queue
import signal
import threading
from collections.abc import Callable
from pathlib import Path

from work_pipeline.agents.activity import ActivityLog
from work_pipeline.agents.actions import (
    Action,
    AgentReplied,
    AgentReplyFailed,
    ClearAgent,
    ClearLogs,
    CreateTask,
    DispatchItem,
    MessageAgent,
    ProcessExited,
    RefreshBacklog,
    SelectBoard,
    SetAutoMode,
    Shutdown,
    Tick,
)
from work_pipeline.agents.dispatch import AgentDispatcher, DispatchHandle
from work_pipeline.agents.errors import AgentPipelineError
from work_pipeline.agents.models import AgentName, AgentStatus, ChatMessage, WorkItem
from work_pipeline.agents.store import AgentStore
from work_pipeline.providers.base import BoardInfo, ProviderError, WorkItemProvider
from work_pipeline.providers.local import LOCAL_SOURCE

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
_FEEDBACK_STATUSES = (AgentStatus.DONE, AgentStatus.ERROR)


class AgentCoordinator:
    """Reconciles agent state on ticks and serializes every registry mutation."""

    def __init__(  # noqa: PLR0913
        self,
        store: AgentStore,
        dispatcher: AgentDispatcher,
        activity: ActivityLog,
        providers: list[WorkItemProvider] | None = None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        auto_mode: bool = False,
        actions: queue.Queue[Action] | None = None,
        on_notice: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.activity = activity
        self.providers = list(providers or [])
        self.actions: queue.Queue[Action] = actions if actions is not None else dispatcher.actions
        self.max_retries = max_retries
        self.auto_mode = auto_mode
        self.backlog: list[WorkItem] = []
        self.boards: list[BoardInfo] = []
        self.dispatched_item_ids: set[str] = set()
        # agent -> epoch of a run whose monitor has not reported back yet
        self.pending_exits: dict[AgentName, int] = {}
        self.conversation: list[ChatMessage] = []
        self.waiting_for_reply = False
        self.ticks = 0
        self._on_notice = on_notice or (lambda _msg: None)
        self._stopped = False

    # -- queue plumbing --------------------------------------------------------

    def submit(self, action: Action) -> None:
        self.actions.put(action)

    def process_pending(self) -> int:
        """Handle every action already queued; return how many were handled."""

        handled = 0
        while True:
            try:
                action = self.actions.get_nowait()
            except queue.Empty:
                return handled
            self.handle(action)
            handled += 1

    def run(
        self,
        *,
        stop: threading.Event | None = None,
        max_ticks: int | None = None,
        poll_seconds: float = 0.5,
    ) -> None:
        """Consume actions until ``Shutdown``, ``stop`` is set, or ``max_ticks`` ticks ran."""

        self._stopped = False
        while not self._stopped:
            if stop is not None and stop.is_set():
                return
            if max_ticks is not None and self.ticks >= max_ticks:
                return
            try:
                action = self.actions.get(timeout=poll_seconds)
            except queue.Empty:
                continue
            self.handle(action)

    def handle(self, action: Action) -> None:
        """Apply one action; failures are reported and never escape the loop."""

        try:
            self._handle(action)
        except (AgentPipelineError, ProviderError) as error:
            logger.warning("Action %s failed: %s", type(action).__name__, error)
            self._notice(str(error))
        except Exception:
            logger.exception("Unexpected error handling %s", type(action).__name__)

    def _handle(self, action: Action) -> None:  # noqa: C901, PLR0912
        if isinstance(action, Tick):
            self.handle_tick()
        elif isinstance(action, ProcessExited):
            self.handle_process_exited(action)
        elif isinstance(action, RefreshBacklog):
            self.refresh_backlog()
        elif isinstance(action, SelectBoard):
            self.select_board(action.board_id)
        elif isinstance(action, DispatchItem):
            self.dispatch_selected(action.item_id)
        elif isinstance(action, ClearAgent):
            self.clear_agent(action.agent)
        elif isinstance(action, ClearLogs):
            self.clear_logs(action.agent)
        elif isinstance(action, SetAutoMode):
            self.set_auto_mode(enabled=action.enabled)
        elif isinstance(action, CreateTask):
            self.create_task(action.title, action.description)
        elif isinstance(action, MessageAgent):
            self.message_agent(action.agent, action.text)
        elif isinstance(action, AgentReplied):
            self.waiting_for_reply = False
            self.conversation.append(ChatMessage.from_agent(action.agent, action.text))
        elif isinstance(action, AgentReplyFailed):
            self.waiting_for_reply = False
            self.conversation.append(
                ChatMessage.system(f"{action.agent.display_name} error: {action.error}"),
            )
        elif isinstance(action, Shutdown):
            self._stopped = True
        else:
            raise TypeError(f"Unsupported action: {action!r}")

    # -- tick reconciliation ---------------------------------------------------

    def handle_tick(self) -> None:
        self.ticks += 1
        self.store.reload()
        self._release_done_agents()
        if not self.auto_mode:
            return
        self._retry_failed_agents()
        self.auto_dispatch()

    def _release_done_agents(self) -> None:
        for agent in self.store.get_all():
            if agent.status != AgentStatus.DONE:
                continue
            self.activity.record(
                agent.name,
                "released",
                work_item_id=agent.work_item_id,
                work_item_title=agent.work_item_title,
            )
            self.store.release(agent.name)

    def _retry_failed_agents(self) -> None:
        for agent in self.store.get_all():
            if agent.status != AgentStatus.ERROR:
                continue
            name = agent.name
            if self.pending_exits.get(name) == agent.epoch:
                # the run finished but its exit notice is still queued
                continue
            item_id = agent.work_item_id
            retry_count = self.store.increment_retry(name)
            if retry_count > self.max_retries:
                self.activity.record(
                    name,
                    "max-retries",
                    work_item_id=item_id,
                    work_item_title=agent.work_item_title,
                    message="Max retries reached",
                )
                if item_id is not None:
                    self.dispatched_item_ids.add(item_id)
                self.store.release(name)
                continue

            self.activity.record(
                name,
                "retry",
                work_item_id=item_id,
                work_item_title=agent.work_item_title,
                message=f"Retry {retry_count}/{self.max_retries}",
            )
            item = self._find_item(item_id) if item_id else None
            if item is None:
                self.activity.record(
                    name,
                    "released",
                    work_item_id=item_id,
                    work_item_title=agent.work_item_title,
                    message="Work item no longer in backlog",
                )
                self.store.release(name)
                continue
            self._try_dispatch(name, item)

    def auto_dispatch(self) -> int:
        """Pair free agents with unclaimed backlog items in order; return dispatch attempts."""

        attempts = 0
        while True:
            agent = self.store.next_free_agent()
            if agent is None:
                return attempts
            item = self._next_unclaimed_item()
            if item is None:
                return attempts
            self.dispatched_item_ids.add(item.id)
            attempts += 1
            if self._try_dispatch(agent, item) is not None:
                self._move_to_in_progress(item)

    def _next_unclaimed_item(self) -> WorkItem | None:
        for item in self.backlog:
            if item.id in self.dispatched_item_ids:
                continue
            if self.store.assigned_agent(item.id) is not None:
                continue
            return item
        return None

    def _try_dispatch(self, agent: AgentName, item: WorkItem) -> DispatchHandle | None:
        try:
            handle = self.dispatcher.dispatch(agent, item)
        except AgentPipelineError as error:
            self._notice(f"Dispatch failed: {error}")
            return None
        self.pending_exits[agent] = handle.epoch
        return handle

    # -- process completion ----------------------------------------------------

    def handle_process_exited(self, action: ProcessExited) -> None:
        if self.pending_exits.get(action.agent) == action.epoch:
            del self.pending_exits[action.agent]
        self.store.reload()
        agent = self.store.get(action.agent)
        if agent.epoch != action.epoch or agent.status not in (
            AgentStatus.WORKING,
            AgentStatus.ERROR,
        ):
            logger.info(
                "Ignoring stale exit of %s (epoch %s, current %s, status %s)",
                action.agent.value,
                action.epoch,
                agent.epoch,
                agent.status.value,
            )
            return

        if not action.success:
            self.store.mark_error(action.agent, "Process failed")
            return

        item = self._find_item(agent.work_item_id) if agent.work_item_id else None
        if item is not None:
            self._move_to_done(item)
        self.store.mark_done(action.agent)

    # -- manual operations -----------------------------------------------------

    def dispatch_selected(self, item_id: str) -> DispatchHandle | None:
        item = self._find_item(item_id)
        if item is None:
            self._notice(f"Unknown work item: {item_id}")
            return None
        holder = self.store.assigned_agent(item.id)
        if holder is not None:
            self._notice(f"{item.id} is already assigned to {holder.display_name}")
            return None
        agent = self.store.next_free_agent()
        if agent is None:
            self._notice("All agents busy")
            return None

        self.dispatched_item_ids.add(item.id)
        handle = self._try_dispatch(agent, item)
        if handle is not None:
            self._move_to_in_progress(item)
            self._notice(f"{item.id} dispatched to {agent.display_name}")
        return handle

    def clear_agent(self, name: AgentName) -> None:
        agent = self.store.get(name)
        if agent.status == AgentStatus.IDLE:
            self._notice(f"{name.display_name} is already idle")
            return

        if agent.pid is not None:
            _terminate(agent.pid)
        self.pending_exits.pop(name, None)
        if agent.work_item_id is not None:
            self.dispatched_item_ids.discard(agent.work_item_id)

        work_item_id, work_item_title = agent.work_item_id, agent.work_item_title
        self.store.release(name)
        self.activity.record(
            name,
            "cleared",
            work_item_id=work_item_id,
            work_item_title=work_item_title,
            message="Agent cleared by user",
        )
        self._notice(f"{name.display_name} cleared")

    def clear_logs(self, name: AgentName) -> None:
        self.activity.clear(name)
        self.activity.record(name, "logs-cleared", message="Activity log cleared")
        self._notice(f"Cleared logs for {name.display_name}")

    def set_auto_mode(self, *, enabled: bool) -> None:
        self.auto_mode = enabled
        mode = "AUTO" if enabled else "MANUAL"
        self.activity.record(
            next(iter(AgentName)),
            "mode-change",
            message=f"Switched to {mode} mode",
        )
        self._notice(f"Mode: {mode}")

    def refresh_backlog(self) -> list[WorkItem]:
        """Reload the backlog from every provider; one failing provider never hides the rest."""

        items: list[WorkItem] = []
        errors: list[str] = []
        for provider in self.providers:
            try:
                items.extend(provider.fetch_items())
            except ProviderError as error:
                errors.append(str(error))
        if errors:
            self._notice(f"Fetch error: {'; '.join(errors)}")
        self.backlog = items
        return items

    def list_boards(self) -> list[BoardInfo]:
        """Collect the boards every provider offers; failing providers are reported and skipped."""

        boards: list[BoardInfo] = []
        errors: list[str] = []
        for provider in self.providers:
            try:
                boards.extend(provider.list_boards())
            except ProviderError as error:
                errors.append(str(error))
        if errors:
            self._notice(f"Fetch error: {'; '.join(errors)}")
        self.boards = boards
        return boards

    def select_board(self, board_id: str) -> bool:
        """Narrow the owning provider to ``board_id`` and reload the backlog."""

        boards = self.boards or self.list_boards()
        board = next((candidate for candidate in boards if candidate.id == board_id), None)
        if board is None:
            self._notice(f"Unknown board: {board_id}")
            return False
        for provider in self.providers:
            if provider.name == board.source:
                provider.set_board_filter(board.id)
        self._notice(f"Board: {board.name}")
        self.refresh_backlog()
        return True

    def create_task(self, title: str, description: str | None = None) -> WorkItem | None:
        title = title.strip()
        if not title:
            return None
        self.conversation.append(ChatMessage.user(f"New task: {title}"))

        created: WorkItem | None = None
        for provider in self.providers:
            try:
                created = provider.create_item(title, description)
            except ProviderError as error:
                self.conversation.append(ChatMessage.system(f"Failed to create task: {error}"))
                continue
            if created is not None:
                break

        if created is None:
            created = WorkItem(
                id=f"LOCAL-{len(self.backlog) + 1}",
                title=title,
                description=description,
                status="Todo",
                source=LOCAL_SOURCE,
            )
        self.backlog.append(created)
        self.conversation.append(ChatMessage.system(f"Task created: {created.title}"))
        if not self.auto_mode:
            self._notice(f"New task added: {created.id}")
        return created

    def message_agent(self, name: AgentName, text: str) -> threading.Thread | None:
        """Send ``text`` to an agent on a background thread; the reply arrives as an action."""

        text = text.strip()
        if not text:
            self.conversation.append(
                ChatMessage.system(f"Send a message: @{name.value} <your message>"),
            )
            return None

        agent = self.store.get(name)
        work_dir = Path(agent.worktree_path or self.dispatcher.repo_root)
        if not work_dir.is_dir():
            work_dir = self.dispatcher.repo_root
        task_context = agent.work_item_title
        is_working = agent.status == AgentStatus.WORKING
        is_feedback = agent.status in _FEEDBACK_STATUSES

        self.conversation.append(ChatMessage.user(f"@{name.value} {text}"))
        if is_working:
            self.conversation.append(
                ChatMessage.system(
                    f"{name.display_name} is currently working; answering without edits.",
                ),
            )
        self.activity.record(
            name,
            "user-message",
            work_item_title=task_context,
            message=text,
        )
        self.waiting_for_reply = True

        def _converse() -> None:
            try:
                if is_feedback:
                    reply = self.dispatcher.apply_feedback(
                        name,
                        text,
                        work_dir,
                        task_context or "No specific task",
                    )
                else:
                    reply = self.dispatcher.message(name, text, work_dir, task_context)
            except AgentPipelineError as error:
                self.actions.put(AgentReplyFailed(agent=name, error=str(error)))
            else:
                self.actions.put(AgentReplied(agent=name, text=reply))

        worker = threading.Thread(target=_converse, daemon=True, name=f"agent-chat-{name.value}")
        worker.start()
        return worker

    # -- providers -------------------------------------------------------------

    def _provider_for(self, item: WorkItem) -> WorkItemProvider | None:
        for provider in self.providers:
            if provider.name == item.source:
                return provider
        return None

    def _move_to_in_progress(self, item: WorkItem) -> None:
        provider = self._provider_for(item)
        if provider is None or item.source_id is None:
            return
        try:
            provider.move_to_in_progress(item.source_id)
        except ProviderError as error:
            self._notice(f"Failed to move {item.id} to in-progress: {error}")

    def _move_to_done(self, item: WorkItem) -> None:
        provider = self._provider_for(item)
        if provider is None or item.source_id is None:
            return
        try:
            provider.move_to_done(item.source_id)
        except ProviderError as error:
            self._notice(f"Failed to move {item.id} to done: {error}")
            return
        self._notice(f"{item.id} moved to done")

    # -- helpers ---------------------------------------------------------------

    def _find_item(self, item_id: str) -> WorkItem | None:
        for item in self.backlog:
            if item.id == item_id:
                return item
        return None

    def _notice(self, message: str) -> None:
        logger.info("%s", message)
        self._on_notice(message)


class Ticker:
    """Daemon thread that puts ``Tick`` on the queue at a fixed interval."""

    def __init__(self, actions: queue.Queue[Action], interval_seconds: float) -> None:
        self.actions = actions
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="agent-ticker")
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval_seconds + 1)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(timeout=self.interval_seconds):
            self.actions.put(Tick())


def _terminate(pid: int) -> None:
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        logger.debug("Process %s already gone", pid)
    except PermissionError as error:
        logger.warning("Cannot terminate process %s: %s", pid, error)
