"""Dispatch work items to agents: provision a worktree, launch the engine, monitor it."""

from __future__ import annotations

import dataclasses
import logging
import queue
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

from work_pipeline.agents.activity import ActivityLog
from work_pipeline.agents.actions import Action, ProcessExited
from work_pipeline.agents.engine import EngineRunner
from work_pipeline.agents.errors import AgentPipelineError, PersistenceError
from work_pipeline.agents.models import AgentName, WorkItem
from work_pipeline.agents.naming import branch_name, worktree_path
from work_pipeline.agents.prompts import (
    build_feedback_prompt,
    build_message_prompt,
    build_task_prompt,
    write_context_file,
)
from work_pipeline.agents.store import AgentStore
from work_pipeline.agents.workspace import GitWorkspace

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchHandle:
    """Launched run of one work item on one agent."""

    agent: AgentName
    item: WorkItem
    pid: int
    epoch: int
    branch: str
    worktree_path: Path
    monitor: threading.Thread


class AgentDispatcher:
    """Provisions workspaces and launches engine runs on behalf of the coordinator.

    Registry mutations go through ``store``; monitor threads only append to the
    activity log and report completion through ``actions``.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: AgentStore,
        activity: ActivityLog,
        engine: EngineRunner,
        actions: queue.Queue[Action],
        repo_root: Path,
        logs_dir: Path,
        *,
        remote: str = "origin",
        base_branch: str = "main",
        context_filename: str = "CLAUDE.md",
    ) -> None:
        self.store = store
        self.activity = activity
        self.engine = engine
        self.actions = actions
        self.repo_root = repo_root
        self.logs_dir = logs_dir
        self.context_filename = context_filename
        self.workspace = GitWorkspace(repo_root, remote=remote, base_branch=base_branch)

    def agent_log_path(self, agent: AgentName) -> Path:
        return self.logs_dir / f"agent-{agent.value}.log"

    def dispatch(self, agent: AgentName, item: WorkItem) -> DispatchHandle:
        """Provision ``agent``'s worktree for ``item`` and start the engine in it.

        On failure the agent is moved to Error with the failure message before the
        error propagates, so the retry path can pick it up on the next tick.
        """

        item = dataclasses.replace(item)
        branch = branch_name(agent, item.id, item.title)
        target = Path(worktree_path(self.repo_root, agent))

        epoch = self.store.mark_provisioning(agent, item.id, item.title, branch, str(target))
        self.activity.record(
            agent,
            "dispatched",
            work_item_id=item.id,
            work_item_title=item.title,
        )

        try:
            self.workspace.provision(branch=branch, worktree_path=target)
            write_context_file(target, agent, filename=self.context_filename)
            prompt = build_task_prompt(item, agent, context_filename=self.context_filename)
            process = self.engine.spawn(
                prompt=prompt,
                work_dir=target,
                log_path=self.agent_log_path(agent),
            )
        except AgentPipelineError as error:
            self._record_failure(agent, item, str(error))
            raise
        except Exception as error:
            self._record_failure(agent, item, f"Unexpected dispatch error: {error}")
            raise

        try:
            self.store.mark_working(agent, process.pid)
        except PersistenceError as error:
            process.terminate()
            self._record_failure(agent, item, str(error))
            raise

        self.activity.record(
            agent,
            "working",
            work_item_id=item.id,
            work_item_title=item.title,
        )
        logger.info("Agent %s working on %s (pid=%s)", agent.value, item.id, process.pid)

        monitor = threading.Thread(
            target=self._monitor,
            args=(process, agent, item, epoch),
            daemon=True,
            name=f"agent-monitor-{agent.value}",
        )
        monitor.start()
        return DispatchHandle(
            agent=agent,
            item=item,
            pid=process.pid,
            epoch=epoch,
            branch=branch,
            worktree_path=target,
            monitor=monitor,
        )

    def message(
        self,
        agent: AgentName,
        text: str,
        work_dir: Path,
        task_context: str | None = None,
    ) -> str:
        """Ask the agent a question in a short read-only engine run."""

        return self.engine.run(
            prompt=build_message_prompt(agent, text, task_context),
            work_dir=work_dir,
        )

    def apply_feedback(
        self,
        agent: AgentName,
        text: str,
        work_dir: Path,
        task_context: str,
    ) -> str:
        """Let the agent apply operator feedback to its worktree and summarize the change."""

        return self.engine.run(
            prompt=build_feedback_prompt(agent, text, task_context),
            work_dir=work_dir,
            unattended=True,
        )

    def _record_failure(self, agent: AgentName, item: WorkItem, message: str) -> None:
        logger.warning("Dispatch of %s to %s failed: %s", item.id, agent.value, message)
        try:
            self.store.mark_error(agent, message)
        except PersistenceError as error:
            logger.error("Could not record dispatch failure for %s: %s", agent.value, error)
        self.activity.record(
            agent,
            "error",
            work_item_id=item.id,
            work_item_title=item.title,
            message=message,
        )

    def _monitor(
        self,
        process: subprocess.Popen[bytes],
        agent: AgentName,
        item: WorkItem,
        epoch: int,
    ) -> None:
        try:
            returncode = process.wait()
        except OSError as error:
            success = False
            event, message = "error", f"Process error: {error}"
        else:
            success = returncode == 0
            event, message = ("done", None) if success else ("error", f"Exit code: {returncode}")

        self.activity.record(
            agent,
            event,
            work_item_id=item.id,
            work_item_title=item.title,
            message=message,
        )
        self.actions.put(ProcessExited(agent=agent, success=success, epoch=epoch))
