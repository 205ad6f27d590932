"""Persistent agent registry backed by a single JSON file."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from work_pipeline.agents.errors import PersistenceError
from work_pipeline.agents.models import Agent, AgentName, AgentStatus

logger = logging.getLogger(__name__)

STALE_PROCESS_ERROR = "Process exited unexpectedly"

_SLOT_KEYS = frozenset(name.value for name in AgentName)

_HOLDING_STATUSES = (
    AgentStatus.PROVISIONING,
    AgentStatus.WORKING,
    AgentStatus.DONE,
    AgentStatus.ERROR,
)


def is_process_alive(pid: int) -> bool:
    """Check process existence without delivering a signal."""

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class AgentStore:
    """Single-owner registry of pool slots mirrored to disk on every mutation."""

    def __init__(
        self,
        path: Path,
        *,
        process_alive: Callable[[int], bool] = is_process_alive,
    ) -> None:
        self.path = path
        self._process_alive = process_alive
        self._agents: dict[AgentName, Agent] = _default_agents()
        self.reload()

    def reload(self) -> None:
        """Re-read the registry file, then repair records whose process has died."""

        self._agents = self._load()
        self._clean_stale_processes()

    def get_all(self) -> list[Agent]:
        return [self._agents[name] for name in AgentName]

    def get(self, name: AgentName) -> Agent:
        return self._agents[name]

    def next_free_agent(self) -> AgentName | None:
        for name in AgentName:
            if self._agents[name].status == AgentStatus.IDLE:
                return name
        return None

    def assigned_agent(self, item_id: str) -> AgentName | None:
        for agent in self.get_all():
            if agent.work_item_id == item_id and agent.status in _HOLDING_STATUSES:
                return agent.name
        return None

    def mark_provisioning(  # noqa: PLR0913
        self,
        name: AgentName,
        work_item_id: str,
        work_item_title: str,
        branch: str,
        worktree_path: str,
    ) -> int:
        """Claim the slot for a work item and return the new provisioning epoch."""

        def _apply(agent: Agent) -> None:
            agent.status = AgentStatus.PROVISIONING
            agent.work_item_id = work_item_id
            agent.work_item_title = work_item_title
            agent.branch = branch
            agent.worktree_path = worktree_path
            agent.started_at = datetime.now(tz=UTC)
            agent.error = None
            agent.pid = None
            agent.epoch += 1

        return self._update(name, _apply).epoch

    def mark_working(self, name: AgentName, pid: int) -> None:
        def _apply(agent: Agent) -> None:
            agent.status = AgentStatus.WORKING
            agent.pid = pid

        self._update(name, _apply)

    def mark_done(self, name: AgentName) -> None:
        def _apply(agent: Agent) -> None:
            agent.status = AgentStatus.DONE
            agent.pid = None

        self._update(name, _apply)

    def mark_error(self, name: AgentName, message: str) -> None:
        def _apply(agent: Agent) -> None:
            agent.status = AgentStatus.ERROR
            agent.error = message
            agent.pid = None

        self._update(name, _apply)

    def increment_retry(self, name: AgentName) -> int:
        def _apply(agent: Agent) -> None:
            agent.retry_count += 1

        return self._update(name, _apply).retry_count

    def release(self, name: AgentName) -> None:
        """Reset the slot to Idle; the epoch survives so late completions stay detectable."""

        epoch = self._agents[name].epoch
        self._agents[name] = Agent.fresh(name, epoch=epoch)
        self._save()

    def _update(self, name: AgentName, apply: Callable[[Agent], None]) -> Agent:
        agent = self._agents[name]
        apply(agent)
        self._save()
        return agent

    def _clean_stale_processes(self) -> None:
        changed = False
        for agent in self._agents.values():
            if agent.pid is None or self._process_alive(agent.pid):
                continue
            logger.warning(
                "Agent %s process %s is gone; marking as error",
                agent.name.value,
                agent.pid,
            )
            agent.status = AgentStatus.ERROR
            agent.error = STALE_PROCESS_ERROR
            agent.pid = None
            changed = True
        if changed or not self.path.exists():
            try:
                self._save()
            except PersistenceError as error:
                logger.warning("%s", error)

    def _load(self) -> dict[AgentName, Agent]:
        agents = _default_agents()
        if not self.path.exists():
            return agents
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            records = payload["agents"]
            loaded = {
                AgentName(key): Agent.from_dict({**value, "name": key})
                for key, value in records.items()
                if key in _SLOT_KEYS
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as error:
            logger.warning("Agent registry %s unreadable, using defaults: %s", self.path, error)
            return agents
        agents.update(loaded)
        return agents

    def _save(self) -> None:
        payload = {"agents": {name.value: self._agents[name].to_dict() for name in AgentName}}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        except OSError as error:
            raise PersistenceError(
                f"Failed to write agent registry {self.path}: {error}",
            ) from error


def _default_agents() -> dict[AgentName, Agent]:
    return {name: Agent.fresh(name) for name in AgentName}
