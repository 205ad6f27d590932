"""Messages consumed by the coordinator from its single action queue."""

from __future__ import annotations

from dataclasses import dataclass

from work_pipeline.agents.models import AgentName


@dataclass(frozen=True, slots=True)
class Tick:
    pass


@dataclass(frozen=True, slots=True)
class RefreshBacklog:
    pass


@dataclass(frozen=True, slots=True)
class SelectBoard:
    board_id: str


@dataclass(frozen=True, slots=True)
class DispatchItem:
    item_id: str


@dataclass(frozen=True, slots=True)
class ClearAgent:
    agent: AgentName


@dataclass(frozen=True, slots=True)
class ClearLogs:
    agent: AgentName


@dataclass(frozen=True, slots=True)
class SetAutoMode:
    enabled: bool


@dataclass(frozen=True, slots=True)
class ProcessExited:
    """Terminal report from a process monitor, tagged with the provisioning epoch."""

    agent: AgentName
    success: bool
    epoch: int


@dataclass(frozen=True, slots=True)
class CreateTask:
    title: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class MessageAgent:
    agent: AgentName
    text: str


@dataclass(frozen=True, slots=True)
class AgentReplied:
    agent: AgentName
    text: str


@dataclass(frozen=True, slots=True)
class AgentReplyFailed:
    agent: AgentName
    error: str


@dataclass(frozen=True, slots=True)
class Shutdown:
    pass


Action = (
    Tick
    | RefreshBacklog
    | SelectBoard
    | DispatchItem
    | ClearAgent
    | ClearLogs
    | SetAutoMode
    | ProcessExited
    | CreateTask
    | MessageAgent
    | AgentReplied
    | AgentReplyFailed
    | Shutdown
)
