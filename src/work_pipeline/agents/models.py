"""Domain models for the agent pool, work items and activity trail."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


class AgentName(str, Enum):
    """Fixed pool slots, in dispatch priority order."""

    EMBER = "ember"
    FLOW = "flow"
    TEMPEST = "tempest"
    TERRA = "terra"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    def __str__(self) -> str:
        return self.value


class AgentStatus(str, Enum):
    """Per-slot lifecycle states."""

    IDLE = "idle"
    PROVISIONING = "provisioning"
    WORKING = "working"
    DONE = "done"
    ERROR = "error"


@dataclass(slots=True)
class Agent:
    """Registry record for one pool slot."""

    name: AgentName
    status: AgentStatus = AgentStatus.IDLE
    work_item_id: str | None = None
    work_item_title: str | None = None
    branch: str | None = None
    worktree_path: str | None = None
    pid: int | None = None
    started_at: datetime | None = None
    error: str | None = None
    retry_count: int = 0
    epoch: int = 0

    @classmethod
    def fresh(cls, name: AgentName, *, epoch: int = 0) -> Agent:
        return cls(name=name, epoch=epoch)

    def elapsed(self, now: datetime | None = None) -> timedelta | None:
        if self.started_at is None:
            return None
        return (now or datetime.now(tz=UTC)) - self.started_at

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            payload[key] = value
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Agent:
        known = {item.name for item in fields(cls)}
        data = {key: value for key, value in payload.items() if key in known}
        data["name"] = AgentName(data["name"])
        data["status"] = AgentStatus(data.get("status", AgentStatus.IDLE.value))
        started_at = data.get("started_at")
        if started_at is not None:
            data["started_at"] = datetime.fromisoformat(started_at)
        data["retry_count"] = int(data.get("retry_count", 0))
        data["epoch"] = int(data.get("epoch", 0))
        if data.get("pid") is not None:
            data["pid"] = int(data["pid"])
        return cls(**data)


@dataclass(frozen=True, slots=True)
class WorkItem:
    """Immutable snapshot of one tracker item."""

    id: str
    title: str
    source: str
    source_id: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    team: str | None = None
    url: str | None = None
    labels: tuple[str, ...] = ()


@dataclass(slots=True)
class ActivityEvent:
    """One line of the append-only activity trail."""

    timestamp: datetime
    agent: AgentName
    event: str
    work_item_id: str | None = None
    work_item_title: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "agent": self.agent.value,
            "event": self.event,
        }
        if self.work_item_id is not None:
            payload["work_item_id"] = self.work_item_id
        if self.work_item_title is not None:
            payload["work_item_title"] = self.work_item_title
        if self.message is not None:
            payload["message"] = self.message
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ActivityEvent:
        return cls(
            timestamp=datetime.fromisoformat(payload["timestamp"]),
            agent=AgentName(payload["agent"]),
            event=str(payload["event"]),
            work_item_id=payload.get("work_item_id"),
            work_item_title=payload.get("work_item_title"),
            message=payload.get("message"),
        )


@dataclass(slots=True)
class ChatMessage:
    """Conversation entry between the operator and an agent."""

    role: str
    text: str
    agent: AgentName | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @classmethod
    def user(cls, text: str) -> ChatMessage:
        return cls(role="user", text=text)

    @classmethod
    def from_agent(cls, agent: AgentName, text: str) -> ChatMessage:
        return cls(role="agent", text=text, agent=agent)

    @classmethod
    def system(cls, text: str) -> ChatMessage:
        return cls(role="system", text=text)
