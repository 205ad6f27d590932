"""Tracker provider contracts consumed by the coordinator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from work_pipeline.agents.models import WorkItem


@dataclass(slots=True)
class ProviderError(Exception):
    """Tracker API failure; transient from the coordinator's point of view."""

    provider: str
    message: str

    def __str__(self) -> str:
        return f"{self.provider}: {self.message}"


@dataclass(frozen=True, slots=True)
class BoardInfo:
    id: str
    name: str
    source: str


class WorkItemProvider(Protocol):
    """Interface for issue tracker integrations."""

    name: str

    def fetch_items(self) -> list[WorkItem]:
        """Return open items assigned to the current user."""
        raise NotImplementedError

    def create_item(self, title: str, description: str | None = None) -> WorkItem | None:
        """Create an item, or return None when the tracker does not support creation."""
        raise NotImplementedError

    def move_to_in_progress(self, source_id: str) -> None:
        raise NotImplementedError

    def move_to_done(self, source_id: str) -> None:
        raise NotImplementedError

    def list_boards(self) -> list[BoardInfo]:
        raise NotImplementedError

    def set_board_filter(self, board_id: str) -> None:
        raise NotImplementedError
