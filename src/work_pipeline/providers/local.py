"""In-memory tracker for locally created tasks."""

from __future__ import annotations

from work_pipeline.agents.models import WorkItem
from work_pipeline.providers.base import BoardInfo

LOCAL_SOURCE = "Local"


class LocalProvider:
    """Keeps work items in process memory; useful offline and in tests."""

    name = LOCAL_SOURCE

    def __init__(self, items: list[WorkItem] | None = None) -> None:
        self._items: list[WorkItem] = list(items or [])
        self._statuses: dict[str, str] = {}

    def fetch_items(self) -> list[WorkItem]:
        return [item for item in self._items if self._statuses.get(item.id) != "Done"]

    def create_item(self, title: str, description: str | None = None) -> WorkItem:
        item_id = f"LOCAL-{len(self._items) + 1}"
        item = WorkItem(
            id=item_id,
            source_id=item_id,
            title=title,
            description=description,
            status="Todo",
            source=LOCAL_SOURCE,
        )
        self._items.append(item)
        return item

    def move_to_in_progress(self, source_id: str) -> None:
        self._statuses[source_id] = "In Progress"

    def move_to_done(self, source_id: str) -> None:
        self._statuses[source_id] = "Done"

    def status_of(self, source_id: str) -> str | None:
        return self._statuses.get(source_id)

    def list_boards(self) -> list[BoardInfo]:
        return [BoardInfo(id="local", name="Local tasks", source=LOCAL_SOURCE)]

    def set_board_filter(self, board_id: str) -> None:
        return None
