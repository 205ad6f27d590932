"""Append-only JSONL activity trail for agent orchestration events.

The trail is diagnostic: every I/O failure is logged and swallowed so that a
broken log file never blocks a dispatch or a tick.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path

from work_pipeline.agents.models import ActivityEvent, AgentName

logger = logging.getLogger(__name__)


class ActivityLog:
    """Newline-delimited JSON event file shared by the coordinator and monitors."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def append(self, event: ActivityEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError as error:
                logger.warning("Failed to append activity event to %s: %s", self.path, error)

    def record(
        self,
        agent: AgentName,
        event: str,
        *,
        work_item_id: str | None = None,
        work_item_title: str | None = None,
        message: str | None = None,
    ) -> ActivityEvent:
        entry = ActivityEvent(
            timestamp=datetime.now(tz=UTC),
            agent=agent,
            event=event,
            work_item_id=work_item_id,
            work_item_title=work_item_title,
            message=message,
        )
        self.append(entry)
        return entry

    def read(
        self,
        agent: AgentName | None = None,
        limit: int | None = None,
    ) -> list[ActivityEvent]:
        """Return events in file order, optionally for one agent and only the last ``limit``."""

        events = [
            event
            for event in self._read_all()
            if agent is None or event.agent == agent
        ]
        if limit is not None and len(events) > limit:
            events = events[len(events) - limit :]
        return events

    def clear(self, agent: AgentName) -> None:
        with self._lock:
            if not self.path.exists():
                return
            try:
                lines = self.path.read_text(encoding="utf-8").splitlines()
                kept = [line for line in lines if _line_agent(line) != agent]
                self.path.write_text(
                    "".join(line + "\n" for line in kept),
                    encoding="utf-8",
                )
            except OSError as error:
                logger.warning("Failed to clear activity for %s in %s: %s", agent, self.path, error)

    def _read_all(self) -> list[ActivityEvent]:
        if not self.path.exists():
            return []
        try:
            contents = self.path.read_text(encoding="utf-8")
        except OSError as error:
            logger.warning("Failed to read activity log %s: %s", self.path, error)
            return []

        events: list[ActivityEvent] = []
        for line in contents.splitlines():
            if not line.strip():
                continue
            try:
                events.append(ActivityEvent.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError):
                logger.debug("Skipping malformed activity line: %s", line[:80])
        return events


def _line_agent(line: str) -> AgentName | None:
    try:
        return AgentName(json.loads(line)["agent"])
    except (ValueError, KeyError, TypeError):
        return None
