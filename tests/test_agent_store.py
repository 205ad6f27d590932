from __future__ import annotations

import json
import os
from pathlib import Path

import allure
import pytest

from work_pipeline.agents.errors import PersistenceError
from work_pipeline.agents.models import AgentName, AgentStatus
from work_pipeline.agents.store import STALE_PROCESS_ERROR, AgentStore, is_process_alive

pytestmark = [
    allure.epic("Agent Pool"),
    allure.feature("Agent Registry"),
]


class _FakeProcesses:
    def __init__(self) -> None:
        self.alive: set[int] = set()

    def __call__(self, pid: int) -> bool:
        return pid in self.alive


def _provision(store: AgentStore, agent: AgentName, item_id: str = "ENG-1") -> int:
    return store.mark_provisioning(
        agent,
        item_id,
        "Fix bug",
        f"agent/{agent.value}/{item_id}-fix-bug",
        f"/tmp/agent-{agent.value}",
    )


def test_new_store_creates_registry_with_four_idle_agents(tmp_path: Path) -> None:
    path = tmp_path / "state" / "agents.json"
    store = AgentStore(path)

    assert [agent.name for agent in store.get_all()] == list(AgentName)
    assert all(agent.status == AgentStatus.IDLE for agent in store.get_all())
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert sorted(payload["agents"]) == ["ember", "flow", "tempest", "terra"]
    assert payload["agents"]["ember"]["status"] == "idle"


def test_next_free_agent_follows_fixed_order(tmp_path: Path) -> None:
    processes = _FakeProcesses()
    store = AgentStore(tmp_path / "agents.json", process_alive=processes)

    assert store.next_free_agent() == AgentName.EMBER
    _provision(store, AgentName.EMBER)
    assert store.next_free_agent() == AgentName.FLOW
    _provision(store, AgentName.FLOW, "ENG-2")
    _provision(store, AgentName.TEMPEST, "ENG-3")
    _provision(store, AgentName.TERRA, "ENG-4")
    assert store.next_free_agent() is None


def test_lifecycle_transitions_persist_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "agents.json"
    processes = _FakeProcesses()
    processes.alive.add(4242)
    store = AgentStore(path, process_alive=processes)

    epoch = _provision(store, AgentName.FLOW)
    store.mark_working(AgentName.FLOW, 4242)

    reloaded = AgentStore(path, process_alive=processes).get(AgentName.FLOW)
    assert reloaded.status == AgentStatus.WORKING
    assert reloaded.pid == 4242
    assert reloaded.work_item_id == "ENG-1"
    assert reloaded.branch == "agent/flow/ENG-1-fix-bug"
    assert reloaded.started_at is not None
    assert reloaded.epoch == epoch == 1

    store.mark_done(AgentName.FLOW)
    assert store.get(AgentName.FLOW).pid is None
    assert AgentStore(path, process_alive=processes).get(AgentName.FLOW).status == AgentStatus.DONE


def test_assigned_agent_reports_holder_until_release(tmp_path: Path) -> None:
    store = AgentStore(tmp_path / "agents.json", process_alive=_FakeProcesses())
    _provision(store, AgentName.TEMPEST, "ENG-7")

    assert store.assigned_agent("ENG-7") == AgentName.TEMPEST
    store.mark_error(AgentName.TEMPEST, "boom")
    assert store.assigned_agent("ENG-7") == AgentName.TEMPEST

    store.release(AgentName.TEMPEST)
    assert store.assigned_agent("ENG-7") is None


def test_release_resets_slot_but_keeps_epoch(tmp_path: Path) -> None:
    store = AgentStore(tmp_path / "agents.json", process_alive=_FakeProcesses())
    _provision(store, AgentName.EMBER)
    store.mark_error(AgentName.EMBER, "boom")
    store.increment_retry(AgentName.EMBER)

    store.release(AgentName.EMBER)

    agent = store.get(AgentName.EMBER)
    assert agent.status == AgentStatus.IDLE
    assert agent.work_item_id is None
    assert agent.error is None
    assert agent.retry_count == 0
    assert agent.epoch == 1
    assert _provision(store, AgentName.EMBER) == 2


def test_mark_provisioning_clears_previous_error_but_keeps_retries(tmp_path: Path) -> None:
    store = AgentStore(tmp_path / "agents.json", process_alive=_FakeProcesses())
    _provision(store, AgentName.EMBER)
    store.mark_error(AgentName.EMBER, "boom")
    assert store.increment_retry(AgentName.EMBER) == 1

    _provision(store, AgentName.EMBER)

    agent = store.get(AgentName.EMBER)
    assert agent.status == AgentStatus.PROVISIONING
    assert agent.error is None
    assert agent.retry_count == 1


def test_reload_marks_dead_processes_as_error(tmp_path: Path) -> None:
    path = tmp_path / "agents.json"
    processes = _FakeProcesses()
    processes.alive.add(101)
    store = AgentStore(path, process_alive=processes)
    _provision(store, AgentName.TERRA)
    store.mark_working(AgentName.TERRA, 101)

    processes.alive.clear()
    store.reload()

    agent = store.get(AgentName.TERRA)
    assert agent.status == AgentStatus.ERROR
    assert agent.error == STALE_PROCESS_ERROR
    assert agent.pid is None
    on_disk = json.loads(path.read_text(encoding="utf-8"))["agents"]["terra"]
    assert on_disk["status"] == "error"
    assert "pid" not in on_disk


def test_reload_keeps_live_processes(tmp_path: Path) -> None:
    processes = _FakeProcesses()
    processes.alive.add(55)
    store = AgentStore(tmp_path / "agents.json", process_alive=processes)
    _provision(store, AgentName.EMBER)
    store.mark_working(AgentName.EMBER, 55)

    store.reload()

    assert store.get(AgentName.EMBER).status == AgentStatus.WORKING


def test_corrupt_registry_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "agents.json"
    path.write_text("{not json", encoding="utf-8")

    store = AgentStore(path)

    assert all(agent.status == AgentStatus.IDLE for agent in store.get_all())


def test_partial_registry_fills_missing_slots_and_ignores_unknown(tmp_path: Path) -> None:
    path = tmp_path / "agents.json"
    path.write_text(
        json.dumps(
            {
                "agents": {
                    "flow": {"status": "done", "work_item_id": "ENG-9", "future_field": 1},
                    "blaze": {"status": "idle"},
                },
            },
        ),
        encoding="utf-8",
    )

    store = AgentStore(path)

    assert store.get(AgentName.FLOW).status == AgentStatus.DONE
    assert store.get(AgentName.FLOW).work_item_id == "ENG-9"
    assert store.get(AgentName.EMBER).status == AgentStatus.IDLE
    assert len(store.get_all()) == 4


def test_unwritable_registry_raises_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")
    store = AgentStore(blocker / "agents.json")

    with pytest.raises(PersistenceError, match="Failed to write agent registry"):
        _provision(store, AgentName.EMBER)


def test_is_process_alive_for_current_and_missing_process() -> None:
    assert is_process_alive(os.getpid())
    assert not is_process_alive(2**22 + 12345)
