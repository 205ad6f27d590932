"""Shared test fixtures."""

from __future__ import annotations

import queue
import shlex
import subprocess
import sys
from pathlib import Path

import pytest

from work_pipeline.agents.activity import ActivityLog
from work_pipeline.agents.dispatch import AgentDispatcher
from work_pipeline.agents.engine import EngineRunner
from work_pipeline.agents.store import AgentStore

ECHO_ENGINE_COMMAND = f"{shlex.quote(sys.executable)} -m work_pipeline.agents.echo_engine"


def _git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return completed.stdout


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    """Main checkout with one commit on ``main`` pushed to a bare ``origin``.

    Lives in ``tmp_path/checkout/repo`` so agent worktrees land in ``tmp_path/checkout``.
    """

    origin = tmp_path / "origin.git"
    origin.mkdir()
    _git(origin, "init", "--bare", "--initial-branch=main")

    repo = tmp_path / "checkout" / "repo"
    repo.mkdir(parents=True)
    _git(repo, "init", "--initial-branch=main")
    _git(repo, "config", "user.email", "tests@example.com")
    _git(repo, "config", "user.name", "Tests")
    _git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("# sandbox\n", encoding="utf-8")
    _git(repo, "add", "README.md")
    _git(repo, "commit", "-m", "Initial commit")
    _git(repo, "remote", "add", "origin", str(origin))
    _git(repo, "push", "origin", "main")
    return repo


@pytest.fixture()
def git():
    return _git


@pytest.fixture()
def echo_engine(monkeypatch) -> EngineRunner:
    """Engine runner pointing at the local echo stand-in."""

    for name in (
        "WORK_PIPELINE_ECHO_EXIT_CODE",
        "WORK_PIPELINE_ECHO_SLEEP",
        "WORK_PIPELINE_ECHO_MARKER",
    ):
        monkeypatch.delenv(name, raising=False)
    return EngineRunner(command=ECHO_ENGINE_COMMAND)


@pytest.fixture()
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "state"
    path.mkdir()
    return path


@pytest.fixture()
def make_dispatcher(data_dir: Path, echo_engine: EngineRunner, git_repo: Path):
    """Build a dispatcher wired to the echo engine and the sandbox repository."""

    def _make(
        *,
        engine: EngineRunner | None = None,
        store: AgentStore | None = None,
    ) -> AgentDispatcher:
        return AgentDispatcher(
            store=store or AgentStore(data_dir / "agents.json"),
            activity=ActivityLog(data_dir / "agent-activity.jsonl"),
            engine=engine or echo_engine,
            actions=queue.Queue(),
            repo_root=git_repo,
            logs_dir=data_dir / "logs",
        )

    return _make


@pytest.fixture()
def pipeline_env(monkeypatch, data_dir: Path, echo_engine: EngineRunner) -> Path:
    """Point the CLI at a temporary state directory and the echo engine."""

    monkeypatch.setenv("WORK_PIPELINE_DATA_DIR", str(data_dir))
    monkeypatch.setenv("WORK_PIPELINE_ENGINE_COMMAND", echo_engine.command)
    monkeypatch.setenv("WORK_PIPELINE_TICK_SECONDS", "0.05")
    for name in (
        "WORK_PIPELINE_REPO_ROOT",
        "WORK_PIPELINE_AUTO_MODE",
        "WORK_PIPELINE_MAX_RETRIES",
        "WORK_PIPELINE_LINEAR_API_KEY",
        "WORK_PIPELINE_LINEAR_TEAM_ID",
    ):
        monkeypatch.delenv(name, raising=False)
    return data_dir
