"""Runtime configuration for the agent pool and tracker providers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(ValueError):
    """Missing or invalid settings."""


@dataclass(slots=True)
class AgentSettings:
    """Agent pool, engine and git workspace settings."""

    repo_root: Path = field(default_factory=Path.cwd)
    engine_command: str = "claude"
    engine_unattended_flag: str = "--dangerously-skip-permissions"
    max_retries: int = 3
    tick_seconds: float = 2.0
    auto_mode: bool = False
    remote: str = "origin"
    base_branch: str = "main"
    context_filename: str = "CLAUDE.md"


@dataclass(slots=True)
class ProviderSettings:
    """Tracker provider credentials."""

    linear_api_key: str | None = None
    linear_team_id: str | None = None
    linear_api_url: str = "https://api.linear.app/graphql"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    data_dir: Path = Path.home() / ".work-pipeline"
    agents: AgentSettings = field(default_factory=AgentSettings)
    providers: ProviderSettings = field(default_factory=ProviderSettings)

    @property
    def registry_path(self) -> Path:
        return self.data_dir / "agents.json"

    @property
    def activity_log_path(self) -> Path:
        return self.data_dir / "agent-activity.jsonl"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"

    @classmethod
    def from_env(cls, data_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local development."""

        env_data_dir = os.getenv("WORK_PIPELINE_DATA_DIR", "").strip()
        default_data_dir = Path(env_data_dir).expanduser() if env_data_dir else None
        env_repo_root = os.getenv("WORK_PIPELINE_REPO_ROOT", "").strip()
        return cls(
            data_dir=data_dir or default_data_dir or Path.home() / ".work-pipeline",
            agents=AgentSettings(
                repo_root=Path(env_repo_root).expanduser() if env_repo_root else Path.cwd(),
                engine_command=os.getenv("WORK_PIPELINE_ENGINE_COMMAND", "claude"),
                engine_unattended_flag=os.getenv(
                    "WORK_PIPELINE_ENGINE_UNATTENDED_FLAG",
                    "--dangerously-skip-permissions",
                ),
                max_retries=_env_int("WORK_PIPELINE_MAX_RETRIES", 3),
                tick_seconds=_env_float("WORK_PIPELINE_TICK_SECONDS", 2.0),
                auto_mode=_env_bool("WORK_PIPELINE_AUTO_MODE", default=False),
                remote=os.getenv("WORK_PIPELINE_REMOTE", "origin"),
                base_branch=os.getenv("WORK_PIPELINE_BASE_BRANCH", "main"),
                context_filename=os.getenv("WORK_PIPELINE_CONTEXT_FILENAME", "CLAUDE.md"),
            ),
            providers=ProviderSettings(
                linear_api_key=os.getenv("WORK_PIPELINE_LINEAR_API_KEY") or None,
                linear_team_id=os.getenv("WORK_PIPELINE_LINEAR_TEAM_ID") or None,
            ),
        )

    def validate_for_agents(self) -> None:
        """Raise configuration error if the agent pool cannot run with these settings."""

        if self.agents.tick_seconds <= 0:
            raise ConfigurationError("WORK_PIPELINE_TICK_SECONDS must be > 0.")
        if self.agents.max_retries < 0:
            raise ConfigurationError("WORK_PIPELINE_MAX_RETRIES must be >= 0.")
        if not self.agents.engine_command.strip():
            raise ConfigurationError("WORK_PIPELINE_ENGINE_COMMAND must not be empty.")
        if not self.agents.repo_root.is_dir():
            raise ConfigurationError(
                f"Repository root does not exist: {self.agents.repo_root}. "
                "Set WORK_PIPELINE_REPO_ROOT or run from the main checkout.",
            )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ConfigurationError(f"Invalid number value for {name}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")
