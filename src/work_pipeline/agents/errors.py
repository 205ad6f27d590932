"""Error types raised by the agent orchestration core."""

from __future__ import annotations


class AgentPipelineError(RuntimeError):
    """Base error for failures inside one dispatch or registry operation."""


class WorkspaceError(AgentPipelineError):
    """A git subcommand or worktree file operation failed during provisioning."""


class EngineError(AgentPipelineError):
    """The external engine could not be started or exited unsuccessfully."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class PersistenceError(AgentPipelineError):
    """Registry file could not be written."""
