"""Git worktree provisioning for per-agent isolated checkouts."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from work_pipeline.agents.errors import WorkspaceError

logger = logging.getLogger(__name__)


class GitWorkspace:
    """Creates a fresh worktree for one agent branch from the remote base branch."""

    def __init__(
        self,
        repo_root: Path,
        *,
        remote: str = "origin",
        base_branch: str = "main",
        git_command: str = "git",
    ) -> None:
        self.repo_root = repo_root
        self.remote = remote
        self.base_branch = base_branch
        self.git_command = git_command

    @property
    def base_ref(self) -> str:
        return f"{self.remote}/{self.base_branch}"

    def provision(self, *, branch: str, worktree_path: Path) -> None:
        """Fetch, drop any previous worktree at the path, reset the branch, add the worktree.

        Partial state (for example a created branch when ``worktree add`` fails) is left
        in place; the next provisioning of the same slot cleans it up.
        """

        self.run("fetch", self.remote, self.base_branch)
        self.remove_worktree(worktree_path)

        try:
            self.run("branch", branch, self.base_ref)
        except WorkspaceError:
            self.run("branch", "-f", branch, self.base_ref)

        self.run("worktree", "add", str(worktree_path), branch)

    def remove_worktree(self, worktree_path: Path) -> None:
        if worktree_path.exists():
            try:
                self.run("worktree", "remove", str(worktree_path), "--force")
            except WorkspaceError as error:
                logger.debug("Worktree remove failed for %s: %s", worktree_path, error)
            if worktree_path.exists():
                shutil.rmtree(worktree_path, ignore_errors=True)
        try:
            self.run("worktree", "prune")
        except WorkspaceError as error:
            logger.debug("Worktree prune failed: %s", error)

    def run(self, *args: str) -> str:
        command = [self.git_command, *args]
        try:
            completed = subprocess.run(  # noqa: S603
                command,
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as error:
            raise WorkspaceError(f"Failed to run git {' '.join(args)}: {error}") from error

        if completed.returncode != 0:
            raise WorkspaceError(
                f"git {' '.join(args)} failed: {completed.stderr.strip()}",
            )
        return completed.stdout
