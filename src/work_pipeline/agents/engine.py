"""Subprocess runner for the external coding-agent engine."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from work_pipeline.agents.errors import EngineError

TEXT_OUTPUT_ARGS = ("--output-format", "text")


@dataclass(slots=True)
class EngineRunner:
    """Builds and launches ``<engine> -p <prompt> ...`` command lines.

    ``command`` may carry extra leading arguments (for example
    ``"python -m work_pipeline.agents.echo_engine"``); it is split with shell rules.
    """

    command: str = "claude"
    unattended_flag: str = "--dangerously-skip-permissions"

    def argv(self, prompt: str, *extra: str) -> list[str]:
        try:
            head = shlex.split(self.command)
        except ValueError as error:
            raise EngineError(f"Malformed engine command {self.command!r}: {error}") from error
        if not head:
            raise EngineError("Engine command is empty.")
        return [*head, "-p", prompt, *(arg for arg in extra if arg)]

    def spawn(self, *, prompt: str, work_dir: Path, log_path: Path) -> subprocess.Popen[bytes]:
        """Start a detached unattended run with stdout and stderr going to ``log_path``."""

        run_args = self.argv(prompt, self.unattended_flag)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            with log_path.open("wb") as log_handle:
                return subprocess.Popen(  # noqa: S603
                    run_args,
                    cwd=work_dir,
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                )
        except FileNotFoundError as error:
            raise EngineError(f"Engine command not found: {run_args[0]}") from error
        except OSError as error:
            raise EngineError(f"Failed to spawn engine: {error}") from error
        except ValueError as error:
            raise EngineError(f"Invalid engine arguments: {error}") from error

    def run(self, *, prompt: str, work_dir: Path, unattended: bool = False) -> str:
        """Run the engine to completion and return its trimmed stdout."""

        extra = [self.unattended_flag] if unattended else []
        run_args = self.argv(prompt, *extra, *TEXT_OUTPUT_ARGS)
        try:
            completed = subprocess.run(  # noqa: S603
                run_args,
                cwd=work_dir,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as error:
            raise EngineError(f"Engine command not found: {run_args[0]}") from error
        except OSError as error:
            raise EngineError(f"Failed to run engine: {error}") from error
        except ValueError as error:
            raise EngineError(f"Invalid engine arguments: {error}") from error

        if completed.returncode != 0:
            raise EngineError(
                f"Engine exited with code {completed.returncode}: {completed.stderr.strip()}",
                exit_code=completed.returncode,
            )
        return completed.stdout.strip()
