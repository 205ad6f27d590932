"""Local stand-in engine for integration tests.

Accepts the same ``-p <prompt> [flags]`` command line as the real engine. Behavior
is steered through environment variables so tests can simulate slow, failing or
chatty runs without a network:

- ``WORK_PIPELINE_ECHO_EXIT_CODE``: exit status (default 0)
- ``WORK_PIPELINE_ECHO_SLEEP``: seconds to sleep before exiting
- ``WORK_PIPELINE_ECHO_MARKER``: file name to create in the working directory
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("-p", "--prompt", required=True)
    parser.add_argument("--output-format", default=None)
    args, flags = parser.parse_known_args(argv)

    delay = float(os.getenv("WORK_PIPELINE_ECHO_SLEEP", "0") or 0)
    if delay > 0:
        time.sleep(delay)

    marker = os.getenv("WORK_PIPELINE_ECHO_MARKER")
    if marker:
        Path(marker).write_text(args.prompt, encoding="utf-8")

    exit_code = int(os.getenv("WORK_PIPELINE_ECHO_EXIT_CODE", "0") or 0)
    first_line = args.prompt.strip().splitlines()[0] if args.prompt.strip() else ""
    if exit_code != 0:
        sys.stderr.write(f"echo engine failing on purpose: {first_line}\n")
        return exit_code

    sys.stdout.write(f"echo: {first_line}\n")
    if flags:
        sys.stdout.write(f"flags: {' '.join(flags)}\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
