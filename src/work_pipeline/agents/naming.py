"""Branch and worktree naming for agent workspaces."""

from __future__ import annotations

from pathlib import Path

from work_pipeline.agents.models import AgentName

_SLUG_MAX_CHARS = 40
_SHORT_ID_CHARS = 8


def slugify(title: str) -> str:
    slug = "".join(
        char if char.isascii() and char.isalnum() else "-" for char in title.lower()
    )
    return slug.strip("-")[:_SLUG_MAX_CHARS]


def branch_name(agent: AgentName, item_id: str, title: str) -> str:
    return f"agent/{agent.value}/{item_id[:_SHORT_ID_CHARS]}-{slugify(title)}"


def worktree_path(repo_root: str | Path, agent: AgentName) -> str:
    """Sibling directory of the main checkout, one per pool slot."""

    root = str(repo_root).rstrip("/") or "/"
    head, separator, _ = root.rpartition("/")
    if not separator:
        return f"{root}/agent-{agent.value}"
    return f"{head}/agent-{agent.value}"
