"""Prompt and context-file templates handed to the engine."""

from __future__ import annotations

from pathlib import Path

from work_pipeline.agents.errors import WorkspaceError
from work_pipeline.agents.models import AgentName, WorkItem
from work_pipeline.agents.personality import personality

CONTEXT_FILE_TEMPLATE = """\
# work pipeline

## Project Overview
A command line dashboard (`work-pipeline`) that aggregates work items from issue trackers
and dispatches them to a pool of autonomous coding agents.
Written in Python.

## Tech Stack
- **Language**: Python 3.11+
- **CLI**: rich-click
- **HTTP**: httpx
- **Build**: setuptools (`pyproject.toml`)
- **Test**: pytest with allure markers

## Conventions
- Package code lives in `src/work_pipeline/`
- Agent orchestration in `src/work_pipeline/agents/`, tracker providers in `src/work_pipeline/providers/`
- Raise subclasses of `AgentPipelineError` for orchestration failures
- Use dataclasses for models and `logging.getLogger(__name__)` for logs
- Agent state stored at `~/.work-pipeline/agents.json`
- Activity log at `~/.work-pipeline/agent-activity.jsonl`

## Testing
- Run: `pytest`

## Commit Format
- Short imperative subject line (e.g., "Add login validation")
- Reference the work item ID in the commit body

## Agent Identity
You are **{display}**, an autonomous agent working in a git worktree.
Your changes will be pushed directly to main.

### Personality: {tagline}
- **Focus**: {focus}
- **Traits**: {traits}
- **Working style**: {system_prompt}
"""

TASK_PROMPT_TEMPLATE = """\
You are agent "{agent}" working on the following task. Your personality: {tagline}.

# {title}
- ID: {id}
- Source: {source}
- URL: {url}
- Priority: {priority}
- Labels: {labels}
- Status: {status}
- Team: {team}

## Description
{description}

## Instructions
1. Read {context_filename} in the project root for conventions and context.
2. Implement the task described above.
3. Write tests for your changes.
4. Run `pytest` and ensure all tests pass.
5. Commit your changes with a message referencing {id}.
6. Run `git fetch origin main && git rebase origin/main`.
7. Run `git push origin HEAD:main`.

Work autonomously. Do not ask for clarification; make reasonable decisions.

## Personality: {tagline}
- Focus: {focus}
- Traits: {traits}
- Working style: {system_prompt}"""

MESSAGE_PROMPT_TEMPLATE = """\
You are {name}, an agent in a team dashboard CLI called "work".
Your personality: {tagline}. {focus}
{context}
The user has sent you this message:
{message}

Respond concisely and helpfully. If you need more information from the user, ask clearly.
{extra}Keep responses under 200 words."""

FEEDBACK_PROMPT_TEMPLATE = """\
You are {name}, an agent working on: {context}
Your personality: {tagline}. {focus}

The user has given you this feedback:
{feedback}

Apply this feedback to the codebase. Make the necessary changes, test them, commit and push.
After making changes, briefly summarize what you did."""


def render_context_file(agent: AgentName) -> str:
    p = personality(agent)
    return CONTEXT_FILE_TEMPLATE.format(
        display=agent.display_name,
        tagline=p.tagline,
        focus=p.focus,
        traits=", ".join(p.traits),
        system_prompt=p.system_prompt,
    )


def write_context_file(worktree: Path, agent: AgentName, *, filename: str = "CLAUDE.md") -> Path:
    path = worktree / filename
    try:
        path.write_text(render_context_file(agent), encoding="utf-8")
    except OSError as error:
        raise WorkspaceError(f"Failed to write {path}: {error}") from error
    return path


def build_task_prompt(
    item: WorkItem,
    agent: AgentName,
    *,
    context_filename: str = "CLAUDE.md",
) -> str:
    p = personality(agent)
    return TASK_PROMPT_TEMPLATE.format(
        agent=agent.display_name,
        tagline=p.tagline,
        focus=p.focus,
        title=item.title,
        id=item.id,
        source=item.source,
        url=item.url or "n/a",
        priority=item.priority or "n/a",
        labels=", ".join(item.labels) if item.labels else "none",
        status=item.status or "n/a",
        team=item.team or "n/a",
        description=item.description or "No description provided.",
        context_filename=context_filename,
        traits=", ".join(p.traits),
        system_prompt=p.system_prompt,
    )


def build_message_prompt(agent: AgentName, message: str, task_context: str | None) -> str:
    p = personality(agent)
    return MESSAGE_PROMPT_TEMPLATE.format(
        name=agent.display_name,
        tagline=p.tagline,
        focus=p.focus,
        context=f"\nYou are currently working on: {task_context}\n" if task_context else "",
        message=message,
        extra=(
            "If you're given feedback on your work, acknowledge it and explain what you'll do.\n"
            "If asked a question, answer directly.\n"
            if task_context
            else ""
        ),
    )


def build_feedback_prompt(agent: AgentName, feedback: str, task_context: str) -> str:
    p = personality(agent)
    return FEEDBACK_PROMPT_TEMPLATE.format(
        name=agent.display_name,
        tagline=p.tagline,
        focus=p.focus,
        context=task_context,
        feedback=feedback,
    )
