"""Tracker providers feeding the agent backlog."""

from __future__ import annotations

from work_pipeline.config import Settings
from work_pipeline.providers.base import BoardInfo, ProviderError, WorkItemProvider
from work_pipeline.providers.linear import LinearProvider
from work_pipeline.providers.local import LocalProvider


def create_providers(settings: Settings) -> list[WorkItemProvider]:
    """Configured trackers first, then the local provider as the creation fallback."""

    providers: list[WorkItemProvider] = []
    if settings.providers.linear_api_key:
        providers.append(
            LinearProvider(
                settings.providers.linear_api_key,
                team_id=settings.providers.linear_team_id,
                api_url=settings.providers.linear_api_url,
            ),
        )
    providers.append(LocalProvider())
    return providers


__all__ = [
    "BoardInfo",
    "LinearProvider",
    "LocalProvider",
    "ProviderError",
    "WorkItemProvider",
    "create_providers",
]
