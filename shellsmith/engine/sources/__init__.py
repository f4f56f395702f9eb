"""Input source implementations for the registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shellsmith.engine.models.enums import SourceScheme
from shellsmith.engine.sources.base import (
    InputSource,
    SourceLookupError,
    SourceRevision,
    UnknownSchemeError,
    content_handle,
    split_locator,
)
from shellsmith.engine.sources.github import GitHubSource
from shellsmith.engine.sources.path import PathSource

if TYPE_CHECKING:
    from pathlib import Path

    from shellsmith.engine.settings import ShellsmithSettings


def build_sources(settings: ShellsmithSettings, *, base_dir: Path | None = None) -> dict[SourceScheme, InputSource]:
    """Default scheme -> source table for a registry."""
    token = settings.github_token.get_secret_value() if settings.github_token else None
    path_source = PathSource(base_dir)
    return {
        SourceScheme.GITHUB: GitHubSource(api_url=settings.github_api_url, token=token),
        SourceScheme.PATH: path_source,
        SourceScheme.FILE: path_source,
    }


__all__ = [
    "GitHubSource",
    "InputSource",
    "PathSource",
    "SourceLookupError",
    "SourceRevision",
    "UnknownSchemeError",
    "build_sources",
    "content_handle",
    "split_locator",
]
