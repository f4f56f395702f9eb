"""Engine configuration loaded from SHELLSMITH_* environment variables."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from shellsmith.engine.platforms import DEFAULT_PLATFORMS


class ShellsmithSettings(BaseSettings):
    """shellsmith settings.

    All fields are read from environment variables with the ``SHELLSMITH_``
    prefix.  For example, ``SHELLSMITH_OFFLINE=1`` maps to ``offline``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHELLSMITH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_levels: dict[str, str] = Field(default_factory=dict)
    """Per-component overrides, e.g. ``{"shellsmith.engine.registry": "DEBUG"}``."""

    # -- Store -----------------------------------------------------------------
    store_root: str = "./.shellsmith/store"
    """Root of the content-addressed package store (read-only for the engine)."""

    # -- Registry --------------------------------------------------------------
    offline: bool = False
    """Air-gapped mode: every input must already have a lock record."""

    registry_timeout: float | None = 30.0
    """Seconds allowed for a single input lookup.  ``None`` disables the limit."""

    lock_file_name: str = "shellsmith.lock"

    github_api_url: str = "https://api.github.com"
    github_token: SecretStr | None = None

    # -- Platforms -------------------------------------------------------------
    default_platforms: list[str] = Field(default_factory=lambda: list(DEFAULT_PLATFORMS))
    """Platforms covered by a shell that declares ``platforms = "default"``."""

    # -- Hook / shell ----------------------------------------------------------
    hook_timeout: float | None = None
    """Per-command hook timeout in seconds.  ``None`` means unbounded."""

    shell: str | None = None
    """Interactive shell program.  Falls back to ``$SHELL`` then ``/bin/sh``."""

    # -- Helpers ---------------------------------------------------------------

    def resolve_shell(self) -> str:
        """Return the configured shell or the user's login shell."""
        return self.shell or os.environ.get("SHELL") or "/bin/sh"


@lru_cache(maxsize=1)
def get_settings() -> ShellsmithSettings:
    """Return a cached settings instance.

    Call ``get_settings.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return ShellsmithSettings()
