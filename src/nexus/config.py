from __future__ import annotations

"""Runtime settings read from the environment.

Env vars:
- NEXUS_HISTORY_DEFAULT_LIMIT (default 10)
- NEXUS_HISTORY_MAX_LIMIT (default 100)
- NEXUS_LLM_MODEL (default gpt-4o-mini)
"""

import os
from dataclasses import dataclass


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    history_default_limit: int = 10
    history_max_limit: int = 100
    llm_model: str = "gpt-4o-mini"

    @staticmethod
    def from_env() -> "Settings":
        max_limit = env_int("NEXUS_HISTORY_MAX_LIMIT", 100)
        return Settings(
            history_default_limit=min(env_int("NEXUS_HISTORY_DEFAULT_LIMIT", 10), max_limit),
            history_max_limit=max_limit,
            llm_model=os.getenv("NEXUS_LLM_MODEL") or "gpt-4o-mini",
        )
