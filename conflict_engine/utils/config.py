"""Runtime settings loaded from the environment."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "CONFLICT_ENGINE_"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    app_name: str = "Conflict Engine"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    default_day_amount: float = Field(default=8.0, ge=0)
    default_half_day_amount: float = Field(default=4.0, ge=0)
    escalate_chair_conflicts: bool = False
    max_report_days: int = Field(default=366, gt=0)


def _from_environ(environ: dict[str, str]) -> dict[str, str]:
    values = {}
    for name in Settings.model_fields:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = raw
    return values


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build settings from ``CONFLICT_ENGINE_*`` variables.

    Values are validated (and coerced) by pydantic, so
    ``CONFLICT_ENGINE_DEFAULT_DAY_AMOUNT=7.5`` becomes a float.
    """
    source = dict(os.environ if environ is None else environ)
    return Settings(**_from_environ(source))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
