"""
Configuration for the message bus.

Settings are immutable once built. They can be constructed directly or
read from WEAKBUS_* environment variables.
"""

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "WEAKBUS_"


class BusSettings(BaseModel):
    """Tunables for a MessageBus."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Worker threads used by publish_async
    async_workers: int = Field(default=4, ge=1, le=256)
    thread_name_prefix: str = "weakbus-async"

    # Emit a debug event per delivered message
    log_deliveries: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "BusSettings":
        """
        Build settings from environment variables.

        Each field maps to an upper-cased variable with the WEAKBUS_ prefix,
        e.g. WEAKBUS_ASYNC_WORKERS. Missing variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)
