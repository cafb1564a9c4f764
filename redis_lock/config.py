"""Settings and Redis connection helpers."""

from __future__ import annotations

import os
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from redis.asyncio import Redis

from .retry import FixedIntervalRetry

DEFAULT_REDIS_URL = "redis://127.0.0.1:6379/0"


class LockSettings(BaseSettings):
    """Lock defaults, read from ``REDIS_LOCK_*`` variables or ``.env``.

    Durations are seconds.
    """

    model_config = SettingsConfigDict(env_prefix="REDIS_LOCK_", env_file=".env", extra="ignore")

    redis_url: Optional[str] = None
    expiration: float = Field(default=30.0, gt=0)
    retry_interval: float = Field(default=0.1, gt=0)
    max_retries: int = Field(default=3, ge=0)
    attempt_timeout: float = Field(default=1.0, gt=0)
    refresh_interval: float = Field(default=10.0, gt=0)
    refresh_timeout: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def _refresh_before_expiry(self) -> "LockSettings":
        if self.refresh_interval >= self.expiration:
            raise ValueError("refresh_interval must be shorter than expiration")
        return self

    def retry_strategy(self) -> FixedIntervalRetry:
        return FixedIntervalRetry(self.retry_interval, self.max_retries)


def get_redis_client(url: Optional[str] = None) -> Redis:
    if url:
        return Redis.from_url(url, decode_responses=True)
    env = os.getenv("REDIS_URL")
    if env:
        return Redis.from_url(env, decode_responses=True)
    return Redis.from_url(DEFAULT_REDIS_URL, decode_responses=True)
