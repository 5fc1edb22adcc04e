"""Configuration for litemap connections."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ReadinessPolicy(str, Enum):
    """What gated operations do while a connection is still connecting."""

    FAIL_FAST = "fail_fast"
    QUEUE = "queue"


@dataclass
class LitemapConfig:
    """Configuration for a Connection."""

    readiness_policy: ReadinessPolicy = ReadinessPolicy.FAIL_FAST
    implicit_primary_key: str | None = "Id"
    busy_timeout_s: float = 5.0
    journal_mode: str | None = None
    foreign_keys: bool = True
    cached_statements: int = 128
    begin_mode: str = "DEFERRED"

    def __post_init__(self) -> None:
        self.readiness_policy = ReadinessPolicy(self.readiness_policy)
        mode = self.begin_mode.upper()
        if mode not in ("DEFERRED", "IMMEDIATE", "EXCLUSIVE"):
            raise ValueError(f"begin_mode must be DEFERRED, IMMEDIATE or EXCLUSIVE, got {mode!r}")
        self.begin_mode = mode
