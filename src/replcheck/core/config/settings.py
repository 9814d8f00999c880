"""
Centralized settings for replcheck.

Manifesto:
    A run is defined by a couple of dozen knobs (isolation level, write
    strategies, abort probability, timeouts ...). Parsing them in one
    validated, cached place keeps the executor, runner, recovery and CLI
    agreeing on what the run actually was.

All fields can be set via ``REPLCHECK_*`` environment variables (e.g.
``REPLCHECK_ISOLATION=repeatable-read``) or a ``.env`` file. List fields
take JSON (``REPLCHECK_NODES='["n1","n2","n3"]'``).

Tags:
    replcheck, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from replcheck.core.adapters.types import TimeoutPolicy

from .components import (
    SHORT_NAMES,
    ConsistencyModel,
    Isolation,
    LockingMode,
    WorkloadName,
    WriteStrategy,
)


class HarnessSettings(BaseSettings):
    """replcheck run configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REPLCHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Cluster ──────────────────────────────────────────────────
    nodes: list[str] = Field(default=["n1", "n2", "n3", "n4", "n5"], min_length=1)
    port: int = Field(default=3306)
    replica_port: int = Field(default=33061, description="Group replication traffic")
    user: str = Field(default="replcheck")
    password: str = Field(default="replcheckpw")
    replication_user: str = Field(default="replica")
    replication_password: str = Field(default="replicapw")
    single_node: bool = Field(default=False)
    lazyfs: bool = Field(default=False, description="Wrap the data dir in a lossy filesystem")
    innodb_flush_method: str = Field(default="O_DIRECT")

    # ── Workload ─────────────────────────────────────────────────
    workload: WorkloadName = Field(default=WorkloadName.LIST_APPEND)
    table_count: int = Field(default=2, gt=0)
    isolation: Isolation = Field(default=Isolation.SERIALIZABLE)
    expected_consistency_model: ConsistencyModel = Field(
        default=ConsistencyModel.STRICT_SERIALIZABLE
    )
    predicate_read_probability: float = Field(default=0.0, ge=0.0, le=1.0)
    read_locking: LockingMode = Field(default=LockingMode.NONE)
    write_strategies: list[WriteStrategy] = Field(
        default=[WriteStrategy.ON_DUPLICATE_KEY, WriteStrategy.UPDATE_INSERT],
        min_length=1,
    )
    abort_probability: float = Field(default=0.0, ge=0.0, le=1.0)
    inter_mop_delay: float = Field(default=0.0, ge=0.0, description="Mean seconds between micro-ops")
    read_only_backoff: float = Field(default=0.1, ge=0.0)

    # ── Generator / runner ───────────────────────────────────────
    concurrency: int = Field(default=5, gt=0)
    max_txn_length: int = Field(default=4, gt=0)
    max_writes_per_key: int = Field(default=256, gt=0)
    key_count: int = Field(default=10, gt=0)
    time_limit: float = Field(default=60.0, gt=0)

    # ── Timeouts ─────────────────────────────────────────────────
    connect_timeout: float = Field(default=5.0, gt=0)
    socket_timeout: float = Field(default=10.0, gt=0)
    recovery_socket_timeout: float = Field(default=1000.0, gt=0)
    await_retry_interval: float = Field(default=0.5, gt=0)
    await_log_interval: float = Field(default=10.0, gt=0)
    await_timeout: float = Field(default=60.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("write_strategies")
    @classmethod
    def _dedupe_strategies(cls, value: list[WriteStrategy]) -> list[WriteStrategy]:
        return list(dict.fromkeys(value))

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value

    # ── Derived ──────────────────────────────────────────────────

    def client_timeouts(self) -> TimeoutPolicy:
        return TimeoutPolicy(
            connect_timeout=self.connect_timeout,
            socket_timeout=self.socket_timeout,
        )

    def recovery_timeouts(self) -> TimeoutPolicy:
        return self.client_timeouts().with_socket_timeout(self.recovery_socket_timeout)

    @property
    def primary_node(self) -> str:
        """The node that bootstraps the group during setup."""
        return self.nodes[0]

    def test_name(self) -> str:
        """Short run label, e.g. ``list-append S (Strong-1SR)``."""
        return (
            f"{self.workload.value} {SHORT_NAMES[self.isolation.value]}"
            f" ({SHORT_NAMES[self.expected_consistency_model.value]})"
        )


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, HarnessSettings] = {}


def get_settings(*, _force_reload: bool = False, **overrides) -> HarnessSettings:
    """Load, validate, and cache a :class:`HarnessSettings` instance.

    Keyword overrides (typically from CLI flags) take precedence over the
    environment; settings built with overrides are not cached.
    """
    if overrides:
        return HarnessSettings(**overrides)

    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = HarnessSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "HarnessSettings",
    "get_settings",
    "clear_settings_cache",
]
