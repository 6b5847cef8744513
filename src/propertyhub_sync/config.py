"""Engine configuration.

Configuration is a pydantic model that can be built in code or loaded
from YAML::

    database_path: ~/.propertyhub/offline.db
    max_retries: 3
    retry_backoff: exponential
    backoff_base_seconds: 5
    sync_on_enqueue: true
    allowed_resources: [booking, property, message]
    connectivity:
      probe_host: api.propertyhub.example
      probe_port: 443
      check_interval: 30
"""
from __future__ import annotations

import io
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from propertyhub_sync.sync.policy import BackoffStrategy, RetryPolicy, build_retry_policy

DEFAULT_DATABASE_PATH = "~/.propertyhub/offline.db"


class ConnectivityConfig(BaseModel):
    """Settings for the active connectivity probe.

    Attributes
    ----------
    probe_host:
        Host the probe connects to. Empty disables probing; the platform
        must then call ``set_online``.
    probe_port:
        TCP port of the probe.
    probe_timeout:
        Probe connect timeout in seconds.
    check_interval:
        Seconds between background probes.
    """

    probe_host: str = ""
    probe_port: int = Field(default=443, ge=1, le=65535)
    probe_timeout: float = Field(default=2.0, gt=0)
    check_interval: float = Field(default=30.0, gt=0)


class EngineConfig(BaseModel):
    """Top-level configuration for :class:`~propertyhub_sync.engine.OfflineSyncEngine`.

    Attributes
    ----------
    database_path:
        SQLite file backing the store; ``~`` is expanded. ``":memory:"``
        gives a non-durable store.
    max_retries:
        Failed attempts after which an action is dropped.
    retry_backoff:
        :class:`BackoffStrategy` used between failed attempts.
    backoff_base_seconds, backoff_max_seconds, backoff_jitter:
        Parameters of the exponential strategy.
    sync_on_enqueue:
        Start a background pass after every enqueue while online.
    allowed_resources:
        If non-empty, the only resource names ``enqueue`` accepts.
    connectivity:
        :class:`ConnectivityConfig` for the network probe.
    """

    database_path: str = DEFAULT_DATABASE_PATH
    max_retries: int = Field(default=3, ge=1)
    retry_backoff: BackoffStrategy = BackoffStrategy.FIXED
    backoff_base_seconds: float = Field(default=5.0, gt=0)
    backoff_max_seconds: float = Field(default=300.0, gt=0)
    backoff_jitter: float = Field(default=0.1, ge=0, le=1)
    sync_on_enqueue: bool = False
    allowed_resources: list[str] = Field(default_factory=list)
    connectivity: ConnectivityConfig = Field(default_factory=ConnectivityConfig)

    @field_validator("database_path")
    @classmethod
    def _expand_path(cls, value: str) -> str:
        if not value:
            raise ValueError("database_path must not be empty")
        if value == ":memory:":
            return value
        return str(Path(value).expanduser())

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "EngineConfig":
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        return self

    def build_retry_policy(self) -> RetryPolicy:
        """Return the :class:`RetryPolicy` described by this config."""
        return build_retry_policy(
            self.retry_backoff,
            base_seconds=self.backoff_base_seconds,
            max_seconds=self.backoff_max_seconds,
            jitter=self.backoff_jitter,
        )


def load_config(source: str | Path | None = None) -> EngineConfig:
    """Load an :class:`EngineConfig` from a YAML file or YAML text.

    Parameters
    ----------
    source:
        A path to a YAML file, raw YAML text, or None for defaults.

    Raises
    ------
    ValueError
        If the YAML is not a mapping.
    pydantic.ValidationError
        If a value fails validation.
    """
    if source is None:
        return EngineConfig()
    if isinstance(source, Path):
        text = source.read_text(encoding="utf-8")
    elif "\n" not in source and Path(source).is_file():
        text = Path(source).read_text(encoding="utf-8")
    else:
        text = source
    data = yaml.safe_load(io.StringIO(text))
    if data is None:
        return EngineConfig()
    if not isinstance(data, dict):
        raise ValueError("Engine config YAML must be a mapping at the top level.")
    return EngineConfig.model_validate(data)


__all__ = ["ConnectivityConfig", "DEFAULT_DATABASE_PATH", "EngineConfig", "load_config"]
