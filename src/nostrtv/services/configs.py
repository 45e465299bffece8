"""Pydantic configuration models for the client services.

[ClientConfig][nostrtv.services.configs.ClientConfig] is the root of the
YAML file read by the CLI; it embeds the relay pool, remote signer and
metrics settings.

Examples:
    ```yaml
    pool:
      relays:
        - wss://relay.damus.io
        - wss://nos.lol
      link:
        connect_timeout: 8
    signer:
      relay: wss://relay.primal.net
      app_name: nostrTV
      request_timeout: 90
    metrics:
      enabled: true
      port: 8000
    session_file: ~/.config/nostrtv/session.json
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from nostrtv.core.metrics import MetricsConfig
from nostrtv.core.pool import RelayPoolConfig
from nostrtv.core.yaml import load_yaml
from nostrtv.models.relay import normalize_relay_url
from nostrtv.utils.transport import RelayLinkConfig


DEFAULT_SIGNER_RELAY = "wss://relay.primal.net"
DEFAULT_SESSION_FILE = Path("~/.config/nostrtv/session.json")


class SignerConfig(BaseModel):
    """Remote signer (NIP-46) session settings.

    All durations are in seconds.
    """

    relay: str = Field(
        default=DEFAULT_SIGNER_RELAY, description="Relay the signer traffic goes through"
    )
    app_name: str = Field(
        default="nostrTV", min_length=1, description="Name shown by the signer app"
    )
    request_timeout: float = Field(
        default=90.0, gt=0, description="Upper bound on one signer request"
    )
    relay_ready_timeout: float = Field(
        default=10.0, gt=0, description="How long sign_event waits for the relay subscription"
    )
    clock_drift_buffer: int = Field(
        default=5, ge=0, le=300, description="Tolerated clock skew for staleness checks"
    )
    link: RelayLinkConfig = Field(default_factory=RelayLinkConfig)

    @field_validator("relay")
    @classmethod
    def _normalize_relay(cls, v: str) -> str:
        return normalize_relay_url(v)


class ClientConfig(BaseModel):
    """Root configuration of the ``nostrtv`` command."""

    pool: RelayPoolConfig = Field(default_factory=RelayPoolConfig)
    signer: SignerConfig = Field(default_factory=SignerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    session_file: Path = Field(
        default=DEFAULT_SESSION_FILE, description="Where the signer session is persisted"
    )

    @field_validator("session_file")
    @classmethod
    def _expand_user(cls, v: Path) -> Path:
        return v.expanduser()

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> ClientConfig:
        """Load and validate a YAML configuration file.

        Raises:
            FileNotFoundError: If the file does not exist.
            nostrtv.core.exceptions.ConfigurationError: If the YAML is invalid.
            pydantic.ValidationError: If a value is out of range.
        """
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> ClientConfig:
        return cls(**config_dict)
