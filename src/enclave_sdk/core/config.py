"""
EnclaveConfig: connection settings and timing knobs for the SDK.

    config = EnclaveConfig(api_url="https://api.enclave.example")
    config = EnclaveConfig.from_env()          # ENCLAVE_API_URL, ENCLAVE_WS_URL, ...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields

from enclave_sdk.core.errors import ConfigError
from enclave_sdk.formatters.languages import LANG_EN, SUPPORTED_LANGUAGES


def derive_ws_url(api_url: str) -> str:
    """https://host[/api] -> wss://host/api/ws"""
    base = api_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    if base.endswith("/api"):
        base = base[: -len("/api")]
    return f"{base}/api/ws"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EnclaveConfig:
    """
    Configuration for the REST client, the realtime connection and signing.

    Args:
        api_url:                 Backend base URL (without the /api suffix)
        ws_url:                  WebSocket URL; derived from api_url when empty
        auth_token:              Pre-issued bearer token (skips login)
        timeout:                 Default HTTP timeout in seconds
        commitment_timeout:      Timeout for commitment submit, which proves synchronously
        auto_reconnect:          Reconnect the realtime channel after an unexpected close
        max_reconnect_attempts:  Reconnect attempts before giving up (state ERROR)
        reconnect_delay:         First backoff delay in seconds
        max_reconnect_delay:     Backoff cap in seconds
        reconnect_multiplier:    Backoff growth factor
        ping_interval:           Seconds between heartbeat pings
        ping_timeout:            Minimum pong timeout in seconds
        language:                Default signing message language (LANG_*)
        headers:                 Extra HTTP headers sent with every request
    """
    api_url: str = ""
    ws_url: str = ""
    auth_token: str | None = None
    timeout: float = 30.0
    commitment_timeout: float = 300.0
    auto_reconnect: bool = True
    max_reconnect_attempts: int = 5
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0
    reconnect_multiplier: float = 2.0
    ping_interval: float = 30.0
    ping_timeout: float = 10.0
    language: int = LANG_EN
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.api_url = self.api_url.rstrip("/")
        if not self.ws_url and self.api_url:
            self.ws_url = derive_ws_url(self.api_url)

    @classmethod
    def from_env(cls, prefix: str = "ENCLAVE_") -> EnclaveConfig:
        """
        Build a config from environment variables.

        Each field maps to `{prefix}{FIELD_NAME}` (e.g. ENCLAVE_API_URL,
        ENCLAVE_PING_INTERVAL). Unset variables keep the defaults; `headers`
        is not read from the environment.

        Raises:
            ConfigError: if a numeric or boolean variable cannot be parsed.
        """
        kwargs: dict[str, object] = {}
        for f in fields(cls):
            if f.name == "headers":
                continue
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            try:
                if f.type in ("float", float):
                    kwargs[f.name] = float(raw)
                elif f.type in ("int", int):
                    kwargs[f.name] = int(raw)
                elif f.type in ("bool", bool):
                    kwargs[f.name] = _parse_bool(raw)
                else:
                    kwargs[f.name] = raw
            except ValueError:
                raise ConfigError(
                    f"Invalid value for {prefix}{f.name.upper()}: {raw!r}", f.name
                ) from None
        return cls(**kwargs)  # type: ignore[arg-type]

    def validate(self) -> None:
        """
        Raises:
            ConfigError: for a missing URL, a non-positive timeout or interval,
                a negative attempt count or an unsupported language.
        """
        if not self.api_url:
            raise ConfigError("api_url is required", "api_url")
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigError(f"api_url must be http(s): {self.api_url}", "api_url")
        if not self.ws_url.startswith(("ws://", "wss://")):
            raise ConfigError(f"ws_url must be ws(s): {self.ws_url}", "ws_url")
        for name in ("timeout", "commitment_timeout", "ping_interval", "ping_timeout",
                     "reconnect_delay", "max_reconnect_delay"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive", name)
        if self.max_reconnect_attempts < 0:
            raise ConfigError("max_reconnect_attempts must be >= 0", "max_reconnect_attempts")
        if self.reconnect_multiplier < 1:
            raise ConfigError("reconnect_multiplier must be >= 1", "reconnect_multiplier")
        if self.language not in SUPPORTED_LANGUAGES:
            raise ConfigError(f"Unsupported language {self.language}", "language")
