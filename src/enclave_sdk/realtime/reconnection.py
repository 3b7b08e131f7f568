"""Exponential reconnect backoff with a delay cap and an attempt budget."""

from __future__ import annotations

import logging

from enclave_sdk.core.errors import ConfigError


class ReconnectionPolicy:
    """
    delay(n) = min(initial_delay * multiplier ** (n - 1), max_delay), n = 1..max_attempts

    next_delay() returns None once the budget is spent; the caller then stops
    reconnecting. reset() after every successful connect.
    """

    def __init__(
        self,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        multiplier: float = 2.0,
        max_attempts: int = 5,
        logger: logging.Logger | None = None,
    ) -> None:
        if initial_delay <= 0 or max_delay <= 0:
            raise ConfigError("reconnect delays must be positive", "reconnect_delay")
        if multiplier < 1:
            raise ConfigError("reconnect multiplier must be >= 1", "reconnect_multiplier")
        if max_attempts < 0:
            raise ConfigError("max_attempts must be >= 0", "max_reconnect_attempts")
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.max_attempts = max_attempts
        self._attempt = 0
        self._log = logger or logging.getLogger("enclave_sdk.realtime.reconnect")

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def exhausted(self) -> bool:
        return self._attempt >= self.max_attempts

    def delay_for(self, attempt: int) -> float:
        return min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def next_delay(self) -> float | None:
        if self.exhausted:
            self._log.warning(f"Reconnect budget of {self.max_attempts} attempts exhausted")
            return None
        self._attempt += 1
        delay = self.delay_for(self._attempt)
        self._log.debug(f"Reconnect attempt {self._attempt}/{self.max_attempts} in {delay:.2f}s")
        return delay

    def reset(self) -> None:
        self._attempt = 0
