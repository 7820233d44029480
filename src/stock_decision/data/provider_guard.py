"""Per-provider circuit breaker.

A provider that fails MAX_CONSECUTIVE_FAILURES times in a row is disabled
for an exponentially growing cooldown. State is keyed by provider name only,
never by symbol.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_FAILURES = 5
BASE_COOLDOWN_SECONDS = 30.0
MAX_COOLDOWN_SECONDS = 300.0

T = TypeVar("T")


class ProviderUnavailableError(Exception):
    """Raised when a provider's circuit is open."""

    def __init__(self, provider: str, retry_after_seconds: float):
        super().__init__(
            f"Provider {provider} disabled, retry in {retry_after_seconds:.0f}s"
        )
        self.provider = provider
        self.retry_after_seconds = retry_after_seconds


@dataclass
class ProviderState:
    """Mutable breaker state for one provider."""

    consecutive_failures: int = 0
    disabled_until: float | None = None
    last_error: str | None = None
    total_failures: int = 0
    total_successes: int = 0


class ProviderGuard:
    """
    Registry of circuit breakers, one per provider name.

    Construct one per process (or per test); nothing is shared implicitly.
    """

    def __init__(
        self,
        max_failures: int = MAX_CONSECUTIVE_FAILURES,
        base_cooldown: float = BASE_COOLDOWN_SECONDS,
        max_cooldown: float = MAX_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_failures = max_failures
        self.base_cooldown = base_cooldown
        self.max_cooldown = max_cooldown
        self._clock = clock
        self._states: dict[str, ProviderState] = {}

    def _state(self, provider: str) -> ProviderState:
        return self._states.setdefault(provider, ProviderState())

    def cooldown_for(self, failures: int) -> float:
        """Cooldown after the given number of consecutive failures."""
        exponent = max(0, failures - self.max_failures)
        return min(self.base_cooldown * (2**exponent), self.max_cooldown)

    def is_available(self, provider: str) -> bool:
        """Whether calls to provider are allowed. Re-enables it once the cooldown has passed."""
        state = self._state(provider)
        if state.disabled_until is None:
            return True
        if self._clock() >= state.disabled_until:
            state.disabled_until = None
            logger.info(f"Provider {provider} re-enabled after cooldown")
            return True
        return False

    def cooldown_remaining(self, provider: str) -> float:
        state = self._state(provider)
        if state.disabled_until is None:
            return 0.0
        return max(0.0, state.disabled_until - self._clock())

    def record_success(self, provider: str) -> None:
        state = self._state(provider)
        if state.consecutive_failures:
            logger.debug(f"Provider {provider} recovered after {state.consecutive_failures} failures")
        state.consecutive_failures = 0
        state.disabled_until = None
        state.total_successes += 1

    def record_failure(self, provider: str, error: Exception | str | None = None) -> None:
        state = self._state(provider)
        state.consecutive_failures += 1
        state.total_failures += 1
        state.last_error = str(error) if error is not None else None

        if state.consecutive_failures >= self.max_failures:
            cooldown = self.cooldown_for(state.consecutive_failures)
            state.disabled_until = self._clock() + cooldown
            logger.warning(
                f"Provider {provider} disabled for {cooldown:.0f}s "
                f"after {state.consecutive_failures} failures"
            )
        else:
            logger.warning(
                f"Provider {provider} failure {state.consecutive_failures}/{self.max_failures}: {error}"
            )

    def get_health(self) -> dict[str, dict[str, Any]]:
        """Health summary per known provider."""
        health: dict[str, dict[str, Any]] = {}
        for provider, state in self._states.items():
            available = self.is_available(provider)
            health[provider] = {
                "available": available,
                "healthy": available and state.consecutive_failures < self.max_failures / 2,
                "consecutive_failures": state.consecutive_failures,
                "total_failures": state.total_failures,
                "total_successes": state.total_successes,
                "cooldown_remaining_seconds": round(self.cooldown_remaining(provider), 1),
                "last_error": state.last_error,
            }
        return health

    def reset(self, provider: str | None = None) -> None:
        """Reset one provider, or all of them."""
        if provider is None:
            self._states.clear()
        else:
            self._states.pop(provider, None)

    async def call(
        self,
        provider: str,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], T] | None = None,
    ) -> T:
        """
        Run operation under the provider's breaker.

        Args:
            provider: Provider name
            operation: Zero-argument coroutine factory
            fallback: Optional value factory used when the circuit is open or the call fails

        Returns:
            Operation result, or fallback() when given and the call cannot succeed

        Raises:
            ProviderUnavailableError: Circuit open and no fallback
            Exception: The operation's own error when there is no fallback
        """
        if not self.is_available(provider):
            if fallback is not None:
                return fallback()
            raise ProviderUnavailableError(provider, self.cooldown_remaining(provider))

        try:
            result = await operation()
        except Exception as e:
            self.record_failure(provider, e)
            if fallback is not None:
                return fallback()
            raise
        self.record_success(provider)
        return result
