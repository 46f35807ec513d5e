"""Chat completion model backed by LiteLLM."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import litellm
from litellm.exceptions import (
    APIConnectionError as LiteLLMConnectionError,
)
from litellm.exceptions import (
    APIError as LiteLLMAPIError,
)
from litellm.exceptions import (
    AuthenticationError as LiteLLMAuthError,
)
from litellm.exceptions import (
    BadRequestError as LiteLLMBadRequestError,
)
from litellm.exceptions import (
    InternalServerError as LiteLLMInternalServerError,
)
from litellm.exceptions import (
    NotFoundError as LiteLLMNotFoundError,
)
from litellm.exceptions import (
    RateLimitError as LiteLLMRateLimitError,
)
from litellm.exceptions import (
    ServiceUnavailableError as LiteLLMServiceUnavailableError,
)
from litellm.exceptions import (
    Timeout as LiteLLMTimeout,
)

from testpilot.config import ConfigurationError
from testpilot.llm.engine import (
    CompletionModel,
    LLMAuthError,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
)

if TYPE_CHECKING:
    from testpilot.config import LLMConfig

logger = logging.getLogger(__name__)

# Suppress litellm's noisy default logging
litellm.suppress_debug_info = True

SYSTEM_PROMPT = "You are a programming assistant."


@dataclass
class RetryConfig:
    """How often a failed query is re-sent before the prompt gets no completions."""

    max_retries: int = 3
    """Re-sends after the first attempt; ``0`` queries each prompt exactly once."""

    base_delay: float = 1.0
    """Seconds to wait before the first re-send."""

    max_delay: float = 60.0
    """Upper bound on the wait between two re-sends."""

    backoff_factor: float = 2.0
    """Growth of the wait from one re-send to the next."""


@dataclass
class RateLimitConfig:
    """Request budget of one model, shared by every function being generated for."""

    requests_per_minute: int = 60
    """Queries (including re-sends) the provider accepts per minute."""


class _RequestBudget:
    """Per-model request allowance, refilled continuously at ``requests_per_minute``.

    With ``parallelism > 1`` several refinement searches query the same model,
    so taking a request is serialised with a lock.
    """

    def __init__(self, requests_per_minute: int) -> None:
        self._per_minute = max(requests_per_minute, 1)
        self._available = float(self._per_minute)
        self._refilled_at = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def available(self) -> float:
        return self._available

    async def take(self) -> None:
        """Wait until a request may be sent and account for it."""
        async with self._lock:
            self._refill()
            while self._available < 1.0:
                missing = 1.0 - self._available
                await asyncio.sleep(min(missing * 60.0 / self._per_minute, 1.0))
                self._refill()
            self._available -= 1.0

    def _refill(self) -> None:
        now = time.monotonic()
        earned = (now - self._refilled_at) * self._per_minute / 60.0
        self._available = min(float(self._per_minute), self._available + earned)
        self._refilled_at = now


class ChatModel(CompletionModel):
    """Queries any LiteLLM-supported chat model for test completions.

    Each query sends a fixed system message and the prompt as the user
    message, asking for ``num_completions`` choices at the given
    temperature.
    """

    def __init__(  # noqa: PLR0913
        self,
        model: str,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        extra_headers: dict[str, str] | None = None,
        max_tokens: int = 500,
        num_completions: int = 1,
        retry: RetryConfig | None = None,
        rate_limit: RateLimitConfig | None = None,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self._extra_headers = dict(extra_headers or {})
        self._max_tokens = max_tokens
        self._num_completions = num_completions
        self._retry = retry or RetryConfig()
        self._budget = _RequestBudget((rate_limit or RateLimitConfig()).requests_per_minute)
        if base_url:
            logger.info("Using chat model API at %s", base_url)

    # ── Public API ────────────────────────────────────────────────

    @property
    def model_name(self) -> str:
        return self._model

    async def query(self, prompt: str, temperature: float) -> set[str]:
        """Send *prompt* to the model and return the content of every choice.

        Raises:
            LLMError: On any LLM-related failure once retries are exhausted.
        """
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": self._max_tokens,
            "top_p": 1,
            "n": self._num_completions,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._base_url:
            kwargs["api_base"] = self._base_url
        if self._extra_headers:
            kwargs["extra_headers"] = dict(self._extra_headers)

        start = time.monotonic()
        raw = await self._call_with_retry(kwargs)
        logger.debug(
            "LLM query (temperature=%s, prompt length=%d) took %.2fs",
            temperature,
            len(prompt),
            time.monotonic() - start,
        )
        return self._parse_choices(raw)

    async def completions(self, prompt: str, temperature: float) -> set[str]:
        try:
            return await self.query(prompt, temperature)
        except LLMError as exc:
            logger.warning("Failed to get completions: %s", exc)
            return set()

    # ── Internal helpers ──────────────────────────────────────────

    async def _call_with_retry(self, kwargs: dict[str, Any]) -> Any:
        """Call ``litellm.acompletion`` with rate limiting and retries.

        Every provider failure leaves this method as an ``LLMError``.
        """
        last_exc: Exception | None = None

        for attempt in range(self._retry.max_retries + 1):
            await self._budget.take()

            try:
                return await litellm.acompletion(**kwargs)
            except LiteLLMAuthError as exc:
                raise LLMAuthError(str(exc)) from exc
            except (LiteLLMBadRequestError, LiteLLMNotFoundError) as exc:
                # Includes ContextWindowExceededError: the prompt itself is rejected.
                raise LLMError(str(exc)) from exc
            except LiteLLMRateLimitError as exc:
                last_exc = exc
                await self._wait_before_retry("Rate limit hit", attempt)
            except (LiteLLMConnectionError, LiteLLMTimeout) as exc:
                last_exc = exc
                await self._wait_before_retry("Connection error", attempt)
            except (LiteLLMServiceUnavailableError, LiteLLMInternalServerError) as exc:
                last_exc = exc
                await self._wait_before_retry("Provider unavailable", attempt)
            except LiteLLMAPIError as exc:
                last_exc = exc
                if not _is_transient(exc):
                    raise LLMError(str(exc)) from exc
                await self._wait_before_retry("Transient API error", attempt)

        if isinstance(last_exc, LiteLLMRateLimitError):
            raise LLMRateLimitError(str(last_exc)) from last_exc
        if isinstance(last_exc, (LiteLLMConnectionError, LiteLLMTimeout)):
            raise LLMConnectionError(str(last_exc)) from last_exc
        raise LLMError(str(last_exc)) from last_exc

    async def _wait_before_retry(self, reason: str, attempt: int) -> None:
        delay = self._backoff_delay(attempt)
        logger.warning(
            "%s (attempt %d/%d), retrying in %.1fs",
            reason,
            attempt + 1,
            self._retry.max_retries + 1,
            delay,
        )
        await asyncio.sleep(delay)

    def _backoff_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay for the given attempt."""
        delay = self._retry.base_delay * (self._retry.backoff_factor**attempt)
        return min(delay, self._retry.max_delay)

    @staticmethod
    def _parse_choices(raw: Any) -> set[str]:
        if raw is None or not getattr(raw, "choices", None):
            raise LLMError("Response data is empty")
        completions: set[str] = set()
        for choice in raw.choices:
            content = choice.message.content
            if content is not None:
                completions.add(content)
        return completions


_SERVER_ERROR_THRESHOLD = 500


def _is_transient(exc: Exception) -> bool:
    """Return ``True`` if the API error looks transient (5xx or timeout)."""
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and status >= _SERVER_ERROR_THRESHOLD:
        return True
    msg = str(exc).lower()
    return "timeout" in msg or "overloaded" in msg


def create_model(config: LLMConfig) -> ChatModel:
    """Build a ``ChatModel`` from the ``llm`` configuration section.

    Raises:
        ConfigurationError: If no model is configured.
    """
    if not config.model:
        raise ConfigurationError(
            "No LLM model configured. Set llm.model in .testpilot.yml "
            "or the TESTPILOT_LLM_MODEL environment variable."
        )
    return ChatModel(
        config.model,
        api_key=config.api_key or None,
        base_url=config.base_url or None,
        extra_headers=config.auth_headers,
        max_tokens=config.max_tokens,
        num_completions=config.num_completions,
        retry=RetryConfig(max_retries=config.max_retries),
        rate_limit=RateLimitConfig(requests_per_minute=config.requests_per_minute),
    )
