"""Text-generation provider with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
SDK-level retries are disabled; the answer orchestrator owns retry policy
and relies on the error classes raised here to tell retryable from fatal.
"""

import logging
from typing import Protocol

import openai
from openai import AsyncOpenAI

from backend.app.config import Settings
from backend.app.errors import (
    ProviderAuthError,
    ProviderFatalError,
    ProviderModelNotFoundError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)

ACCEPTED_FINISH_REASONS = frozenset({"stop", "length"})


class LLMProvider(Protocol):
    """Protocol for text-generation providers."""

    async def generate(self, prompt: str, *, model: str) -> str:
        """Generate a completion for a single prompt.

        Raises:
            ProviderTransientError: Rate limit, unknown model or timeout
            ProviderFatalError: Anything that should stop the fallback chain
        """
        ...


class OpenAIProvider:
    """OpenAI-compatible provider for real generation."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 20.0,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key (read from settings)
            base_url: Optional OpenAI-compatible endpoint
            timeout: Per-call timeout in seconds
            temperature: Sampling temperature
            max_tokens: Completion token cap
            client: Pre-built client (tests)
        """
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, prompt: str, *, model: str) -> str:
        """Generate answer text using the chat completions API."""
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.RateLimitError as e:
            raise ProviderRateLimitError(str(e), model=model, status=429) from e
        except openai.NotFoundError as e:
            raise ProviderModelNotFoundError(str(e), model=model, status=404) from e
        except openai.AuthenticationError as e:
            raise ProviderAuthError(str(e), model=model, status=401) from e
        except openai.APITimeoutError as e:
            # Subclass of APIConnectionError, must come first
            raise ProviderTimeoutError(str(e), model=model) from e
        except openai.APIConnectionError as e:
            raise ProviderUnavailableError(str(e), model=model) from e
        except openai.APIStatusError as e:
            raise ProviderFatalError(str(e), model=model, status=e.status_code) from e
        except openai.APIError as e:
            raise ProviderFatalError(f"Malformed response from {model}: {e}", model=model) from e

        if not response.choices:
            raise ProviderFatalError(f"{model} returned no choices", model=model)

        choice = response.choices[0]
        if choice.finish_reason and choice.finish_reason not in ACCEPTED_FINISH_REASONS:
            raise ProviderFatalError(
                f"{model} finished with reason: {choice.finish_reason}", model=model
            )

        text = choice.message.content or ""
        if not text.strip():
            raise ProviderFatalError(f"{model} returned an empty response", model=model)

        return text


def build_llm_provider(settings: Settings) -> LLMProvider | None:
    """Factory function to build the provider from config.

    Returns:
        OpenAIProvider if an API key is configured, None otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value().strip():
        logger.info("Using OpenAI provider for answers")
        return OpenAIProvider(
            api_key=api_key.get_secret_value().strip(),
            base_url=settings.openai_base_url,
            timeout=settings.llm_timeout_seconds,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    logger.warning("No OpenAI API key configured, answers will fall back to document selection")
    return None
