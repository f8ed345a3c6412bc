"""Language model client.

Thin wrapper over the OpenAI-compatible chat completions API that returns
Results instead of raising. Callers pass role/content messages and get the
reply text back.
"""
from abc import ABC, abstractmethod

import openai
from openai import AsyncOpenAI

from core.config import Settings
from core.errors import (
    AppError,
    Err,
    Ok,
    Result,
    generation_failed,
    rate_limited,
    timeout_error,
)
from core.logging import generator_logger

log = generator_logger()

ChatMessages = list[dict[str, str]]


class LanguageModel(ABC):
    """Anything that can turn chat messages into a reply."""

    @abstractmethod
    async def complete(
        self,
        messages: ChatMessages,
        *,
        max_tokens: int,
        temperature: float = 0.7,
        json_output: bool = False,
    ) -> Result[str, AppError]:
        ...


class OpenAIChatModel(LanguageModel):
    """LanguageModel backed by AsyncOpenAI chat completions."""

    __slots__ = ('_client', '_model', '_timeout')

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str | None = None,
        timeout: float = 20.0,
    ):
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0, timeout=timeout)
        self._model = model
        self._timeout = timeout
        log.debug("language_model_initialized", model=model, base_url=base_url)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIChatModel | None":
        """Build from settings; None when no API key is configured."""
        if not settings.has_language_model:
            return None
        return cls(
            settings.OPENAI_API_KEY,
            settings.OPENAI_MODEL,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
        )

    async def complete(
        self,
        messages: ChatMessages,
        *,
        max_tokens: int,
        temperature: float = 0.7,
        json_output: bool = False,
    ) -> Result[str, AppError]:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_output:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APITimeoutError:
            return timeout_error("chat_completion", self._timeout, origin="language_model")
        except openai.RateLimitError:
            log.warning("language_model_rate_limited", model=self._model)
            return rate_limited(self._model, origin="language_model")
        except openai.OpenAIError as e:
            log.error("language_model_error", model=self._model, error=str(e), error_type=type(e).__name__)
            return generation_failed(str(e), origin="language_model", cause=e)

        if not response.choices:
            return generation_failed("empty response", origin="language_model")

        content = response.choices[0].message.content or ""
        log.debug(
            "language_model_reply",
            model=self._model,
            tokens=response.usage.total_tokens if response.usage else 0,
        )
        return Ok(content)

    async def close(self) -> None:
        await self._client.close()
