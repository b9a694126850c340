"""Chat completion adapter."""

from typing import Any, Protocol

from openai import OpenAI

from backend.rag.config import Settings
from backend.rag.errors import LLMError
from backend.rag.exec.executor import ProviderExecutor

PROVIDER = "chat"


class ChatModel(Protocol):
    """Single-turn text completion."""

    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        json_mode: bool = False,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        ...


class OpenAIChatModel:
    """ChatModel over OpenAI chat completions."""

    def __init__(
        self,
        client: OpenAI,
        executor: ProviderExecutor,
        model: str = "gpt-4o",
        temperature: float = 0.2,
        max_tokens: int = 1200,
    ) -> None:
        self.client = client
        self.executor = executor
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(
        cls, client: OpenAI, executor: ProviderExecutor, settings: Settings
    ) -> "OpenAIChatModel":
        return cls(
            client,
            executor,
            model=settings.openai_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        json_mode: bool = False,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Return the assistant reply for ``prompt``.

        Raises:
            LLMError: If the provider fails or returns no content.
        """
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": self.max_tokens if max_tokens is None else max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = self.executor.call(
            PROVIDER,
            lambda: self.client.chat.completions.create(**kwargs),
            error_cls=LLMError,
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(PROVIDER, "malformed", "completion returned no content")
        return content
