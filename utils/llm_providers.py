"""
Thin adapter layer over LLM provider SDKs (OpenAI, Anthropic, Groq).

Each provider exposes the same interface so callers never import
provider-specific code.  Keys belong to the end user, so instances are
built per request rather than cached.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

import anthropic
import openai

from config.settings import config

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "anthropic", "groq")

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-20241022",
    "groq": "llama-3.3-70b-versatile",
}


class LLMProviderError(Exception):
    """The provider SDK failed (auth, quota, network …)."""


class BaseLLMProvider(ABC):
    """Common interface that every concrete provider implements."""

    default_model: str

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.3,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> str:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# OpenAI (and OpenAI-compatible endpoints)
# ═══════════════════════════════════════════════════════════════════════════════


class OpenAIProvider(BaseLLMProvider):
    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o",
        base_url: str | None = None,
    ):
        self.client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.default_model = default_model

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.3,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> str:
        model = model or self.default_model

        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as exc:
            raise LLMProviderError(str(exc)) from exc

        return response.choices[0].message.content or ""


class GroqProvider(OpenAIProvider):
    """Groq serves an OpenAI-compatible API."""

    def __init__(self, api_key: str, default_model: str = DEFAULT_MODELS["groq"]):
        super().__init__(api_key, default_model, base_url=config.groq_base_url)


# ═══════════════════════════════════════════════════════════════════════════════
# Anthropic
# ═══════════════════════════════════════════════════════════════════════════════


class AnthropicProvider(BaseLLMProvider):
    def __init__(self, api_key: str, default_model: str = DEFAULT_MODELS["anthropic"]):
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.default_model = default_model

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.3,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> str:
        model = model or self.default_model

        kwargs: Dict[str, Any] = {}
        if system:
            kwargs["system"] = system

        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )
        except anthropic.AnthropicError as exc:
            raise LLMProviderError(str(exc)) from exc

        return response.content[0].text


# ═══════════════════════════════════════════════════════════════════════════════
# Factory
# ═══════════════════════════════════════════════════════════════════════════════


def get_llm_provider(
    provider_name: str,
    *,
    api_key: str,
    default_model: str | None = None,
) -> BaseLLMProvider:
    """
    Build an LLM provider instance for one user's key.

    Parameters
    ----------
    provider_name : "openai" | "anthropic" | "groq"
    api_key       : the user's decrypted key.
    default_model : override the default model for this provider instance.
    """
    model = default_model or DEFAULT_MODELS.get(provider_name)

    if provider_name == "openai":
        return OpenAIProvider(api_key=api_key, default_model=model)
    if provider_name == "anthropic":
        return AnthropicProvider(api_key=api_key, default_model=model)
    if provider_name == "groq":
        return GroqProvider(api_key=api_key, default_model=model)
    raise ValueError(f"Unsupported LLM provider: {provider_name}")
