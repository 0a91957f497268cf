#  Project Scaffolder - LLM Provider Base
#
#  Provider-neutral request/response types and the abstract provider
#  every concrete adapter implements.
#
#  Depends on: config.py, exceptions.py
#  Used by:    llm/*, services/generation.py

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from scaffolder.config import LLM_CREDENTIAL_ENV, LLM_MAX_TOKENS, LLM_MODELS, LLM_TEMPERATURE, get_credential
from scaffolder.exceptions import ProviderNotConfiguredError


@dataclass
class LLMMessage:
    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass
class GenerateOptions:
    model: str | None = None
    max_tokens: int | None = None
    temperature: float = LLM_TEMPERATURE
    system_prompt: str | None = None
    stop_sequences: list[str] = field(default_factory=list)


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class GenerateResult:
    content: str
    model: str
    provider: str
    usage: TokenUsage
    finish_reason: str
    duration_ms: int = 0


def estimate_tokens(text: str) -> int:
    """Rough token count for providers that don't report usage (4 chars/token)."""
    return math.ceil(len(text) / 4)


class BaseLLMProvider(ABC):
    """Base class for LLM provider adapters.

    Subclasses set `name` and implement `_generate_chat`. Credential checks
    happen here, before any client is built or any request is sent.
    """

    name: str = ""

    @property
    def credential_env(self) -> str:
        return LLM_CREDENTIAL_ENV[self.name]

    @property
    def default_model(self) -> str:
        return LLM_MODELS[self.name]

    @property
    def default_max_tokens(self) -> int:
        return LLM_MAX_TOKENS[self.name]

    def api_key(self) -> str:
        return get_credential(self.credential_env)

    def is_configured(self) -> bool:
        """True iff the credential env var is present. Never touches the network."""
        return bool(self.api_key())

    def require_configured(self):
        if not self.is_configured():
            raise ProviderNotConfiguredError(f"Provider {self.name} is not configured")

    async def generate(self, prompt: str, options: GenerateOptions | None = None) -> GenerateResult:
        """Single-prompt generation, wrapped as one user message."""
        return await self.generate_chat([LLMMessage(role="user", content=prompt)], options)

    async def generate_chat(
        self, messages: list[LLMMessage], options: GenerateOptions | None = None,
    ) -> GenerateResult:
        self.require_configured()
        started = time.monotonic()
        result = await self._generate_chat(messages, options or GenerateOptions())
        result.duration_ms = int((time.monotonic() - started) * 1000)
        return result

    @abstractmethod
    async def _generate_chat(
        self, messages: list[LLMMessage], options: GenerateOptions,
    ) -> GenerateResult:
        """Call the provider. Only reached when the provider is configured."""
        ...
