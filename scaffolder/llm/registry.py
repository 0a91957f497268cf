#  Project Scaffolder - LLM Provider Registry
#
#  Injectable registry of LLM provider adapters. Providers are built lazily
#  on first use and cached, one instance per name, for the registry's
#  lifetime (the DI container holds one registry per application).
#
#  Depends on: llm/base.py, llm/*_provider.py, config.py
#  Used by:    container.py, services/generation.py, routes/providers.py

import logging

import httpx

from scaffolder.config import LLM_CREDENTIAL_ENV, default_llm_provider, get_credential
from scaffolder.exceptions import UnknownProviderError
from scaffolder.llm.base import BaseLLMProvider, GenerateOptions, GenerateResult, LLMMessage

logger = logging.getLogger("scaffolder.llm.registry")


def configured_llm_providers() -> list[str]:
    """Names of providers whose credential env var is set. Offline."""
    return [name for name, env in LLM_CREDENTIAL_ENV.items() if get_credential(env)]


class LLMProviderRegistry:
    """Lookup and lazy construction of provider adapters.

    Accepts an optional shared httpx.AsyncClient for the REST-based
    providers. No fallback between providers: a failure on the requested
    provider is surfaced as-is.
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._http_client = http_client
        self._providers: dict[str, BaseLLMProvider] = {}
        self._factories = {
            "anthropic": self._anthropic,
            "openai": self._openai,
            "gemini": self._gemini,
        }

    # Imports are deferred so one SDK's import cost is only paid on use.
    def _anthropic(self) -> BaseLLMProvider:
        from scaffolder.llm.anthropic_provider import AnthropicProvider
        return AnthropicProvider()

    def _openai(self) -> BaseLLMProvider:
        from scaffolder.llm.openai_provider import OpenAIProvider
        return OpenAIProvider()

    def _gemini(self) -> BaseLLMProvider:
        from scaffolder.llm.gemini_provider import GeminiProvider
        return GeminiProvider(http_client=self._http_client)

    def names(self) -> list[str]:
        return list(self._factories)

    def register(self, provider: BaseLLMProvider):
        """Install a pre-built provider instance (tests, custom clients)."""
        if provider.name not in self._factories:
            raise UnknownProviderError(f"Unknown LLM provider: {provider.name}")
        self._providers[provider.name] = provider

    def get(self, name: str) -> BaseLLMProvider:
        """Return the cached adapter for `name`, building it on first use."""
        if name not in self._factories:
            raise UnknownProviderError(f"Unknown LLM provider: {name}")
        provider = self._providers.get(name)
        if provider is None:
            provider = self._factories[name]()
            self._providers[name] = provider
            logger.debug("Initialized LLM provider %s", name)
        return provider

    def default_provider_name(self) -> str:
        return default_llm_provider()

    def resolve(self, name: str | None = None) -> BaseLLMProvider:
        """Provider for `name` (or the default), checked for credentials."""
        provider = self.get(name or self.default_provider_name())
        provider.require_configured()
        return provider

    def configured_providers(self) -> list[str]:
        return configured_llm_providers()

    async def generate(
        self,
        prompt: str,
        provider: str | None = None,
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        return await self.resolve(provider).generate(prompt, options)

    async def generate_chat(
        self,
        messages: list[LLMMessage],
        provider: str | None = None,
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        return await self.resolve(provider).generate_chat(messages, options)
