#  Project Scaffolder - OpenAI Provider
#
#  Chat completions via the official openai SDK.
#
#  Depends on: llm/base.py, config.py
#  Used by:    llm/registry.py

import logging

import openai

from scaffolder.config import LLM_TIMEOUT
from scaffolder.exceptions import LLMError
from scaffolder.llm.base import BaseLLMProvider, GenerateOptions, GenerateResult, LLMMessage, TokenUsage

logger = logging.getLogger("scaffolder.llm.openai")


class OpenAIProvider(BaseLLMProvider):
    name = "openai"

    def __init__(self, client: openai.AsyncOpenAI | None = None):
        self._client = client

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self.api_key(), timeout=LLM_TIMEOUT)
        return self._client

    async def _generate_chat(
        self, messages: list[LLMMessage], options: GenerateOptions,
    ) -> GenerateResult:
        chat = []
        if options.system_prompt:
            chat.append({"role": "system", "content": options.system_prompt})
        chat.extend({"role": m.role, "content": m.content} for m in messages)
        model = options.model or self.default_model

        kwargs = {
            "model": model,
            "messages": chat,
            "max_tokens": options.max_tokens or self.default_max_tokens,
            "temperature": options.temperature,
        }
        if options.stop_sequences:
            kwargs["stop"] = options.stop_sequences

        try:
            response = await self._get_client().chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            logger.warning("OpenAI request failed: %s", e)
            raise LLMError(f"OpenAI API error: {e}") from e

        choice = response.choices[0] if response.choices else None
        usage = response.usage
        return GenerateResult(
            content=(choice.message.content if choice else None) or "",
            model=response.model or model,
            provider=self.name,
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
            ),
            finish_reason=(choice.finish_reason if choice else None) or "stop",
        )
