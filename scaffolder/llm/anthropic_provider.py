#  Project Scaffolder - Anthropic Provider
#
#  Claude via the official anthropic SDK. System messages are pulled out
#  of the message list into the top-level `system` field.
#
#  Depends on: llm/base.py, config.py
#  Used by:    llm/registry.py

import logging

import anthropic

from scaffolder.config import LLM_TIMEOUT
from scaffolder.exceptions import LLMError
from scaffolder.llm.base import BaseLLMProvider, GenerateOptions, GenerateResult, LLMMessage, TokenUsage

logger = logging.getLogger("scaffolder.llm.anthropic")


class AnthropicProvider(BaseLLMProvider):
    name = "anthropic"

    def __init__(self, client: anthropic.AsyncAnthropic | None = None):
        self._client = client

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key(), timeout=LLM_TIMEOUT)
        return self._client

    async def _generate_chat(
        self, messages: list[LLMMessage], options: GenerateOptions,
    ) -> GenerateResult:
        system_message = next((m.content for m in messages if m.role == "system"), None)
        chat = [
            {"role": m.role, "content": m.content}
            for m in messages if m.role != "system"
        ]
        model = options.model or self.default_model

        kwargs = {
            "model": model,
            "max_tokens": options.max_tokens or self.default_max_tokens,
            "temperature": options.temperature,
            "messages": chat,
        }
        system = options.system_prompt or system_message
        if system:
            kwargs["system"] = system
        if options.stop_sequences:
            kwargs["stop_sequences"] = options.stop_sequences

        try:
            response = await self._get_client().messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.warning("Anthropic request failed: %s", e)
            raise LLMError(f"Anthropic API error: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        return GenerateResult(
            content=text,
            model=getattr(response, "model", None) or model,
            provider=self.name,
            usage=TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            finish_reason=response.stop_reason or "end_turn",
        )
