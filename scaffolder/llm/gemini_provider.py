#  Project Scaffolder - Gemini Provider
#
#  Google Gemini via the generateContent REST endpoint on the shared
#  httpx client. Gemini responses don't carry usage we rely on, so token
#  counts are estimated from character length.
#
#  Depends on: llm/base.py, config.py
#  Used by:    llm/registry.py

import logging

import httpx

from scaffolder.config import GEMINI_API_URL, LLM_TIMEOUT
from scaffolder.exceptions import LLMError
from scaffolder.llm.base import (
    BaseLLMProvider,
    GenerateOptions,
    GenerateResult,
    LLMMessage,
    TokenUsage,
    estimate_tokens,
)

logger = logging.getLogger("scaffolder.llm.gemini")


class GeminiProvider(BaseLLMProvider):
    name = "gemini"

    def __init__(self, http_client: httpx.AsyncClient | None = None, api_url: str = GEMINI_API_URL):
        self._http_client = http_client
        self._api_url = api_url.rstrip("/")

    @staticmethod
    def build_request(messages: list[LLMMessage], options: GenerateOptions, max_tokens: int) -> dict:
        """Translate neutral messages into a generateContent body."""
        system = options.system_prompt or next(
            (m.content for m in messages if m.role == "system"), None
        )
        chat = [m for m in messages if m.role != "system"]
        if not chat or chat[-1].role != "user":
            raise LLMError("No user message provided")

        body: dict = {
            "contents": [
                {
                    "role": "model" if m.role == "assistant" else "user",
                    "parts": [{"text": m.content}],
                }
                for m in chat
            ],
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": options.temperature,
            },
        }
        if options.stop_sequences:
            body["generationConfig"]["stopSequences"] = options.stop_sequences
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        return body

    async def _generate_chat(
        self, messages: list[LLMMessage], options: GenerateOptions,
    ) -> GenerateResult:
        model = options.model or self.default_model
        body = self.build_request(messages, options, options.max_tokens or self.default_max_tokens)

        client = self._http_client or httpx.AsyncClient(timeout=LLM_TIMEOUT)
        try:
            resp = await client.post(
                f"{self._api_url}/models/{model}:generateContent",
                json=body,
                headers={"x-goog-api-key": self.api_key()},
                timeout=LLM_TIMEOUT,
            )
        except httpx.HTTPError as e:
            raise LLMError(f"Gemini request failed: {e}") from e
        finally:
            if not self._http_client:
                await client.aclose()

        if resp.status_code >= 400:
            logger.warning("Gemini returned %d: %s", resp.status_code, resp.text[:500])
            raise LLMError(f"Gemini API error: {resp.status_code}")
        data = resp.json()

        candidates = data.get("candidates") or []
        first = candidates[0] if candidates else {}
        parts = (first.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts)

        return GenerateResult(
            content=text,
            model=model,
            provider=self.name,
            usage=TokenUsage(
                input_tokens=sum(estimate_tokens(m.content) for m in messages),
                output_tokens=estimate_tokens(text),
            ),
            finish_reason=first.get("finishReason") or "STOP",
        )
