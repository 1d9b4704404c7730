from __future__ import annotations

import json
import logging
import os
import threading
import time
from typing import Any, Dict, List

from openai import OpenAI
from openai import APIConnectionError, APITimeoutError, RateLimitError, InternalServerError

from agent_orchestrator.config import API_KEY_ENV, OPENAI_COMPATIBLE_BASE_URLS
from .llm_base import ChatMessage, LLMAdapter, LLMResponse, check_cancelled

logger = logging.getLogger(__name__)


class OpenAIAdapter(LLMAdapter):
    """Chat completions client for OpenAI and OpenAI-compatible endpoints."""

    def __init__(
        self,
        model_name: str = "gpt-4o-mini",
        provider: str = "openai",
        temperature: float = 0.2,
        top_p: float | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ) -> None:
        self.provider = provider
        self.model_name = model_name
        self.temperature = temperature
        self.top_p = top_p
        key_env = API_KEY_ENV.get(provider, "OPENAI_API_KEY")
        self.api_key = api_key or os.getenv(key_env)
        base_url = base_url or OPENAI_COMPATIBLE_BASE_URLS.get(provider)
        if not self.api_key:
            if provider == "openai":
                raise RuntimeError(f"{key_env} is not set.")
            # local compatible servers (g4f, ollama) accept any key
            self.api_key = "not-needed"
        self.client = OpenAI(api_key=self.api_key, base_url=base_url)
        self.max_tokens = int(os.getenv("ORCH_MAX_OUTPUT_TOKENS", "1200"))
        self.max_attempts = 4

    def complete(self, messages: List[ChatMessage], cancel: threading.Event | None = None) -> LLMResponse:
        return self._create(messages, None, cancel)

    def complete_structured(
        self,
        messages: List[ChatMessage],
        schema_name: str,
        schema: Dict[str, Any],
        cancel: threading.Event | None = None,
    ) -> LLMResponse:
        response_format = {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "schema": schema, "strict": False},
        }
        result = self._create(messages, response_format, cancel)
        parsed = json.loads(result.raw_text)
        if not isinstance(parsed, dict):
            raise ValueError(f"Structured output for {schema_name} is not an object.")
        result.parsed = parsed
        return result

    def _create(
        self,
        messages: List[ChatMessage],
        response_format: Dict[str, Any] | None,
        cancel: threading.Event | None,
    ) -> LLMResponse:
        attempt = 0
        backoff = 1.0
        while True:
            attempt += 1
            check_cancelled(cancel)
            try:
                kwargs: Dict[str, Any] = {
                    "model": self.model_name,
                    "messages": [message.to_dict() for message in messages],
                    "max_tokens": self.max_tokens,
                    "temperature": self.temperature,
                }
                if self.top_p is not None:
                    kwargs["top_p"] = self.top_p
                if response_format is not None:
                    kwargs["response_format"] = response_format
                response = self.client.chat.completions.create(**kwargs)
                check_cancelled(cancel)
                content = response.choices[0].message.content
                if content is None:
                    raise RuntimeError(f"{self.provider} returned empty content.")
                usage = getattr(response, "usage", None)
                usage_payload = None
                if usage:
                    usage_payload = {
                        "prompt_tokens": getattr(usage, "prompt_tokens", None),
                        "completion_tokens": getattr(usage, "completion_tokens", None),
                        "total_tokens": getattr(usage, "total_tokens", None),
                    }
                    logger.info(
                        "[openai] provider=%s model=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
                        self.provider,
                        self.model_name,
                        usage_payload["prompt_tokens"],
                        usage_payload["completion_tokens"],
                        usage_payload["total_tokens"],
                    )
                else:
                    logger.info("[openai] usage not provided by %s", self.provider)
                return LLMResponse(raw_text=content, usage=usage_payload)
            except RateLimitError as exc:
                error = getattr(exc, "error", None)
                code = getattr(error, "code", None)
                if code == "insufficient_quota":
                    raise RuntimeError(
                        "OpenAI API quota exceeded. Please enable billing in your OpenAI account."
                    ) from exc
                if attempt >= self.max_attempts:
                    raise
            except (APITimeoutError, APIConnectionError, InternalServerError):
                if attempt >= self.max_attempts:
                    raise
            logger.warning("[openai] transient error, retrying in %.1fs (attempt %d)", backoff, attempt)
            if cancel is not None:
                if cancel.wait(backoff):
                    check_cancelled(cancel)
            else:
                time.sleep(backoff)
            backoff *= 2
