from __future__ import annotations

import json
import logging
import os
import random
import threading
import time
from typing import Any, Dict, List

from google import genai

from agent_orchestrator.errors import RequestCancelledError, is_authentication_error, is_forbidden_error
from .llm_base import ChatMessage, LLMAdapter, LLMResponse, check_cancelled, split_system

logger = logging.getLogger(__name__)


class GeminiAdapter(LLMAdapter):
    def __init__(self, model_name: str | None = None, temperature: float = 0.2, top_p: float | None = None) -> None:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is not set.")

        self.client = genai.Client(api_key=api_key)
        self.provider = "gemini"

        primary = model_name or os.getenv("GEMINI_MODEL", "gemini-flash-latest")
        self.model_name = primary
        self.model_candidates: List[str] = [primary] + [
            model for model in ("gemini-2.5-flash", "gemini-2.5-pro") if model != primary
        ]
        self.temperature = temperature
        self.top_p = top_p

        self.max_attempts = int(os.getenv("GEMINI_MAX_ATTEMPTS", "5"))
        self.base_delay = float(os.getenv("GEMINI_BASE_DELAY_SECONDS", "1.0"))

    def _is_transient(self, err: Exception) -> bool:
        msg = str(err).lower()
        return any(s in msg for s in ["503", "unavailable", "429", "too many", "timeout", "temporarily"])

    def _contents(self, messages: List[ChatMessage]) -> List[Dict[str, Any]]:
        return [
            {"role": "model" if message.role == "assistant" else "user", "parts": [{"text": message.content}]}
            for message in messages
        ]

    def complete(self, messages: List[ChatMessage], cancel: threading.Event | None = None) -> LLMResponse:
        return LLMResponse(raw_text=self._generate(messages, {}, cancel))

    def complete_structured(
        self,
        messages: List[ChatMessage],
        schema_name: str,
        schema: Dict[str, Any],
        cancel: threading.Event | None = None,
    ) -> LLMResponse:
        text = self._generate(
            messages,
            {"response_mime_type": "application/json", "response_json_schema": schema},
            cancel,
        )
        parsed = json.loads(text)
        if not isinstance(parsed, dict):
            raise ValueError(f"Structured output for {schema_name} is not an object.")
        return LLMResponse(raw_text=text, parsed=parsed)

    def _generate(self, messages: List[ChatMessage], extra: Dict[str, Any], cancel: threading.Event | None) -> str:
        system, rest = split_system(messages)
        config: Dict[str, Any] = {"temperature": self.temperature, **extra}
        if self.top_p is not None:
            config["top_p"] = self.top_p
        if system:
            config["system_instruction"] = system
        last_err: Exception | None = None

        for model in self.model_candidates:
            for attempt in range(1, self.max_attempts + 1):
                check_cancelled(cancel)
                try:
                    logger.info("[gemini] model=%s attempt=%d/%d", model, attempt, self.max_attempts)
                    response = self.client.models.generate_content(
                        model=model,
                        contents=self._contents(rest),
                        config=config,
                    )
                    check_cancelled(cancel)
                    text = getattr(response, "text", None)
                    if not text:
                        raise RuntimeError("Gemini returned empty content.")
                    return text

                except RequestCancelledError:
                    raise
                except Exception as e:
                    if is_authentication_error(e) or is_forbidden_error(e):
                        raise
                    last_err = e
                    if not self._is_transient(e):
                        break

                    delay = self.base_delay * (2 ** (attempt - 1)) + random.random() * 0.5
                    logger.warning("[gemini] transient error: %s -> sleeping %.2fs", e, delay)
                    if cancel is not None:
                        cancel.wait(delay)
                    else:
                        time.sleep(delay)

            logger.warning("[gemini] switching model after failures: %s", model)

        raise RuntimeError(
            "Gemini generate_content failed for all candidate models. "
            f"Last error: {last_err}"
        ) from last_err
