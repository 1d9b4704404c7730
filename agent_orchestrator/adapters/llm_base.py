from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Tuple

from agent_orchestrator.errors import RequestCancelledError


@dataclass
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    raw_text: str
    parsed: Dict[str, Any] | None = None
    usage: Dict[str, Any] | None = None


class LLMAdapter(Protocol):
    provider: str
    model_name: str

    def complete(self, messages: List[ChatMessage], cancel: threading.Event | None = None) -> LLMResponse:
        raise NotImplementedError

    def complete_structured(
        self,
        messages: List[ChatMessage],
        schema_name: str,
        schema: Dict[str, Any],
        cancel: threading.Event | None = None,
    ) -> LLMResponse:
        raise NotImplementedError


def check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise RequestCancelledError("Request cancelled")


def split_system(messages: List[ChatMessage]) -> Tuple[str, List[ChatMessage]]:
    system_parts = [message.content for message in messages if message.role == "system"]
    rest = [message for message in messages if message.role != "system"]
    return "\n\n".join(system_parts), rest
