from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .llm_base import ChatMessage, LLMAdapter, LLMResponse, check_cancelled

SCENARIOS = ("default", "fenced", "prose", "loop")


@dataclass
class MockAdapter(LLMAdapter):
    """Deterministic stand-in for a model.

    ``responses`` is consumed first, one entry per call: strings are returned
    as text, dicts as JSON, exceptions are raised. Once it is empty the
    ``scenario`` drives the output.
    """

    scenario: str = "default"
    responses: List[Any] = field(default_factory=list)
    provider: str = "mock"
    model_name: str = "mock-model"
    calls: List[List[ChatMessage]] = field(default_factory=list)
    structured_calls: int = 0

    def complete(self, messages: List[ChatMessage], cancel: threading.Event | None = None) -> LLMResponse:
        check_cancelled(cancel)
        self.calls.append(list(messages))
        payload = self._next(messages)
        if isinstance(payload, dict):
            return LLMResponse(raw_text=json.dumps(payload))
        return LLMResponse(raw_text=str(payload))

    def complete_structured(
        self,
        messages: List[ChatMessage],
        schema_name: str,
        schema: Dict[str, Any],
        cancel: threading.Event | None = None,
    ) -> LLMResponse:
        check_cancelled(cancel)
        self.calls.append(list(messages))
        self.structured_calls += 1
        payload = self._next(messages)
        if isinstance(payload, str):
            payload = json.loads(payload)
        if not isinstance(payload, dict):
            raise ValueError(f"Could not parse response with structured output {schema_name}.")
        return LLMResponse(raw_text=json.dumps(payload), parsed=payload)

    def _next(self, messages: List[ChatMessage]) -> Any:
        if self.responses:
            item = self.responses.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return self._build_payload(messages)

    def _build_payload(self, messages: List[ChatMessage]) -> Any:
        system = messages[0].content if messages else ""
        turn = len(self.calls)
        if "planner_output" in system:
            payload = self._planner_payload(turn)
        else:
            payload = self._navigator_payload(turn)
        if self.scenario == "fenced":
            return f"Sure! Here is my answer:\n```json\n{json.dumps(payload, indent=2)}\n```"
        if self.scenario == "prose":
            return "I think we should navigate to the website and click the first result."
        return payload

    def _planner_payload(self, turn: int) -> Dict[str, Any]:
        if self.scenario == "loop":
            return {
                "observation": "Still on the same page",
                "done": False,
                "challenges": "",
                "next_steps": "Click the first result",
                "final_answer": None,
                "reasoning": "The page has not changed",
                "web_task": True,
            }
        done = turn > 1
        return {
            "observation": "The start page is open" if done else "Nothing has been opened yet",
            "done": done,
            "challenges": "",
            "next_steps": "" if done else "Open the start page",
            "final_answer": "Mock task finished" if done else None,
            "reasoning": "Mock planner",
            "web_task": True,
        }

    def _navigator_payload(self, turn: int) -> Dict[str, Any]:
        if self.scenario == "loop":
            action = {"click_element": {"intent": "Click the first result", "index": 1}}
        elif turn <= 1:
            action = {"go_to_url": {"intent": "Open the start page", "url": "https://example.com"}}
        else:
            action = {"done": {"text": "Start page opened", "success": True}}
        return {
            "current_state": {
                "evaluation_previous_goal": "Success",
                "memory": f"Mock navigator turn {turn}",
                "next_goal": "Follow the plan",
            },
            "action": [action],
        }
