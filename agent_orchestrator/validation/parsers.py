from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

_FENCED_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)
_BRACE_RE = re.compile(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}")
_CONTROL_RE = re.compile(r"[\x00-\x1F\x7F-\x9F]")
_TRAILING_OBJ_COMMA_RE = re.compile(r",\s*}")
_TRAILING_ARR_COMMA_RE = re.compile(r",\s*]")

# deeply nested input exhausts the decoder stack
_DECODE_ERRORS = (json.JSONDecodeError, RecursionError)

TOOL_CALL_DELIMITERS: Tuple[Tuple[str, str], ...] = (
    ("<|tool_call_start_id|>", "<|tool_call_end_id|>"),
    ("<|python_tag|>", "<|/python_tag|>"),
)


class _StrategyMiss(Exception):
    """A strategy did not apply or could not produce an object."""


@dataclass
class ExtractionResult:
    success: bool
    data: Dict[str, Any] | None = None
    errors: List[str] = field(default_factory=list)
    strategy: str | None = None


def _snippet(text: str, limit: int = 200) -> str:
    snippet = text.strip().replace("\n", " ")
    return (snippet[:limit] + "...") if len(snippet) > limit else snippet


def _parse_object(text: str) -> Dict[str, Any]:
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise _StrategyMiss(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def looks_like_agent_response(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    if "current_state" in obj and "action" in obj:
        return True
    return "observation" in obj and "done" in obj


def _direct(text: str) -> Dict[str, Any]:
    trimmed = text.strip()
    if not (trimmed.startswith("{") and trimmed.endswith("}")):
        raise _StrategyMiss("response is not a bare JSON object")
    return _parse_object(trimmed)


def _fenced(text: str) -> Dict[str, Any]:
    match = _FENCED_RE.search(text)
    if not match:
        raise _StrategyMiss("no fenced JSON block")
    return _parse_object(match.group(1))


def _envelope_body(text: str) -> str | None:
    for start_tag, end_tag in TOOL_CALL_DELIMITERS:
        start = text.find(start_tag)
        if start == -1:
            continue
        body_start = start + len(start_tag)
        end = text.find(end_tag, body_start)
        return text[body_start:] if end == -1 else text[body_start:end]
    return None


def _tool_call(text: str) -> Dict[str, Any]:
    body = _envelope_body(text)
    if body is None:
        raise _StrategyMiss("no tool-call envelope")
    call = _parse_object(body.strip())
    if "parameters" not in call:
        raise _StrategyMiss("tool call does not carry parameters")
    parameters = call["parameters"]
    if isinstance(parameters, str):
        return _parse_object(parameters)
    if isinstance(parameters, dict):
        output = parameters.get("output")
        if isinstance(output, str):
            try:
                return _parse_object(output)
            except (*_DECODE_ERRORS, _StrategyMiss):
                return parameters
        return parameters
    raise _StrategyMiss(f"tool call parameters are {type(parameters).__name__}")


def _brace_scan(text: str) -> Dict[str, Any]:
    for match in _BRACE_RE.finditer(text):
        try:
            candidate = json.loads(match.group(0))
        except _DECODE_ERRORS:
            continue
        if looks_like_agent_response(candidate):
            return candidate
    raise _StrategyMiss("no embedded object with agent response keys")


def _repair_and_parse(text: str) -> Dict[str, Any]:
    cleaned = _CONTROL_RE.sub("", text)
    cleaned = _TRAILING_OBJ_COMMA_RE.sub("}", cleaned)
    cleaned = _TRAILING_ARR_COMMA_RE.sub("]", cleaned)
    cleaned = cleaned.replace("'", '"')
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise _StrategyMiss("no braces to repair")
    return _parse_object(cleaned[start : end + 1])


STRATEGIES: Tuple[Tuple[str, Callable[[str], Dict[str, Any]]], ...] = (
    ("direct", _direct),
    ("fenced", _fenced),
    ("tool-call", _tool_call),
    ("brace-scan", _brace_scan),
    ("repair", _repair_and_parse),
)


def extract_record(raw_text: str) -> ExtractionResult:
    """Recover a JSON object from free-form model output.

    Strategies run in a fixed order and the first one that yields an object
    wins. Failures are collected, never raised.
    """
    text = raw_text if isinstance(raw_text, str) else ("" if raw_text is None else str(raw_text))
    errors: List[str] = []
    for name, strategy in STRATEGIES:
        try:
            data = strategy(text)
        except (*_DECODE_ERRORS, _StrategyMiss) as exc:
            errors.append(f"{name}: {exc}")
            continue
        _record_extraction(f"{name}:ok")
        return ExtractionResult(success=True, data=data, errors=errors, strategy=name)
    errors.append(f"No JSON object found in response. Snippet: {_snippet(text)}")
    _record_extraction("all-strategies:failed")
    return ExtractionResult(success=False, errors=errors)


def _record_extraction(note: str) -> None:
    if os.getenv("ORCH_DEBUG_EXTRACT", "") == "1":
        logger.info("[extract] %s", note)
    else:
        logger.debug("[extract] %s", note)
