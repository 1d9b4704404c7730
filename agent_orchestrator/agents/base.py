from __future__ import annotations

import logging
from typing import Any, Dict, List

from agent_orchestrator.adapters.llm_base import ChatMessage, LLMAdapter, check_cancelled
from agent_orchestrator.agents.context import AgentContext
from agent_orchestrator.config import ProviderCapabilities
from agent_orchestrator.errors import (
    ChatModelAuthError,
    ChatModelForbiddenError,
    InvocationError,
    OutputContractError,
    RequestCancelledError,
    classify_llm_error,
)
from agent_orchestrator.messages import convert_input_messages, remove_think_tags
from agent_orchestrator.models import Role
from agent_orchestrator.prompts import system_prompt
from agent_orchestrator.validation.monitor import JsonMonitor

logger = logging.getLogger(__name__)

_PROPAGATED = (ChatModelAuthError, ChatModelForbiddenError, RequestCancelledError)


class BaseAgent:
    """Calls the model for one role and always hands back a schema-valid record.

    Providers with native structured output are asked for the role schema
    directly. Everything else goes through the manual path: free text, think
    tags stripped, then the monitor. An allow-listed provider whose structured
    call fails is moved to the manual path for the rest of the run.
    """

    role: Role = Role.UNKNOWN

    def __init__(
        self,
        llm: LLMAdapter,
        context: AgentContext,
        monitor: JsonMonitor,
        capabilities: ProviderCapabilities | None = None,
    ) -> None:
        self.llm = llm
        self.context = context
        self.monitor = monitor
        self.validator = monitor.validator
        self.capabilities = capabilities or ProviderCapabilities()
        self.provider = getattr(llm, "provider", "") or ""
        self.model_name = getattr(llm, "model_name", "") or ""
        self.uses_structured_path = self.capabilities.supports_structured_output(self.provider, self.model_name)
        logger.info(
            "[%s] provider=%s model=%s structured=%s",
            self.role.value,
            self.provider,
            self.model_name,
            self.uses_structured_path,
        )

    def system_message(self) -> ChatMessage:
        prompt = system_prompt(
            self.role,
            max_actions=self.context.options.max_actions_per_step,
            manual_json=not self.uses_structured_path,
        )
        return ChatMessage("system", prompt)

    def invoke(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        check_cancelled(self.context.cancel_event)
        if self.uses_structured_path:
            try:
                return self._invoke_structured(messages)
            except Exception as exc:
                typed = classify_llm_error(exc)
                if isinstance(typed, _PROPAGATED):
                    if typed is exc:
                        raise
                    raise typed from exc
                if not self.capabilities.downgrades_on_failure(self.provider):
                    raise InvocationError(
                        f"Failed to invoke {self.model_name} with structured output: {exc}"
                    ) from exc
                logger.warning(
                    "[%s] structured output failed for %s, switching to manual parsing: %s",
                    self.role.value,
                    self.provider,
                    exc,
                )
                self.uses_structured_path = False
        return self._invoke_manual(messages)

    def _invoke_structured(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        response = self.llm.complete_structured(
            messages,
            schema_name=self.validator.schema_name(self.role),
            schema=self.validator.structured_schema(self.role),
            cancel=self.context.cancel_event,
        )
        if response.parsed is None:
            raise ValueError("Could not parse response with structured output")
        return response.parsed

    def _invoke_manual(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        converted = convert_input_messages(messages, self.model_name)
        try:
            response = self.llm.complete(converted, cancel=self.context.cancel_event)
        except Exception as exc:
            typed = classify_llm_error(exc)
            if isinstance(typed, _PROPAGATED):
                if typed is exc:
                    raise
                raise typed from exc
            raise InvocationError(f"Failed to invoke {self.model_name}: {exc}") from exc

        text = remove_think_tags(response.raw_text)
        result = self.monitor.resolve(text, role_hint=self.role, context=f"{self.role.value}:{self.model_name}")
        if result.errors:
            logger.info("[%s] %s corrected: %s", self.role.value, result.response_id, "; ".join(result.errors[:3]))
        check = self.validator.validate(result.output, self.role)
        if not check.success:
            raise OutputContractError(
                f"{self.role.value} output still invalid after repair: {'; '.join(check.errors)}"
            )
        return check.data
