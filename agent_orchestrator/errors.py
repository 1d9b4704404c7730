from __future__ import annotations

from typing import Tuple, Type

LLM_FORBIDDEN_ERROR_MESSAGE = (
    "Access denied (403 Forbidden). Check that the API key has access to the requested model."
)


class AgentError(Exception):
    pass


class ChatModelAuthError(AgentError):
    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ChatModelForbiddenError(AgentError):
    def __init__(self, message: str = LLM_FORBIDDEN_ERROR_MESSAGE, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RequestCancelledError(AgentError):
    pass


class URLNotAllowedError(AgentError):
    pass


class HostConflictError(AgentError):
    """Another controller already holds the host environment."""


class InvocationError(AgentError):
    pass


class OutputContractError(AgentError):
    pass


class StepExecutionError(AgentError):
    pass


FATAL_STEP_ERRORS: Tuple[Type[BaseException], ...] = (
    ChatModelAuthError,
    ChatModelForbiddenError,
    RequestCancelledError,
    URLNotAllowedError,
    HostConflictError,
)

_AUTH_NAMES = {"AuthenticationError", "UnauthenticatedError"}
_FORBIDDEN_NAMES = {"PermissionDeniedError", "PermissionDenied"}
_ABORT_NAMES = {"APIUserAbortError", "AbortError", "CancelledError"}


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_authentication_error(exc: BaseException) -> bool:
    if isinstance(exc, ChatModelAuthError):
        return True
    if type(exc).__name__ in _AUTH_NAMES or _status_code(exc) == 401:
        return True
    return "401" in str(exc) and "unauthorized" in str(exc).lower()


def is_forbidden_error(exc: BaseException) -> bool:
    if isinstance(exc, ChatModelForbiddenError):
        return True
    if type(exc).__name__ in _FORBIDDEN_NAMES or _status_code(exc) == 403:
        return True
    return "403" in str(exc) and "forbidden" in str(exc).lower()


def is_aborted_error(exc: BaseException) -> bool:
    if isinstance(exc, RequestCancelledError):
        return True
    return type(exc).__name__ in _ABORT_NAMES


def classify_llm_error(exc: BaseException) -> BaseException:
    """Return the typed error for auth, forbidden and cancelled failures, else ``exc`` itself."""
    if isinstance(exc, (ChatModelAuthError, ChatModelForbiddenError, RequestCancelledError)):
        return exc
    if is_aborted_error(exc):
        return RequestCancelledError(str(exc) or "Request cancelled")
    if is_authentication_error(exc):
        return ChatModelAuthError("Authentication failed. Please check the API key.", exc)
    if is_forbidden_error(exc):
        return ChatModelForbiddenError(cause=exc)
    return exc
