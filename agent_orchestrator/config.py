from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet

import yaml
from dotenv import load_dotenv

from agent_orchestrator.models import Role

logger = logging.getLogger(__name__)

DEFAULT_ROLE_PARAMETERS: Dict[str, Dict[Role, Dict[str, float]]] = {
    "openai": {Role.PLANNER: {"temperature": 0.7, "top_p": 0.9}, Role.NAVIGATOR: {"temperature": 0.3, "top_p": 0.85}},
    "anthropic": {Role.PLANNER: {"temperature": 0.3, "top_p": 0.6}, Role.NAVIGATOR: {"temperature": 0.2, "top_p": 0.5}},
    "gemini": {Role.PLANNER: {"temperature": 0.7, "top_p": 0.9}, Role.NAVIGATOR: {"temperature": 0.3, "top_p": 0.85}},
    "ollama": {Role.PLANNER: {"temperature": 0.3, "top_p": 0.9}, Role.NAVIGATOR: {"temperature": 0.1, "top_p": 0.85}},
}

OPENAI_COMPATIBLE_BASE_URLS: Dict[str, str] = {
    "g4f": "http://localhost:1337/v1",
    "ollama": "http://localhost:11434/v1",
    "llama": "https://api.llama.com/compat/v1",
    "deepseek": "https://api.deepseek.com",
}

API_KEY_ENV: Dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "llama": "LLAMA_API_KEY",
    "g4f": "G4F_API_KEY",
    "ollama": "OLLAMA_API_KEY",
}


def _env(key: str, default: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def role_parameters(provider: str, role: Role) -> Dict[str, float]:
    table = DEFAULT_ROLE_PARAMETERS.get(provider, DEFAULT_ROLE_PARAMETERS["openai"])
    return dict(table[role])


@dataclass
class AgentOptions:
    max_steps: int = 100
    max_actions_per_step: int = 10
    max_failures: int = 3
    planning_interval: int = 3
    repetition_threshold: int = 3
    pause_poll_seconds: float = 0.2
    replay_historical_tasks: bool = False
    history_dir: str = "runs"

    def __post_init__(self) -> None:
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        if self.max_failures < 1:
            raise ValueError("max_failures must be at least 1")
        if self.planning_interval < 1:
            raise ValueError("planning_interval must be at least 1")
        if self.repetition_threshold < 1:
            raise ValueError("repetition_threshold must be at least 1")


@dataclass
class RoleModel:
    provider: str = "openai"
    model_name: str = "gpt-4o-mini"
    temperature: float | None = None
    base_url: str | None = None

    def parameters(self, role: Role) -> Dict[str, float]:
        params = role_parameters(self.provider, role)
        if self.temperature is not None:
            params["temperature"] = self.temperature
        return params


@dataclass
class ProviderCapabilities:
    manual_providers: FrozenSet[str] = frozenset({"llama", "g4f"})
    manual_models: FrozenSet[str] = frozenset({"deepseek-reasoner", "deepseek-r1"})
    manual_model_prefixes: FrozenSet[str] = frozenset({"llama-4", "llama-3.3"})
    unreliable_structured_providers: FrozenSet[str] = frozenset({"g4f"})

    def supports_structured_output(self, provider: str, model_name: str) -> bool:
        provider = (provider or "").lower()
        model = (model_name or "").lower()
        if provider in self.manual_providers or model in self.manual_models:
            return False
        return not any(model.startswith(prefix) for prefix in self.manual_model_prefixes)

    def downgrades_on_failure(self, provider: str) -> bool:
        return (provider or "").lower() in self.unreliable_structured_providers


@dataclass
class Settings:
    options: AgentOptions = field(default_factory=AgentOptions)
    planner: RoleModel = field(default_factory=RoleModel)
    navigator: RoleModel = field(default_factory=RoleModel)
    capabilities: ProviderCapabilities = field(default_factory=ProviderCapabilities)

    def role_model(self, role: Role) -> RoleModel:
        return self.planner if role is Role.PLANNER else self.navigator


def _coerce(value: Any, target: Any) -> Any:
    if isinstance(target, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(target, int):
        return int(value)
    if isinstance(target, float):
        return float(value)
    return value


def _apply(instance: Any, values: Dict[str, Any]) -> Any:
    known = {item.name: getattr(instance, item.name) for item in fields(instance)}
    updates: Dict[str, Any] = {}
    for key, value in (values or {}).items():
        if key not in known:
            logger.warning("[config] ignoring unknown setting %s", key)
            continue
        current = known[key]
        if isinstance(current, frozenset):
            updates[key] = frozenset(str(item).lower() for item in value)
        elif current is None:
            updates[key] = value
        else:
            updates[key] = _coerce(value, current)
    return replace(instance, **updates)


def _options_from_env() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for item in fields(AgentOptions):
        raw = _env(f"ORCH_{item.name.upper()}")
        if raw is not None:
            values[item.name] = raw
    return values


def _role_from_env(role: Role) -> Dict[str, Any]:
    prefix = f"ORCH_{role.value.upper()}"
    values: Dict[str, Any] = {}
    for name in ("provider", "model_name", "base_url"):
        raw = _env(f"{prefix}_{name.upper()}")
        if raw is not None:
            values[name] = raw
    temperature = _env(f"{prefix}_TEMPERATURE")
    if temperature is not None:
        values["temperature"] = float(temperature)
    return values


def load_settings(config_path: Path | str | None = None, env_file: Path | str | None = None) -> Settings:
    """Build settings from defaults, then an optional YAML file, then ``ORCH_*`` variables."""
    if env_file:
        load_dotenv(dotenv_path=env_file)
    else:
        load_dotenv()
    raw: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file must contain a mapping: {path}")

    settings = Settings()
    settings.options = _apply(settings.options, raw.get("options", {}))
    settings.options = _apply(settings.options, _options_from_env())
    settings.planner = _apply(settings.planner, raw.get("planner", {}))
    settings.planner = _apply(settings.planner, _role_from_env(Role.PLANNER))
    settings.navigator = _apply(settings.navigator, raw.get("navigator", {}))
    settings.navigator = _apply(settings.navigator, _role_from_env(Role.NAVIGATOR))
    settings.capabilities = _apply(settings.capabilities, raw.get("capabilities", {}))
    unreliable = _env("ORCH_UNRELIABLE_PROVIDERS")
    if unreliable is not None:
        settings.capabilities = replace(
            settings.capabilities,
            unreliable_structured_providers=frozenset(
                item.strip().lower() for item in unreliable.split(",") if item.strip()
            ),
        )
    return settings
