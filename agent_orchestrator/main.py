from __future__ import annotations

import argparse
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import List

from agent_orchestrator.adapters.gemini_adapter import GeminiAdapter
from agent_orchestrator.adapters.llm_base import LLMAdapter
from agent_orchestrator.adapters.mock_adapter import SCENARIOS, MockAdapter
from agent_orchestrator.adapters.openai_adapter import OpenAIAdapter
from agent_orchestrator.artifacts.writers import write_run_summary, write_transcript
from agent_orchestrator.config import API_KEY_ENV, RoleModel, Settings, load_settings
from agent_orchestrator.environment import SimulatedEnvironment
from agent_orchestrator.events import EventRecorder
from agent_orchestrator.executor import Executor
from agent_orchestrator.history import HistoryStore
from agent_orchestrator.models import Role, RunStatus
from agent_orchestrator.utils.io import write_json
from agent_orchestrator.utils.log import configure_logging
from agent_orchestrator.utils.time import utc_timestamp

logger = logging.getLogger("agent_orchestrator.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Planner/navigator agent orchestrator")
    parser.add_argument("--mode", choices=["mock", "live"], required=True)
    parser.add_argument("--task", help="Task for the agents")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--scenario", choices=SCENARIOS, default="default", help="Mock model behaviour")
    parser.add_argument("--max-steps", type=int)
    parser.add_argument("--max-failures", type=int)
    parser.add_argument("--planning-interval", type=int)
    parser.add_argument("--planner-provider")
    parser.add_argument("--planner-model")
    parser.add_argument("--navigator-provider")
    parser.add_argument("--navigator-model")
    parser.add_argument("--history-dir")
    parser.add_argument("--keep-history", action="store_true", help="Store the run history for replay")
    parser.add_argument("--replay", metavar="RUN_ID", help="Replay a stored run instead of planning")
    parser.add_argument("--replay-delay", type=float, default=2.0)
    parser.add_argument("--log-level")
    return parser


def _apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "max_steps": args.max_steps,
        "max_failures": args.max_failures,
        "planning_interval": args.planning_interval,
        "history_dir": args.history_dir,
    }
    options = replace(settings.options, **{key: value for key, value in overrides.items() if value is not None})
    if args.keep_history:
        options = replace(options, replay_historical_tasks=True)
    planner = settings.planner
    if args.planner_provider or args.planner_model:
        planner = replace(
            planner,
            provider=args.planner_provider or planner.provider,
            model_name=args.planner_model or planner.model_name,
        )
    navigator = settings.navigator
    if args.navigator_provider or args.navigator_model:
        navigator = replace(
            navigator,
            provider=args.navigator_provider or navigator.provider,
            model_name=args.navigator_model or navigator.model_name,
        )
    return replace(settings, options=options, planner=planner, navigator=navigator)


def _ensure_env(settings: Settings) -> None:
    providers = {settings.planner.provider, settings.navigator.provider}
    missing = [
        API_KEY_ENV[provider]
        for provider in sorted(providers)
        if provider in ("openai", "gemini", "deepseek", "llama") and not os.getenv(API_KEY_ENV[provider])
    ]
    if missing:
        missing_keys = ", ".join(missing)
        raise RuntimeError(
            "Missing required API keys: "
            f"{missing_keys}. Create a .env file from .env.example and set the keys."
        )


def _adapter(mode: str, role_model: RoleModel, role: Role, scenario: str) -> LLMAdapter:
    if mode == "mock":
        return MockAdapter(scenario=scenario, model_name=f"mock-{role.value}")
    params = role_model.parameters(role)
    if role_model.provider == "gemini":
        return GeminiAdapter(model_name=role_model.model_name, temperature=params["temperature"], top_p=params.get("top_p"))
    return OpenAIAdapter(
        model_name=role_model.model_name,
        provider=role_model.provider,
        temperature=params["temperature"],
        top_p=params.get("top_p"),
        base_url=role_model.base_url,
    )


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    settings = _apply_args(load_settings(args.config), args)
    if args.mode == "mock":
        # mock text scenarios have no structured output; let them fall back to parsing
        capabilities = settings.capabilities
        settings = replace(
            settings,
            capabilities=replace(
                capabilities,
                unreliable_structured_providers=capabilities.unreliable_structured_providers | {"mock"},
            ),
        )
    else:
        _ensure_env(settings)

    if not args.task and not args.replay:
        raise SystemExit("--task is required unless --replay is given")

    run_id = utc_timestamp()
    history_dir = Path(settings.options.history_dir)
    run_dir = history_dir / run_id
    recorder = EventRecorder()
    executor = Executor(
        task=args.task or f"Replay {args.replay}",
        task_id=run_id,
        environment=SimulatedEnvironment(),
        navigator_llm=_adapter(args.mode, settings.navigator, Role.NAVIGATOR, args.scenario),
        planner_llm=_adapter(args.mode, settings.planner, Role.PLANNER, args.scenario),
        settings=settings,
        history_store=HistoryStore(history_dir),
    )
    executor.subscribe_execution_events(recorder)

    if args.replay:
        results = executor.replay_history(args.replay, delay_between_actions=args.replay_delay)
        write_json(run_dir / "replay_results.json", [result.to_dict() for result in results])
        write_transcript(run_dir / "transcript.md", recorder.events, title=f"replay {args.replay}")
        failed = [result for result in results if result.error]
        logger.info("[main] replayed %d actions, %d failed", len(results), len(failed))
        return 1 if failed or not results else 0

    run = executor.execute()
    write_json(run_dir / "events.json", [event.to_dict() for event in recorder.events])
    write_transcript(run_dir / "transcript.md", recorder.events, title=args.task)
    write_run_summary(run_dir / "run_summary.md", args.task, run, executor.monitor.statistics())
    logger.info("[main] %s: %s", run.status.value, run.message)
    return 0 if run.status is RunStatus.COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
