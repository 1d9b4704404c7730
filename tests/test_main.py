import pytest

from agent_orchestrator.main import build_parser, main


def test_mock_run_writes_artifacts(tmp_path):
    code = main(["--mode", "mock", "--task", "Open the start page", "--history-dir", str(tmp_path), "--keep-history"])
    assert code == 0
    run_dirs = [path for path in tmp_path.iterdir() if path.is_dir()]
    assert len(run_dirs) == 1
    names = {path.name for path in run_dirs[0].iterdir()}
    assert {"events.json", "transcript.md", "run_summary.md", "history.json"} <= names


def test_mock_text_scenario_falls_back_to_parsing(tmp_path):
    code = main(["--mode", "mock", "--scenario", "fenced", "--task", "t", "--history-dir", str(tmp_path)])
    assert code == 0


def test_task_or_replay_required(tmp_path):
    with pytest.raises(SystemExit):
        main(["--mode", "mock", "--history-dir", str(tmp_path)])


def test_live_mode_requires_keys(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        main(["--mode", "live", "--task", "t", "--history-dir", str(tmp_path)])


def test_parser_defaults():
    args = build_parser().parse_args(["--mode", "mock"])
    assert args.scenario == "default"
    assert args.replay is None
