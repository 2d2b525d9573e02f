from unittest.mock import patch

import pytest

from jmrunner.cli import build_parser, build_settings, main, run_serve


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("JMRUNNER_PORT", "JMRUNNER_HOST", "JMRUNNER_LOG_LEVEL", "JMRUNNER_SILENT"):
        monkeypatch.delenv(name, raising=False)


def test_serve_defaults():
    args = build_parser().parse_args(["serve"])
    settings = build_settings(args)
    assert settings.host == "localhost"
    assert settings.port == 80
    assert settings.silent is False
    assert settings.log_level == "INFO"


def test_serve_flags():
    args = build_parser().parse_args([
        "serve",
        "--host", "0.0.0.0",
        "--port", "8080",
        "--base-url", "https://perf.example.org",
        "--test-folder-base", "/data/tests",
        "--temp-folder-base", "/scratch/temp",
        "--jmeter-executable", "/opt/jmeter/bin/jmeter",
        "--refresh-time", "10",
        "--run-test-api-key", "run-key",
        "--check-test-api-key", "check-key",
        "--delete-test-api-key", "delete-key",
        "--custom-labels", "env threads",
    ])
    settings = build_settings(args)
    assert settings.host == "0.0.0.0"
    assert settings.port == 8080
    assert settings.public_url == "https://perf.example.org"
    assert settings.test_folder_base == "/data/tests"
    assert settings.temp_folder_base == "/scratch/temp"
    assert settings.jmeter_executable == "/opt/jmeter/bin/jmeter"
    assert settings.refresh_time == 10
    assert settings.run_test_api_key == "run-key"
    assert settings.check_test_api_key == "check-key"
    assert settings.delete_test_api_key == "delete-key"
    assert settings.custom_label_names == ["env", "threads"]


def test_silent_lowers_log_level():
    settings = build_settings(build_parser().parse_args(["serve", "--silent"]))
    assert settings.silent is True
    assert settings.log_level == "WARNING"


def test_explicit_log_level_wins_over_silent():
    args = build_parser().parse_args(["serve", "--silent", "--log-level", "ERROR"])
    assert build_settings(args).log_level == "ERROR"


def test_env_used_when_flag_absent(monkeypatch):
    monkeypatch.setenv("JMRUNNER_PORT", "9090")
    settings = build_settings(build_parser().parse_args(["serve"]))
    assert settings.port == 9090


def test_flag_overrides_env(monkeypatch):
    monkeypatch.setenv("JMRUNNER_PORT", "9090")
    settings = build_settings(build_parser().parse_args(["serve", "--port", "7070"]))
    assert settings.port == 7070


def test_invalid_log_level_rejected():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["serve", "--log-level", "LOUD"])


def test_run_serve_starts_uvicorn(tmp_path):
    args = build_parser().parse_args([
        "serve",
        "--port", "8081",
        "--silent",
        "--test-folder-base", str(tmp_path / "tests"),
        "--temp-folder-base", str(tmp_path / "temp"),
    ])
    with patch("uvicorn.run") as run:
        run_serve(args)

    run.assert_called_once()
    app = run.call_args.args[0]
    assert app.state.settings.port == 8081
    assert run.call_args.kwargs == {
        "host": "localhost",
        "port": 8081,
        "log_level": "warning",
        "access_log": False,
    }


def test_main_without_command_prints_help(monkeypatch):
    monkeypatch.setattr("sys.argv", ["jmrunner"])
    with pytest.raises(SystemExit) as exc:
        main()
    assert exc.value.code == 1
