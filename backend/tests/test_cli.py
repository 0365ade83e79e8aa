import sys

import pytest

from shipline.__main__ import main
from shipline.config import get_settings

PYTHON = sys.executable


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SHIPLINE_GITHUB__TOKEN", raising=False)
    monkeypatch.setenv("SHIPLINE_HISTORY_PATH", str(tmp_path / "runs.jsonl"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _write_pipeline(tmp_path, exit_code: int = 0):
    path = tmp_path / "pipeline.yml"
    path.write_text(
        "name: cli\n"
        "gates:\n"
        "  - type: open_pull_request\n"
        "    branch: staging\n"
        "stages:\n"
        "  - id: lint\n"
        f"    run: [{PYTHON!r}, -c, 'import sys; sys.exit({exit_code})']\n"
        "  - id: test\n"
        "    needs: [lint]\n"
        f"    run: [{PYTHON!r}, -c, 'print(1)']\n",
        encoding="utf-8",
    )
    return path


def test_run_succeeds(tmp_path, capsys):
    code = main(["run", str(_write_pipeline(tmp_path)), "--event", "push", "--branch", "staging"])

    assert code == 0
    assert "succeeded" in capsys.readouterr().out


def test_run_failure_exit_code(tmp_path):
    code = main(["run", str(_write_pipeline(tmp_path, exit_code=1)), "--branch", "staging"])

    assert code == 1


def test_history_lists_runs(tmp_path, capsys):
    main(["run", str(_write_pipeline(tmp_path)), "--branch", "staging"])
    capsys.readouterr()

    assert main(["history"]) == 0
    out = capsys.readouterr().out
    assert "succeeded" in out
    assert "manual -> staging" in out


def test_validate_prints_batches(tmp_path, capsys):
    assert main(["validate", str(_write_pipeline(tmp_path))]) == 0

    out = capsys.readouterr().out
    assert "batch 1: lint" in out
    assert "batch 2: test" in out


def test_config_error_exit_code(tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text("stages: []\n", encoding="utf-8")

    assert main(["run", str(path), "--branch", "staging"]) == 3


def test_bad_variable(tmp_path):
    code = main(
        ["run", str(_write_pipeline(tmp_path)), "--branch", "staging", "--var", "NOEQUALS"]
    )

    assert code == 3
