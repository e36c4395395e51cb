import json
from pathlib import Path

import pytest

from asanalink import cli


def test_parse_command_prints_references(tmp_path: Path, capsys):
    body = tmp_path / "body.md"
    body.write_text(
        "**Asana Task:**\nhttps://app.asana.com/0/1/2\n\n- [x] close on merge\n"
    )
    code = cli.main(["parse", "--body-file", str(body), "--trigger-phrase", "**Asana Task:**"])
    assert code == 0
    assert json.loads(capsys.readouterr().out) == [{"task_id": "2", "close_on_merge": True}]


def test_parse_command_reports_bad_pattern(tmp_path: Path, capsys):
    body = tmp_path / "body.md"
    body.write_text("anything")
    code = cli.main(
        ["parse", "--body-file", str(body), "--trigger-phrase", "(", "--trigger-is-pattern"]
    )
    assert code == 2
    assert "Invalid trigger-phrase pattern" in capsys.readouterr().err


def test_run_without_action_fails(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    for name in ("INPUT_ACTION", "ASANALINK_CONFIG", "GITHUB_ACTIONS"):
        monkeypatch.delenv(name, raising=False)
    code = cli.main(["run", "--input", "task-tracker-token=pat"])
    assert code == 1
    assert "Input required and not supplied: action" in capsys.readouterr().out


def test_run_rejects_malformed_input_override(capsys):
    assert cli.main(["run", "--input", "no-equals-sign"]) == 1
    assert "NAME=VALUE" in capsys.readouterr().err


def test_input_env_overrides(monkeypatch):
    monkeypatch.delenv("INPUT_ACTION", raising=False)
    env = cli._input_env(["trigger-phrase=Implement", "is-pinned=true"], "add-comment")
    assert env["INPUT_ACTION"] == "add-comment"
    assert env["INPUT_TRIGGER-PHRASE"] == "Implement"
    assert env["INPUT_IS-PINNED"] == "true"


def test_run_end_to_end_with_fake_client(tmp_path: Path, monkeypatch, tracker, task_factory):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ASANALINK_CONFIG", raising=False)
    event = tmp_path / "event.json"
    event.write_text(
        json.dumps({"pull_request": {"body": "Implement https://app.asana.com/0/1/2\n- [x] close on merge"}})
    )
    output = tmp_path / "out.txt"
    monkeypatch.setenv("GITHUB_OUTPUT", str(output))
    tracker.tasks["2"] = task_factory("2")
    monkeypatch.setattr(
        "asanalink.dispatcher.Dispatcher._asana_client", lambda self, token: tracker
    )

    code = cli.main(
        [
            "run",
            "--action",
            "complete-task",
            "--event-path",
            str(event),
            "--input",
            "task-tracker-token=pat",
            "--input",
            "trigger-phrase=Implement",
            "--input",
            "is-complete=true",
        ]
    )

    assert code == 0
    assert tracker.tasks["2"].completed is True
    assert '["2"]' in output.read_text()


@pytest.mark.parametrize("argv", [[], ["--quiet"]])
def test_default_command_is_run(argv, monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("INPUT_ACTION", raising=False)
    monkeypatch.delenv("ASANALINK_CONFIG", raising=False)
    monkeypatch.setenv("INPUT_TASK-TRACKER-TOKEN", "pat")
    assert cli.main(argv) == 1
