"""Tests for report_cli.py against the in-memory backend."""

import json

import pytest

import report_cli
from conftest import ADMIN_TOKEN, TODAY


@pytest.fixture
def cli(backend, tmp_path, monkeypatch):
    monkeypatch.setenv("STUDY_REPORT_API_BASE", "relay.example.com/api/gas")
    monkeypatch.setenv("STUDY_REPORT_TOKEN_PATH", str(tmp_path / "device_token"))
    monkeypatch.delenv("STUDY_REPORT_ADMIN_TOKEN", raising=False)
    monkeypatch.setattr(report_cli, "ReportApiClient", lambda *args, **kwargs: backend)
    return report_cli.main


def login(cli):
    return cli(["login", "--group", "グループ3", "--name", "山田太郎", "--email", "taro@example.com"])


def test_login_then_whoami(cli, capsys, tmp_path):
    assert login(cli) == 0
    assert (tmp_path / "device_token").read_text(encoding="utf-8").startswith("tok-")
    assert cli(["whoami"]) == 0
    assert "山田太郎 (グループ3)" in capsys.readouterr().out


def test_whoami_when_logged_out(cli, capsys):
    assert cli(["whoami"]) == 1
    assert "Not logged in" in capsys.readouterr().out


def test_logout_forgets_device(cli, tmp_path):
    login(cli)
    assert cli(["logout"]) == 0
    assert not (tmp_path / "device_token").exists()
    assert cli(["whoami"]) == 1


def test_bad_login_reports_backend_message(cli, capsys):
    code = cli(["login", "--group", "グループ3", "--name", "山田太郎", "--email", "x@example.com"])
    assert code == 1
    assert "not found" in capsys.readouterr().err


def test_submit_json(cli, backend, capsys):
    login(cli)
    capsys.readouterr()
    code = cli(
        [
            "--json",
            "submit",
            "--date",
            TODAY,
            "--status",
            "not_achieved",
            "--minutes",
            "40",
            "--reason",
            "club practice",
            "--improvement",
            "pack the bag earlier",
        ]
    )
    assert code == 0
    results = json.loads(capsys.readouterr().out)
    assert results["pie"] == {"achieved": 0, "not_achieved": 1, "unreported": 6}
    assert backend.reports[("S001", TODAY)]["not_achieved_reason"] == "club practice"


def test_submit_out_of_range_minutes_is_rejected_locally(cli, backend, capsys):
    login(cli)
    code = cli(["submit", "--date", TODAY, "--status", "achieved", "--minutes", "730"])
    assert code == 1
    assert "Invalid input" in capsys.readouterr().err
    assert "/student/submit" not in backend.paths()


def test_submit_requires_login(cli, capsys):
    code = cli(["submit", "--status", "achieved", "--minutes", "30"])
    assert code == 1
    assert "Not logged in" in capsys.readouterr().err


def test_week_shows_stored_report(cli, capsys):
    login(cli)
    cli(["submit", "--date", TODAY, "--status", "achieved", "--minutes", "90"])
    capsys.readouterr()
    assert cli(["week", "--date", TODAY]) == 0
    out = capsys.readouterr().out
    assert f"> {TODAY} ◎" in out
    assert "1 hour 30 minutes" in out


def test_parent_summary(cli, capsys):
    assert cli(["parent", "--group", "グループ3", "--name", "山田太郎"]) == 0
    assert "Study for 5 minutes at lunch" in capsys.readouterr().out


def test_admin_uses_environment_token(cli, capsys, monkeypatch):
    assert cli(["admin", "--group", "グループ3"]) == 1
    assert "No permission." in capsys.readouterr().err
    monkeypatch.setenv("STUDY_REPORT_ADMIN_TOKEN", ADMIN_TOKEN)
    assert cli(["admin", "--group", "グループ3"]) == 0
    assert "Week of 12/1" in capsys.readouterr().out


def test_missing_base_url_exits(cli, monkeypatch):
    monkeypatch.delenv("STUDY_REPORT_API_BASE")
    with pytest.raises(SystemExit):
        cli(["whoami"])


def test_submit_overwrite_drops_fields_not_given(cli, backend):
    login(cli)
    backend.reports[("S001", TODAY)] = {
        "report_date": TODAY,
        "plan_status": "not_achieved",
        "study_minutes": 20,
        "not_achieved_reason": "疲れていた",
        "improvement_choice": "立ったまま5分だけ勉強する",
    }
    code = cli(["submit", "--date", TODAY, "--status", "not_achieved", "--minutes", "40", "--reason", "疲れていた"])
    assert code == 0
    stored = backend.reports[("S001", TODAY)]
    assert stored["study_minutes"] == 40
    assert stored["not_achieved_reason"] == "疲れていた"
    assert stored["improvement_choice"] is None


def test_submit_overwrite_drops_old_free_text_reason(cli, backend):
    login(cli)
    backend.reports[("S001", TODAY)] = {
        "report_date": TODAY,
        "plan_status": "not_achieved",
        "study_minutes": 20,
        "not_achieved_reason": "club practice",
        "improvement_choice": None,
    }
    assert cli(["submit", "--date", TODAY, "--status", "achieved", "--minutes", "60"]) == 0
    stored = backend.reports[("S001", TODAY)]
    assert stored["plan_status"] == "achieved"
    assert stored["not_achieved_reason"] is None
