from __future__ import annotations

import json
from pathlib import Path

import pytest

from scripts import build_view_model


def _json_line(output: str) -> object:
    line = next(line for line in output.splitlines() if line.startswith(("{", "[")))
    return json.loads(line)


def test_main_prints_referral_view_model(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = build_view_model.main(
        ["referral", "ref-completed", "--viewer-role", "specialist", "--indent", "0"]
    )

    assert exit_code == 0
    payload = _json_line(capsys.readouterr().out)
    assert payload["patientName"] == "Jane Doe"
    assert payload["specialistClinic"] == "Heart Center, 9 Oak Ave, Springfield"


def test_main_prints_specialist_prescriptions(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = build_view_model.main(["prescriptions", "spec-lee", "--indent", "0"])

    assert exit_code == 0
    payload = _json_line(capsys.readouterr().out)
    assert [item["id"] for item in payload] == ["rx-5", "rx-2"]


def test_main_reports_missing_records(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = build_view_model.main(["visit", "appt-missing"])

    assert exit_code == 1
    assert "appt-missing" in capsys.readouterr().err


def test_main_uses_custom_fixture_directory(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "appointments.json").write_text(
        json.dumps({"v1": {"status": "pending", "clinicName": "Bay Clinic"}}),
        encoding="utf-8",
    )

    exit_code = build_view_model.main(
        ["visit", "v1", "--fixtures-dir", str(tmp_path), "--indent", "0"]
    )

    assert exit_code == 0
    assert _json_line(capsys.readouterr().out)["clinic"] == "Bay Clinic"


def test_main_rejects_missing_fixture_directory(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = build_view_model.main(
        ["visit", "v1", "--fixtures-dir", str(tmp_path / "absent")]
    )

    assert exit_code == 2
    assert "does not exist" in capsys.readouterr().err
