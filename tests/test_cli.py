from __future__ import annotations

import sys
from typing import List

import pytest
from click.testing import CliRunner

from onboard_kit import cli
from onboard_kit.config import OnboardingConfig


def test_unknown_argument_exits_with_1(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["gpubudget-onboard", "gcp", "--bogus"])

    with pytest.raises(SystemExit) as excinfo:
        cli.run()

    assert excinfo.value.code == 1


def test_flags_override_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    seen: List[OnboardingConfig] = []

    def fake_onboard(cfg: OnboardingConfig):  # noqa: ANN202
        seen.append(cfg)
        return "# Onboarding summary", False

    monkeypatch.setattr(cli, "onboard_gcp", fake_onboard)

    result = CliRunner().invoke(
        cli.main,
        ["-C", str(tmp_path), "gcp", "--projects", "proj-x,proj-y", "--allow-control", "true"],
        env={"ALLOW_CONTROL": "false", "PROJECT_IDS": "from-env", "AUTO_RUN": "true"},
    )

    assert result.exit_code == 0, result.output
    assert seen[0].project_ids == ["proj-x", "proj-y"]
    assert seen[0].allow_control is True
    assert seen[0].auto_run is True
    assert "# Onboarding summary" in result.output


def test_fatal_error_exits_with_1(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    def failing(cfg: OnboardingConfig):  # noqa: ANN202
        raise RuntimeError("현재 계정으로 접근 가능한 GCP 프로젝트가 없습니다.")

    monkeypatch.setattr(cli, "onboard_gcp", failing)

    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "gcp", "--auto-run", "true"])

    assert result.exit_code == 1
    assert "[ERROR]" in result.output


def test_azure_failures_exit_with_1(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setattr(cli, "onboard_azure", lambda cfg: ("# Onboarding summary", True))

    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "azure", "--resource-group", "rg"])

    assert result.exit_code == 1


def test_invalid_config_exits_with_1(tmp_path) -> None:
    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "plan", "gcp"], env={"SA_NAME": "X"})

    assert result.exit_code == 1
    assert "SA_NAME" in result.output


def test_plan_reads_env_file(tmp_path) -> None:
    (tmp_path / ".env").write_text("ALLOW_CONTROL=true\nPROJECT_IDS=proj-a\n")

    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "plan", "gcp"])

    assert result.exit_code == 0, result.output
    assert "- projects: proj-a" in result.output
    assert "roles/compute.instanceAdmin.v1" in result.output
