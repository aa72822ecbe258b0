from __future__ import annotations

from typing import List

import pytest

from onboard_kit import gcp_project


def test_list_accessible_projects_returns_ids(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        gcp_project,
        "run_json",
        lambda cmd, **kw: [{"projectId": "proj-a"}, {"projectId": "proj-b"}],
    )

    assert gcp_project.list_accessible_projects() == ["proj-a", "proj-b"]


def test_list_accessible_projects_fails_when_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gcp_project, "run_json", lambda cmd, **kw: [])

    with pytest.raises(RuntimeError):
        gcp_project.list_accessible_projects()


def test_detect_gpu_projects_treats_probe_failure_as_no_gpu(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: List[list[str]] = []

    def fake_run_json(cmd, **kwargs):  # noqa: ANN001, ANN003
        seen.append(list(cmd))
        project = next(c for c in cmd if c.startswith("--project=")).split("=", 1)[1]
        if project == "broken":
            raise RuntimeError("Compute Engine API has not been used in project broken")
        if project == "gpu":
            return [{"name": "trainer-1"}]
        return []

    monkeypatch.setattr(gcp_project, "run_json", fake_run_json)

    assert gcp_project.detect_gpu_projects(["plain", "broken", "gpu"]) == ["gpu"]
    for cmd in seen:
        assert "--filter=guestAccelerators:*" in cmd
        assert "--limit=1" in cmd


def test_ensure_apis_enabled_enables_compute_and_billing(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[list[str]] = []
    monkeypatch.setattr(gcp_project, "run_command", lambda cmd, **kw: calls.append(list(cmd)))

    gcp_project.ensure_apis_enabled("proj-a")

    assert len(calls) == 1
    assert "compute.googleapis.com" in calls[0]
    assert "cloudbilling.googleapis.com" in calls[0]
    assert "--project=proj-a" in calls[0]
