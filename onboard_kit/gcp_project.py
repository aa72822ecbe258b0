"""
gcp_project
-----------

접근 가능한 GCP 프로젝트 조회, GPU 인스턴스 탐지, 필수 API enable 을 담당하는 모듈.
"""

from __future__ import annotations

from typing import List

from .logging_utils import get_logger
from .subprocess_utils import run_command, run_json


logger = get_logger(__name__)


REQUIRED_APIS = [
    "compute.googleapis.com",
    "cloudbilling.googleapis.com",
]

GPU_INSTANCE_FILTER = "guestAccelerators:*"


def list_accessible_projects() -> List[str]:
    """
    현재 gcloud 계정으로 접근 가능한 프로젝트 ID 목록을 반환한다.
    하나도 없으면 더 진행할 수 없으므로 RuntimeError.
    """
    logger.info("접근 가능한 프로젝트 조회")
    cmd = [
        "gcloud",
        "projects",
        "list",
        "--format=json(projectId)",
        "--quiet",
    ]
    rows = run_json(cmd, spinner_message="프로젝트 목록 조회 중") or []
    projects = [row["projectId"] for row in rows if row.get("projectId")]
    if not projects:
        raise RuntimeError("현재 계정으로 접근 가능한 GCP 프로젝트가 없습니다.")
    return projects


def project_has_gpu(project_id: str) -> bool:
    """
    GPU(가속기)가 붙은 인스턴스가 하나라도 있는지 확인한다.
    Compute API 비활성화 등으로 조회가 실패하면 GPU 없음으로 본다.
    """
    cmd = [
        "gcloud",
        "compute",
        "instances",
        "list",
        f"--project={project_id}",
        f"--filter={GPU_INSTANCE_FILTER}",
        "--limit=1",
        "--format=json(name)",
        "--quiet",
    ]
    try:
        rows = run_json(cmd, spinner_message=f"GPU 인스턴스 탐지 중 ({project_id})")
    except RuntimeError as e:
        logger.debug("GPU 탐지 실패, GPU 없음으로 처리: %s (%s)", project_id, e)
        return False
    return bool(rows)


def detect_gpu_projects(projects: List[str]) -> List[str]:
    gpu_projects = [p for p in projects if project_has_gpu(p)]
    logger.info("GPU 가 탐지된 프로젝트: %s", gpu_projects)
    return gpu_projects


def ensure_apis_enabled(project_id: str) -> None:
    """
    Compute / Cloud Billing API 를 enable 한다.
    이미 활성화된 API 에 대해 다시 호출해도 문제 없다.
    """
    logger.info("필수 API 활성화: %s (%s)", project_id, REQUIRED_APIS)
    cmd = [
        "gcloud",
        "services",
        "enable",
        *REQUIRED_APIS,
        f"--project={project_id}",
        "--quiet",
    ]
    run_command(cmd, spinner_message=f"API 활성화 중 ({project_id})")
