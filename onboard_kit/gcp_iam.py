"""
gcp_iam
-------

GpuBudget 커넥터 서비스 계정을 준비하고, 역할을 부여하고, 키를 발급하는 모듈.

서비스 계정 조회/생성은 IAM 클라이언트 라이브러리로,
프로젝트 IAM 바인딩과 키 발급은 gcloud CLI 로 처리한다.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from typing import Any, Dict, Iterator, List, Sequence, Tuple

from google.api_core.exceptions import AlreadyExists, NotFound
from google.cloud import iam_admin_v1

from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


READ_ONLY_ROLES: Tuple[str, ...] = (
    "roles/compute.viewer",
    "roles/billing.viewer",
)

CONTROL_ROLES: Tuple[str, ...] = (
    "roles/compute.instanceAdmin.v1",
    "roles/storage.admin",
)


def roles_for(allow_control: bool) -> Tuple[str, ...]:
    """
    allow_control=True 일 때만 제어 권한(인스턴스 관리/스토리지)을 포함한다.
    명시적으로 요청하지 않았는데 제어 권한이 붙으면 보안 사고이므로 다른 조합은 만들지 않는다.
    """
    if allow_control is True:
        return READ_ONLY_ROLES + CONTROL_ROLES
    return READ_ONLY_ROLES


def service_account_email(project_id: str, name: str) -> str:
    return f"{name}@{project_id}.iam.gserviceaccount.com"


def ensure_service_account(project_id: str, name: str, display_name: str) -> str:
    """
    서비스 계정이 있으면 재사용하고, 없을 때만 생성한다.
    생성/재사용된 서비스 계정 이메일을 반환한다.
    """
    email = service_account_email(project_id, name)
    client = iam_admin_v1.IAMClient()

    try:
        client.get_service_account(request={"name": f"projects/{project_id}/serviceAccounts/{email}"})
        logger.info("기존 서비스 계정을 재사용합니다: %s", email)
        return email
    except NotFound:
        logger.info("서비스 계정이 없어 새로 생성합니다: %s", email)

    try:
        created = client.create_service_account(
            request={
                "name": f"projects/{project_id}",
                "account_id": name,
                "service_account": {"display_name": display_name},
            }
        )
    except AlreadyExists:
        # 조회와 생성 사이에 다른 실행이 먼저 만든 경우
        logger.info("서비스 계정이 이미 생성되어 있습니다: %s", email)
        return email

    return created.email or email


def grant_roles(project_id: str, email: str, roles: Sequence[str]) -> List[str]:
    """
    역할마다 add-iam-policy-binding 을 호출한다.
    기존 바인딩은 건드리지 않으며(추가만), 부여한 역할 목록을 반환한다.
    """
    granted: List[str] = []
    for role in roles:
        logger.info("역할 부여: %s -> %s (%s)", role, email, project_id)
        cmd = [
            "gcloud",
            "projects",
            "add-iam-policy-binding",
            project_id,
            f"--member=serviceAccount:{email}",
            f"--role={role}",
            "--condition=None",
            "--format=none",
            "--quiet",
        ]
        run_command(cmd, spinner_message=f"역할 부여 중 ({role})")
        granted.append(role)
    return granted


@contextlib.contextmanager
def temporary_key_file() -> Iterator[str]:
    """
    서비스 계정 키를 잠시 담아둘 임시 파일 경로를 제공한다.
    정상 종료/예외/KeyboardInterrupt 모두에서 파일을 삭제한다.
    """
    fd, path = tempfile.mkstemp(prefix="gpubudget-key-", suffix=".json")
    os.close(fd)
    try:
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)
            logger.debug("임시 키 파일 삭제: %s", path)


def create_key(email: str, project_id: str, key_path: str) -> Dict[str, Any]:
    """
    새 서비스 계정 키를 발급해 key_path 에 기록하고, 키 JSON 을 반환한다.

    호출할 때마다 새 키가 만들어지며 이전 키는 폐기하지 않는다.
    """
    logger.info("서비스 계정 키 발급: %s", email)
    cmd = [
        "gcloud",
        "iam",
        "service-accounts",
        "keys",
        "create",
        key_path,
        f"--iam-account={email}",
        f"--project={project_id}",
        "--key-file-type=json",
        "--quiet",
    ]
    run_command(cmd, spinner_message="서비스 계정 키 발급 중")

    with open(key_path, "r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"발급된 키 파일을 읽을 수 없습니다: {email}") from e
