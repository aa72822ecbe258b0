"""
azure_account
-------------

az CLI 로 로그인 상태/구독을 확인하고, 리소스 그룹을 준비한 뒤
관리 ID + 역할 할당 ARM 템플릿을 배포하는 모듈.
"""

from __future__ import annotations

import contextlib
import os
from datetime import datetime
from importlib import resources
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .logging_utils import get_logger
from .models import AzureDeployment
from .subprocess_utils import run_command, run_json


logger = get_logger(__name__)


TEMPLATE_PACKAGE = "onboard_kit.templates"
TEMPLATE_NAME = "azure-connector.json"

# 내장 템플릿이 allowControl 값에 따라 할당하는 역할 (요약 출력용)
READ_ONLY_ROLES: Tuple[str, ...] = ("Reader",)
CONTROL_ROLES: Tuple[str, ...] = ("Virtual Machine Contributor",)


def template_roles(allow_control: bool) -> Tuple[str, ...]:
    if allow_control is True:
        return READ_ONLY_ROLES + CONTROL_ROLES
    return READ_ONLY_ROLES


def _show_account() -> Dict[str, Any]:
    return run_json(["az", "account", "show", "-o", "json"]) or {}


def current_subscription() -> Tuple[str, str]:
    """
    현재 선택된 구독의 (subscription_id, tenant_id) 를 반환한다.
    로그인되어 있지 않으면 대화형 az login 을 먼저 실행한다.
    """
    logger.info("Azure 로그인 상태 확인")
    try:
        account = _show_account()
    except RuntimeError:
        logger.info("Azure 에 로그인되어 있지 않아 az login 을 실행합니다.")
        run_command(["az", "login"], interactive=True)
        account = _show_account()

    subscription_id = account.get("id")
    tenant_id = account.get("tenantId")
    if not subscription_id or not tenant_id:
        raise RuntimeError("az account show 결과에서 구독/테넌트 ID 를 찾을 수 없습니다.")
    logger.info("사용 구독: %s (tenant=%s)", subscription_id, tenant_id)
    return subscription_id, tenant_id


def list_resource_groups() -> List[str]:
    names = run_json(["az", "group", "list", "--query", "[].name", "-o", "json"]) or []
    return [n for n in names if n]


def ensure_resource_group(name: str, location: str) -> bool:
    """
    리소스 그룹이 없으면 생성한다. 새로 만들었으면 True.
    """
    exists = run_json(["az", "group", "exists", "--name", name, "-o", "json"])
    if exists:
        logger.info("기존 리소스 그룹을 사용합니다: %s", name)
        return False

    logger.info("리소스 그룹 생성: %s (location=%s)", name, location)
    run_command(
        ["az", "group", "create", "--name", name, "--location", location, "-o", "none"],
        spinner_message=f"리소스 그룹 생성 중 ({name})",
    )
    return True


@contextlib.contextmanager
def template_path(override: Optional[str] = None) -> Iterator[str]:
    """
    배포할 ARM 템플릿 파일 경로. override 가 주어지면 그 파일을, 아니면 패키지 내장 템플릿을 쓴다.
    """
    if override:
        if not os.path.isfile(override):
            raise RuntimeError(f"ARM 템플릿을 찾을 수 없습니다: {override}")
        yield override
        return

    ref = resources.files(TEMPLATE_PACKAGE).joinpath(TEMPLATE_NAME)
    if not ref.is_file():
        raise RuntimeError(f"패키지에 ARM 템플릿이 없습니다: {TEMPLATE_NAME}")
    with resources.as_file(ref) as path:
        yield str(path)


def deployment_name(now: Optional[datetime] = None) -> str:
    return "gpubudget-" + (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


def _output_value(outputs: Dict[str, Any], key: str) -> str:
    entry = outputs.get(key) or {}
    value = entry.get("value") if isinstance(entry, dict) else None
    if not value:
        raise RuntimeError(f"배포 출력에 {key} 값이 없습니다.")
    return str(value)


def deploy_managed_identity_template(
    resource_group: str,
    allow_control: bool,
    template_file: Optional[str] = None,
) -> AzureDeployment:
    """
    관리 ID 와 역할 할당을 한 번의 그룹 배포로 만든다.
    부여되는 역할(Reader / VM Contributor)은 템플릿이 allowControl 파라미터로 결정한다.
    """
    name = deployment_name()
    logger.info(
        "GpuBudget 커넥터 배포: rg=%s deployment=%s allow_control=%s",
        resource_group,
        name,
        allow_control,
    )
    with template_path(template_file) as path:
        outputs = run_json(
            [
                "az",
                "deployment",
                "group",
                "create",
                "--resource-group",
                resource_group,
                "--name",
                name,
                "--template-file",
                path,
                "--parameters",
                f"allowControl={'true' if allow_control else 'false'}",
                "--query",
                "properties.outputs",
                "-o",
                "json",
            ],
            spinner_message="관리 ID 배포 중",
        ) or {}

    return AzureDeployment(
        client_id=_output_value(outputs, "managedIdentityClientId"),
        resource_id=_output_value(outputs, "managedIdentityResourceId"),
        tenant_id=_output_value(outputs, "tenantId"),
        subscription_id=_output_value(outputs, "subscriptionId"),
    )
