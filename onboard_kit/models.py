"""
models
------

온보딩 한 번의 실행 동안만 존재하는 값 객체들과,
프로비저닝 결과를 백엔드 등록 페이로드로 바꾸는 함수들.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class CloudAccountCandidate:
    # GCP 는 프로젝트 ID, Azure 는 "구독ID/리소스그룹"
    identifier: str
    has_gpu: bool = False


@dataclass(frozen=True)
class ProvisionedIdentity:
    """
    후보 계정 하나에 대한 권한 부여 결과.

    identity 는 서비스 계정 이메일(GCP) 또는 관리 ID client id(Azure).
    credential_material 은 GCP 키 JSON 이며, Azure 는 ID 자체가 자격 증명이라 None.
    """

    identity: str
    roles: Tuple[str, ...]
    credential_material: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class AzureDeployment:
    client_id: str
    resource_id: str
    tenant_id: str
    subscription_id: str


@dataclass(frozen=True)
class TokenExchangeResult:
    auth_token: str
    backend_url: str


@dataclass(frozen=True)
class RegistrationOutcome:
    status_code: int
    body_path: Optional[str] = None

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300


def gcp_registration_payload(
    project_id: str,
    allow_control: bool,
    identity: ProvisionedIdentity,
) -> Dict[str, Any]:
    if identity.credential_material is None:
        raise ValueError(f"서비스 계정 키가 없어 페이로드를 만들 수 없습니다: {identity.identity}")
    return {
        "project_id": project_id,
        "allow_control": bool(allow_control),
        "service_account_info": identity.credential_material,
    }


def azure_registration_payload(
    deployment: AzureDeployment,
    allow_control: bool,
) -> Dict[str, Any]:
    return {
        "tenant_id": deployment.tenant_id,
        "subscription_id": deployment.subscription_id,
        "client_id": deployment.client_id,
        "allow_control": bool(allow_control),
    }
