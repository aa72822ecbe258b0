from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from typing import Optional, List

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.onboard"]

# 환경변수 불리언 값으로 참을 뜻하는 문자열 (소문자 비교)
TRUE_VALUES = frozenset({"1", "true", "yes", "y", "on"})

DEFAULT_BACKEND_URL = "https://api.gpubudget.com"
DEFAULT_APP_URL = "https://app.gpubudget.com"
DEFAULT_SA_NAME = "gpubudget-connector"
DEFAULT_SA_DISPLAY_NAME = "GpuBudget Connector"
DEFAULT_RESOURCE_GROUP = "gpubudget-connector-rg"
DEFAULT_LOCATION = "eastus"

# GCP 서비스 계정 ID 규칙: 6~30자, 소문자로 시작, 소문자/숫자/하이픈
_SA_NAME_RE = re.compile(r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$")


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in TRUE_VALUES


def _get_strict_bool(name: str) -> bool:
    # 제어 권한 부여 여부는 리터럴 "true" 일 때만 켠다.
    raw = os.getenv(name)
    return raw is not None and raw.strip().lower() == "true"


def split_csv(raw: Optional[str]) -> List[str]:
    """쉼표 구분 문자열을 공백 제거된 리스트로 변환한다. 빈 항목은 버린다."""
    if not raw:
        return []
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass(frozen=True)
class OnboardingConfig:
    """
    실행 1회당 한 번 조립되는 온보딩 설정.

    우선순위: 기본값 < .env 파일 < 환경변수 < CLI 플래그.
    조립이 끝난 뒤에는 os.environ 을 다시 읽지 않는다.
    """

    backend_url: str = DEFAULT_BACKEND_URL
    app_url: str = DEFAULT_APP_URL
    allow_control: bool = False
    auto_run: bool = False
    auth_token: Optional[str] = None

    # GCP
    project_ids: List[str] = field(default_factory=list)
    sa_name: str = DEFAULT_SA_NAME
    sa_display_name: str = DEFAULT_SA_DISPLAY_NAME

    # Azure
    resource_group: Optional[str] = None
    location: str = DEFAULT_LOCATION
    azure_template_file: Optional[str] = None

    # connect
    token_id: Optional[str] = None

    @classmethod
    def from_env(cls) -> "OnboardingConfig":
        cfg = cls(
            backend_url=os.getenv("BACKEND_URL") or DEFAULT_BACKEND_URL,
            app_url=os.getenv("APP_URL") or DEFAULT_APP_URL,
            allow_control=_get_strict_bool("ALLOW_CONTROL"),
            auto_run=_get_bool("AUTO_RUN", False),
            auth_token=os.getenv("AUTH_TOKEN") or None,
            project_ids=split_csv(os.getenv("PROJECT_IDS")),
            sa_name=os.getenv("SA_NAME") or DEFAULT_SA_NAME,
            sa_display_name=os.getenv("SA_DISPLAY_NAME") or DEFAULT_SA_DISPLAY_NAME,
            resource_group=os.getenv("RESOURCE_GROUP") or None,
            location=os.getenv("LOCATION") or DEFAULT_LOCATION,
            azure_template_file=os.getenv("AZURE_TEMPLATE_FILE") or None,
            token_id=os.getenv("TOKEN_ID") or None,
        )
        cfg.validate()
        return cfg

    def with_overrides(self, **overrides: object) -> "OnboardingConfig":
        """
        CLI 플래그 값을 덮어쓴 새 설정을 반환한다.
        값이 None 인 항목은 '지정되지 않음'으로 보고 무시한다.
        """
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "project_ids" in changes and isinstance(changes["project_ids"], str):
            changes["project_ids"] = split_csv(changes["project_ids"])
        if "auth_token" in changes and not changes["auth_token"]:
            changes["auth_token"] = None
        cfg = replace(self, **changes)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        invalid: List[str] = []
        if not self.backend_url.strip():
            invalid.append("BACKEND_URL")
        if not _SA_NAME_RE.match(self.sa_name):
            invalid.append("SA_NAME")
        if not self.location.strip():
            invalid.append("LOCATION")
        if invalid:
            raise ValueError(
                "잘못된 설정 값이 있습니다: " + ", ".join(sorted(set(invalid)))
            )
