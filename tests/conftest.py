"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 onboard_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.

테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.
또한 개발자 셸에 남아 있는 온보딩 환경변수가 테스트에 섞이지 않도록 매 테스트마다 비운다.
"""

from __future__ import annotations

import os
import sys

import pytest


ONBOARDING_ENV_VARS = [
    "BACKEND_URL",
    "APP_URL",
    "ALLOW_CONTROL",
    "AUTO_RUN",
    "AUTH_TOKEN",
    "PROJECT_IDS",
    "SA_NAME",
    "SA_DISPLAY_NAME",
    "RESOURCE_GROUP",
    "LOCATION",
    "AZURE_TEMPLATE_FILE",
    "TOKEN_ID",
    "CLI_SHOW_PROGRESS",
]


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


@pytest.fixture(autouse=True)
def _clean_onboarding_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ONBOARDING_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
