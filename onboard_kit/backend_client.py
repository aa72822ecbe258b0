"""
backend_client
--------------

GpuBudget 백엔드와의 HTTP 통신.

- 일회용 TOKEN_ID 를 Bearer 토큰으로 교환 (GET /cloud-accounts/token/{id})
- 온보딩 결과 등록 (POST /cloud-accounts/gcp, /cloud-accounts/azure)
"""

from __future__ import annotations

import os
import re
import tempfile
from textwrap import shorten
from typing import Any, Dict, Optional
from urllib.parse import unquote

import requests

from .logging_utils import get_logger
from .models import RegistrationOutcome, TokenExchangeResult


logger = get_logger(__name__)


TOKEN_PATH = "/cloud-accounts/token/{token_id}"
GCP_REGISTER_PATH = "/cloud-accounts/gcp"
AZURE_REGISTER_PATH = "/cloud-accounts/azure"

# 실패한 등록 요청의 응답 본문을 남겨두는 고정 경로
GCP_RESPONSE_LOG = os.path.join(tempfile.gettempdir(), "gpubudget-onboard.log")
AZURE_RESPONSE_LOG = os.path.join(tempfile.gettempdir(), "gpubudget-azure-onboard.log")

_TOKEN_ID_RE = re.compile(r"TOKEN_ID=([^&#\s]+)")


class TokenExchangeError(RuntimeError):
    """TOKEN_ID 교환 실패. raw_body 에 백엔드 응답 원문을 담는다."""

    def __init__(self, message: str, raw_body: str = "") -> None:
        super().__init__(message)
        self.raw_body = raw_body


def backend_endpoint(backend_url: str, path: str) -> str:
    return backend_url.rstrip("/") + path


def extract_token_id(text: str) -> Optional[str]:
    """
    Cloud Shell URL(…#TOKEN_ID=xxx 또는 ?TOKEN_ID=xxx)에서 TOKEN_ID 를 뽑는다.
    URL 형태가 아니면 입력 자체를 TOKEN_ID 로 본다.
    """
    text = (text or "").strip()
    if not text:
        return None
    m = _TOKEN_ID_RE.search(text)
    if m:
        return unquote(m.group(1))
    if "://" in text or "=" in text:
        return None
    return text


def exchange_token(token_id: str, default_backend: str) -> TokenExchangeResult:
    """
    일회용 TOKEN_ID 로 인증 토큰과 백엔드 URL 을 받아온다.
    재시도는 하지 않는다. 만료(1시간)는 백엔드가 판단한다.
    """
    url = backend_endpoint(default_backend, TOKEN_PATH.format(token_id=token_id))
    logger.info("인증 토큰 조회: %s", backend_endpoint(default_backend, TOKEN_PATH.format(token_id="***")))

    try:
        resp = requests.get(url)
    except requests.exceptions.RequestException as e:
        raise TokenExchangeError(f"인증 토큰 조회 요청 실패: {e}") from e

    raw = resp.text or ""
    try:
        data = resp.json()
    except ValueError:
        data = None

    token = data.get("token") if isinstance(data, dict) else None
    if not token:
        raise TokenExchangeError(
            f"인증 토큰을 받지 못했습니다 (HTTP {resp.status_code}).", raw_body=raw
        )

    backend_url = data.get("backend_url") or default_backend
    return TokenExchangeResult(auth_token=str(token), backend_url=str(backend_url))


def register(
    path: str,
    payload: Dict[str, Any],
    auth_token: Optional[str],
    backend_url: str,
    body_path: str,
) -> RegistrationOutcome:
    """
    온보딩 결과를 백엔드에 POST 한다.

    2xx 이면 성공, 그 외에는 응답 본문을 body_path 에 그대로 기록하고 실패로 분류한다.
    응답 본문은 해석하지 않는다.
    """
    url = backend_endpoint(backend_url, path)
    headers = {"Content-Type": "application/json"}
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"

    logger.info("백엔드 등록 요청: %s", url)
    try:
        resp = requests.post(url, json=payload, headers=headers)
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"백엔드 등록 요청 실패: {url} ({e})") from e

    outcome = RegistrationOutcome(status_code=resp.status_code)
    if outcome.success:
        logger.info("백엔드 등록 성공 (HTTP %s)", resp.status_code)
        return outcome

    logger.warning(
        "백엔드 등록 실패 (HTTP %s): %s",
        resp.status_code,
        shorten(resp.text or "", width=300),
    )
    try:
        with open(body_path, "wb") as f:
            f.write(resp.content or b"")
    except OSError as e:
        # 본문을 남기지 못해도 실패 분류 결과는 그대로 돌려준다.
        logger.warning("응답 본문을 기록하지 못했습니다: %s (%s)", body_path, e)
        return RegistrationOutcome(status_code=resp.status_code)
    return RegistrationOutcome(status_code=resp.status_code, body_path=body_path)
