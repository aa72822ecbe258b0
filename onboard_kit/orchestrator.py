from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple

import click

from .config import OnboardingConfig
from .logging_utils import get_logger
from .models import (
    CloudAccountCandidate,
    ProvisionedIdentity,
    azure_registration_payload,
    gcp_registration_payload,
)
from .selection import Prompt, default_prompt, resolve_resource_group, resolve_selection
from .subprocess_utils import require_command
from . import (
    azure_account,
    backend_client,
    gcp_iam,
    gcp_project,
)


logger = get_logger(__name__)

PROVIDERS: List[str] = ["gcp", "azure"]

TOKEN_ID_FILE = ".token_id"


class OnboardingAborted(RuntimeError):
    pass


def _bullets(items: List[str]) -> List[str]:
    if not items:
        return ["- (none)"]
    return [f"- {i}" for i in items]


def _format_summary(
    provider: str,
    cfg: OnboardingConfig,
    roles: Tuple[str, ...],
    sections: List[Tuple[str, List[str]]],
) -> str:
    lines: List[str] = []
    lines.append("# Onboarding summary")
    lines.append(f"- provider: {provider}")
    lines.append(f"- backend: {cfg.backend_url}")
    lines.append(f"- allow_control: {cfg.allow_control}")
    lines.append(f"- roles: {', '.join(roles)}")
    for title, items in sections:
        lines.append("")
        lines.append(f"## {title}")
        lines.extend(_bullets(items))
    return "\n".join(lines)


def resolve_auth_token(cfg: OnboardingConfig, prompt: Optional[Prompt] = None) -> Optional[str]:
    """
    등록에 쓸 인증 토큰. 설정에 없고 대화형 실행이면 한 번만 물어본다.
    auto-run 이거나 엔터로 건너뛰면 None (등록은 실패가 아니라 생략된다).
    """
    if cfg.auth_token:
        return cfg.auth_token
    if cfg.auto_run:
        logger.info("AUTH_TOKEN 이 없어 백엔드 등록을 생략합니다.")
        return None

    ask = prompt or default_prompt
    click.echo("GpuBudget 에 계정을 등록하려면 인증 토큰이 필요합니다.")
    click.echo(f"토큰은 {cfg.app_url.rstrip('/')}/login 에 로그인해서 받을 수 있습니다.")
    answer = ask("GpuBudget 인증 토큰 입력 (엔터 시 건너뜀)").strip()
    return answer or None


def _print_manual_registration(url: str, payload: Dict[str, Any]) -> None:
    click.echo("")
    click.echo("백엔드 등록을 건너뜁니다.")
    click.echo(f"수동으로 등록하려면 다음 데이터를 {url} 로 POST 하세요:")
    click.echo(json.dumps(payload, indent=2))


def _report_registration_failure(status_code: int, body_path: Optional[str]) -> None:
    if not body_path:
        click.echo(
            f"백엔드가 HTTP {status_code} 로 응답했습니다. 응답 본문은 로그를 확인하세요.",
            err=True,
        )
        return
    click.echo(
        f"백엔드가 HTTP {status_code} 로 응답했습니다. 자세한 내용은 {body_path} 를 확인하세요.",
        err=True,
    )


# ---------------------------------------------------------------------------
# GCP
# ---------------------------------------------------------------------------


def discover_gcp_candidates() -> List[CloudAccountCandidate]:
    projects = gcp_project.list_accessible_projects()
    gpu_projects = set(gcp_project.detect_gpu_projects(projects))

    click.echo("GPU 가 탐지된 프로젝트:")
    if not gpu_projects:
        click.echo("  (탐지된 프로젝트 없음, 그래도 계속 진행할 수 있습니다)")
    for p in projects:
        if p in gpu_projects:
            click.echo(f"  - {p}")

    return [CloudAccountCandidate(identifier=p, has_gpu=p in gpu_projects) for p in projects]


def provision_gcp_project(cfg: OnboardingConfig, project_id: str, key_path: str) -> ProvisionedIdentity:
    """
    API enable → 서비스 계정 준비 → 역할 부여 → 키 발급.
    각 단계는 멱등이라 중간에 실패해도 다시 실행하면 된다. (키 발급만 매번 새 키)
    """
    gcp_project.ensure_apis_enabled(project_id)
    email = gcp_iam.ensure_service_account(project_id, cfg.sa_name, cfg.sa_display_name)
    granted = gcp_iam.grant_roles(project_id, email, gcp_iam.roles_for(cfg.allow_control))
    key = gcp_iam.create_key(email, project_id, key_path)
    return ProvisionedIdentity(identity=email, roles=tuple(granted), credential_material=key)


def onboard_gcp(cfg: OnboardingConfig, prompt: Optional[Prompt] = None) -> Tuple[str, bool]:
    """
    선택된 GCP 프로젝트를 하나씩 온보딩한다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_failures: 프로비저닝에 실패한 프로젝트가 하나라도 있는지 여부
    """
    require_command("gcloud")

    candidates = discover_gcp_candidates()
    selected = resolve_selection(candidates, cfg.project_ids, cfg.auto_run, prompt)
    auth_token = resolve_auth_token(cfg, prompt)
    roles = gcp_iam.roles_for(cfg.allow_control)
    register_url = backend_client.backend_endpoint(cfg.backend_url, backend_client.GCP_REGISTER_PATH)

    logger.info("온보딩 대상 프로젝트: %s", selected)

    registered: List[str] = []
    manual: List[str] = []
    registration_failed: List[str] = []
    provisioning_failed: List[str] = []

    with gcp_iam.temporary_key_file() as key_path:
        for project_id in selected:
            click.echo(f"---- 프로젝트 온보딩: {project_id} ----")
            try:
                identity = provision_gcp_project(cfg, project_id, key_path)
            except Exception:  # noqa: BLE001
                provisioning_failed.append(project_id)
                logger.exception("프로젝트 프로비저닝 실패: %s", project_id)
                continue

            payload = gcp_registration_payload(project_id, cfg.allow_control, identity)

            if not auth_token:
                _print_manual_registration(register_url, payload)
                manual.append(project_id)
                continue

            click.echo(f"{register_url} 로 자격 증명을 등록합니다...")
            try:
                outcome = backend_client.register(
                    backend_client.GCP_REGISTER_PATH,
                    payload,
                    auth_token,
                    cfg.backend_url,
                    backend_client.GCP_RESPONSE_LOG,
                )
            except RuntimeError:
                registration_failed.append(project_id)
                logger.exception("백엔드 등록 요청 실패: %s", project_id)
                continue

            if outcome.success:
                click.echo(f"성공! 프로젝트 {project_id} 계정이 등록되었습니다.")
                registered.append(project_id)
            else:
                _report_registration_failure(outcome.status_code, outcome.body_path)
                registration_failed.append(f"{project_id} (HTTP {outcome.status_code})")

    summary = _format_summary(
        "gcp",
        cfg,
        roles,
        [
            ("Registered", registered),
            ("Manual registration required", manual),
            ("Registration failed", registration_failed),
            ("Provisioning failed", provisioning_failed),
        ],
    )
    return summary, bool(provisioning_failed)


# ---------------------------------------------------------------------------
# Azure
# ---------------------------------------------------------------------------


def onboard_azure(cfg: OnboardingConfig, prompt: Optional[Prompt] = None) -> Tuple[str, bool]:
    """
    현재 구독에 관리 ID 를 배포하고 백엔드에 등록한다.
    배포 단계의 실패는 예외로 그대로 전파되고, 등록 실패는 has_failures=True 로 돌려준다.
    """
    require_command("az")

    subscription_id, _tenant_id = azure_account.current_subscription()
    resource_group = resolve_resource_group(
        cfg.resource_group,
        cfg.auto_run,
        azure_account.list_resource_groups,
        prompt,
    )
    candidate = CloudAccountCandidate(identifier=f"{subscription_id}/{resource_group}")
    logger.info("온보딩 대상: %s", candidate.identifier)

    azure_account.ensure_resource_group(resource_group, cfg.location)
    deployment = azure_account.deploy_managed_identity_template(
        resource_group,
        cfg.allow_control,
        cfg.azure_template_file,
    )
    roles = azure_account.template_roles(cfg.allow_control)
    identity = ProvisionedIdentity(identity=deployment.client_id, roles=roles)

    click.echo("")
    click.echo("배포 결과:")
    click.echo(f"  Managed Identity Client ID: {identity.identity}")
    click.echo(f"  Tenant ID: {deployment.tenant_id}")
    click.echo(f"  Subscription ID: {deployment.subscription_id}")
    click.echo("")

    payload = azure_registration_payload(deployment, cfg.allow_control)
    register_url = backend_client.backend_endpoint(cfg.backend_url, backend_client.AZURE_REGISTER_PATH)

    registered: List[str] = []
    manual: List[str] = []
    failed: List[str] = []

    auth_token = resolve_auth_token(cfg, prompt)
    if not auth_token:
        _print_manual_registration(register_url, payload)
        manual.append(candidate.identifier)
    else:
        click.echo("GpuBudget 백엔드에 Azure 계정을 등록합니다...")
        outcome = backend_client.register(
            backend_client.AZURE_REGISTER_PATH,
            payload,
            auth_token,
            cfg.backend_url,
            backend_client.AZURE_RESPONSE_LOG,
        )
        if outcome.success:
            click.echo("성공! Azure 계정이 GpuBudget 에 등록되었습니다.")
            registered.append(candidate.identifier)
        else:
            _report_registration_failure(outcome.status_code, outcome.body_path)
            if outcome.body_path and os.path.exists(outcome.body_path):
                with open(outcome.body_path, "r", encoding="utf-8", errors="replace") as f:
                    click.echo(f.read(), err=True)
            failed.append(f"{candidate.identifier} (HTTP {outcome.status_code})")

    summary = _format_summary(
        "azure",
        cfg,
        roles,
        [
            ("Registered", registered),
            ("Manual registration required", manual),
            ("Registration failed", failed),
        ],
    )
    return summary, bool(failed)


# ---------------------------------------------------------------------------
# connect (TOKEN_ID 로 자동 실행)
# ---------------------------------------------------------------------------


def resolve_token_id(
    cfg: OnboardingConfig,
    url: Optional[str] = None,
    base_dir: str = ".",
    prompt: Optional[Prompt] = None,
) -> str:
    """
    TOKEN_ID 를 찾는다: 설정(--token-id/TOKEN_ID) > --url > .token_id 파일 > 사용자 입력.
    """
    if cfg.token_id:
        return cfg.token_id

    if url:
        token_id = backend_client.extract_token_id(url)
        if token_id:
            return token_id

    path = os.path.join(base_dir, TOKEN_ID_FILE)
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            token_id = f.read().strip()
        if token_id:
            logger.info("%s 파일에서 TOKEN_ID 를 읽었습니다.", TOKEN_ID_FILE)
            return token_id

    ask = prompt or default_prompt
    click.echo("TOKEN_ID 를 자동으로 찾지 못했습니다.")
    click.echo("Cloud Shell URL 전체(또는 #TOKEN_ID= 뒤의 값)를 붙여넣으세요.")
    token_id = backend_client.extract_token_id(ask("Cloud Shell URL 또는 TOKEN_ID"))
    if not token_id:
        raise OnboardingAborted("TOKEN_ID 가 없습니다. GpuBudget 에서 받은 링크를 사용하세요.")
    return token_id


def connect(
    cfg: OnboardingConfig,
    provider: str,
    url: Optional[str] = None,
    base_dir: str = ".",
    prompt: Optional[Prompt] = None,
) -> Tuple[str, bool]:
    """
    TOKEN_ID 를 인증 토큰으로 교환한 뒤 auto-run 모드로 해당 클라우드 온보딩을 실행한다.
    """
    if provider not in PROVIDERS:
        raise ValueError(f"지원하지 않는 클라우드입니다: {provider}")

    token_id = resolve_token_id(cfg, url=url, base_dir=base_dir, prompt=prompt)
    click.echo("인증 토큰을 가져오는 중...")
    try:
        exchanged = backend_client.exchange_token(token_id, cfg.backend_url)
    except backend_client.TokenExchangeError as e:
        connect_url = f"{cfg.app_url.rstrip('/')}/connect/{provider}"
        raise OnboardingAborted(
            f"인증 토큰을 가져오지 못했습니다: {e}\n"
            f"응답: {e.raw_body}\n"
            "확인 사항:\n"
            "  - TOKEN_ID 가 올바른지\n"
            "  - 토큰이 만료되지 않았는지 (발급 후 1시간 유효)\n"
            "  - 인터넷에 연결되어 있는지\n"
            f"새 링크는 {connect_url} 에서 받을 수 있습니다."
        ) from e

    click.echo("인증 성공")
    run_cfg = cfg.with_overrides(
        auth_token=exchanged.auth_token,
        backend_url=exchanged.backend_url,
        auto_run=True,
    )
    if provider == "gcp":
        return onboard_gcp(run_cfg, prompt)
    return onboard_azure(run_cfg, prompt)


def plan_onboarding(cfg: OnboardingConfig, provider: str) -> str:
    """
    현재 설정으로 어떤 대상/역할이 적용될지 요약 텍스트를 리턴한다.
    실제 클라우드 호출은 하지 않는다.
    """
    if provider not in PROVIDERS:
        raise ValueError(f"지원하지 않는 클라우드입니다: {provider}")

    lines: List[str] = []
    lines.append("# Onboarding plan")
    lines.append(f"- provider: {provider}")
    lines.append(f"- backend: {cfg.backend_url}")
    lines.append(f"- allow_control: {cfg.allow_control}")
    lines.append(f"- auto_run: {cfg.auto_run}")
    lines.append(f"- auth_token: {'(set)' if cfg.auth_token else '(not set, 등록 생략 또는 입력 요청)'}")
    lines.append("")

    if provider == "gcp":
        lines.append("## GCP")
        lines.append(f"- projects: {', '.join(cfg.project_ids) if cfg.project_ids else '(탐색 후 선택)'}")
        lines.append(f"- service_account: {cfg.sa_name}@<project>.iam.gserviceaccount.com")
        roles = gcp_iam.roles_for(cfg.allow_control)
    else:
        lines.append("## Azure")
        lines.append(f"- resource_group: {cfg.resource_group or '(선택 또는 기본값)'}")
        lines.append(f"- location: {cfg.location}")
        lines.append(f"- template: {cfg.azure_template_file or '(패키지 내장 템플릿)'}")
        roles = azure_account.template_roles(cfg.allow_control)

    lines.append("")
    lines.append("## Roles")
    lines.extend(_bullets(list(roles)))
    return "\n".join(lines)
