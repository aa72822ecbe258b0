import sys
from typing import Optional

import click

from .config import load_env_files, OnboardingConfig
from .logging_utils import setup_logging, get_logger
from .orchestrator import PROVIDERS, connect as connect_provider, onboard_azure, onboard_gcp, plan_onboarding


logger = get_logger(__name__)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리. .env / .env.onboard / .token_id 를 여기서 찾습니다. (기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-vv 는 라이브러리 로그까지 출력)",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """GpuBudget GCP / Azure 계정 온보딩 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_config_from_ctx(ctx: click.Context, **overrides: object) -> OnboardingConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    cfg = OnboardingConfig.from_env().with_overrides(**overrides)
    logger.debug(
        "Config loaded: backend=%s allow_control=%s auto_run=%s projects=%s rg=%s",
        cfg.backend_url,
        cfg.allow_control,
        cfg.auto_run,
        cfg.project_ids,
        cfg.resource_group,
    )
    return cfg


def _config_or_exit(ctx: click.Context, **overrides: object) -> OnboardingConfig:
    try:
        return _load_config_from_ctx(ctx, **overrides)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)


def _finish(summary: str, has_failures: bool) -> None:
    click.echo("")
    click.echo(summary)
    if has_failures:
        sys.exit(1)


_common_options = [
    click.option(
        "--allow-control",
        "allow_control",
        type=click.BOOL,
        default=None,
        help="true 이면 인스턴스 제어 권한까지 부여합니다. (기본: ALLOW_CONTROL 또는 false)",
    ),
    click.option(
        "--auto-run",
        "auto_run",
        type=click.BOOL,
        default=None,
        help="true 이면 프롬프트 없이 자동으로 대상을 고릅니다. (기본: AUTO_RUN 또는 false)",
    ),
    click.option(
        "--auth-token",
        "auth_token",
        type=str,
        default=None,
        help="GpuBudget 인증 토큰. 없으면 등록을 건너뛰고 페이로드를 출력합니다.",
    ),
]


def common_options(func):  # noqa: ANN001, ANN201
    for option in reversed(_common_options):
        func = option(func)
    return func


@main.command(name="gcp", context_settings=CONTEXT_SETTINGS)
@click.option(
    "--projects",
    "--project-ids",
    "projects",
    type=str,
    default=None,
    help="쉼표로 구분된 프로젝트 ID. 지정하면 탐색 결과와 무관하게 그대로 사용합니다.",
)
@click.option(
    "--sa-name",
    "sa_name",
    type=str,
    default=None,
    help="생성/재사용할 서비스 계정 이름 (기본: SA_NAME 또는 gpubudget-connector)",
)
@common_options
@click.pass_context
def gcp(
    ctx: click.Context,
    projects: Optional[str],
    sa_name: Optional[str],
    allow_control: Optional[bool],
    auto_run: Optional[bool],
    auth_token: Optional[str],
) -> None:
    """GCP 프로젝트에 서비스 계정을 만들고 GpuBudget 에 등록"""
    cfg = _config_or_exit(
        ctx,
        project_ids=projects,
        sa_name=sa_name,
        allow_control=allow_control,
        auto_run=auto_run,
        auth_token=auth_token,
    )

    try:
        summary, has_failures = onboard_gcp(cfg)
    except Exception as e:  # noqa: BLE001
        logger.debug("GCP 온보딩 중 오류 발생", exc_info=True)
        click.echo(f"[ERROR] GCP 온보딩 실패: {e}", err=True)
        sys.exit(1)

    _finish(summary, has_failures)


@main.command(name="azure", context_settings=CONTEXT_SETTINGS)
@click.option(
    "--resource-group",
    "resource_group",
    type=str,
    default=None,
    help="관리 ID 를 배포할 리소스 그룹 (없으면 생성)",
)
@click.option(
    "--location",
    "location",
    type=str,
    default=None,
    help="리소스 그룹을 새로 만들 때 사용할 리전 (기본: LOCATION 또는 eastus)",
)
@click.option(
    "--template-file",
    "template_file",
    type=click.Path(dir_okay=False, exists=True),
    default=None,
    help="내장 ARM 템플릿 대신 사용할 템플릿 파일",
)
@common_options
@click.pass_context
def azure(
    ctx: click.Context,
    resource_group: Optional[str],
    location: Optional[str],
    template_file: Optional[str],
    allow_control: Optional[bool],
    auto_run: Optional[bool],
    auth_token: Optional[str],
) -> None:
    """Azure 구독에 관리 ID 를 배포하고 GpuBudget 에 등록"""
    cfg = _config_or_exit(
        ctx,
        resource_group=resource_group,
        location=location,
        azure_template_file=template_file,
        allow_control=allow_control,
        auto_run=auto_run,
        auth_token=auth_token,
    )

    try:
        summary, has_failures = onboard_azure(cfg)
    except Exception as e:  # noqa: BLE001
        logger.debug("Azure 온보딩 중 오류 발생", exc_info=True)
        click.echo(f"[ERROR] Azure 온보딩 실패: {e}", err=True)
        sys.exit(1)

    _finish(summary, has_failures)


@main.command(name="connect", context_settings=CONTEXT_SETTINGS)
@click.argument("provider", type=click.Choice(PROVIDERS))
@click.option("--token-id", "token_id", type=str, default=None, help="GpuBudget 링크의 TOKEN_ID")
@click.option("--url", "url", type=str, default=None, help="TOKEN_ID 가 포함된 Cloud Shell URL")
@click.option(
    "--allow-control",
    "allow_control",
    type=click.BOOL,
    default=None,
    help="true 이면 인스턴스 제어 권한까지 부여합니다.",
)
@click.pass_context
def connect(
    ctx: click.Context,
    provider: str,
    token_id: Optional[str],
    url: Optional[str],
    allow_control: Optional[bool],
) -> None:
    """
    GpuBudget 링크의 TOKEN_ID 로 인증 토큰을 받아 자동 온보딩을 실행한다.
    (Cloud Shell 자동 실행용)
    """
    cfg = _config_or_exit(ctx, token_id=token_id, allow_control=allow_control)

    try:
        summary, has_failures = connect_provider(cfg, provider, url=url, base_dir=ctx.obj["chdir"])
    except Exception as e:  # noqa: BLE001
        logger.debug("자동 온보딩 중 오류 발생", exc_info=True)
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(1)

    _finish(summary, has_failures)


@main.command(context_settings=CONTEXT_SETTINGS)
@click.argument("provider", type=click.Choice(PROVIDERS))
@click.pass_context
def plan(ctx: click.Context, provider: str) -> None:
    """현재 설정(.env / 환경변수)으로 적용될 대상과 역할을 출력 (클라우드 호출 없음)"""
    cfg = _config_or_exit(ctx)
    click.echo(plan_onboarding(cfg, provider))


def run() -> None:
    """
    콘솔 스크립트 진입점.
    알 수 없는 인자 등 사용법 오류도 exit 1 로 끝낸다. (click 기본값은 2)
    """
    try:
        main.main(prog_name="gpubudget-onboard", standalone_mode=False)
    except click.exceptions.Abort:
        click.echo("중단되었습니다.", err=True)
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
