"""
selection
---------

온보딩 대상 선택 로직.

배치(명시 목록 / auto-run)와 대화형 선택이 같은 함수를 거치도록 하고,
사용자 입력은 prompt 콜러블로 주입받아 테스트에서 스크립트 입력으로 대체할 수 있게 한다.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence

import click

from .config import DEFAULT_RESOURCE_GROUP, split_csv
from .logging_utils import get_logger
from .models import CloudAccountCandidate


logger = get_logger(__name__)


Prompt = Callable[[str], str]


class SelectionError(RuntimeError):
    pass


def default_prompt(text: str) -> str:
    return click.prompt(text, default="", show_default=False)


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def render_candidates(candidates: Sequence[CloudAccountCandidate]) -> str:
    lines = []
    for idx, c in enumerate(candidates, start=1):
        mark = " (GPU)" if c.has_gpu else ""
        lines.append(f"  [{idx}] {c.identifier}{mark}")
    return "\n".join(lines)


def parse_answer(answer: str, candidates: Sequence[CloudAccountCandidate]) -> List[str]:
    """
    "1,3" 처럼 1부터 시작하는 번호, 또는 프로젝트 ID 를 쉼표로 섞어 받는다.
    범위를 벗어난 번호는 조용히 버린다.
    """
    selected: List[str] = []
    for token in split_csv(answer):
        if token.isdecimal():
            idx = int(token) - 1
            if 0 <= idx < len(candidates):
                selected.append(candidates[idx].identifier)
            else:
                logger.debug("범위를 벗어난 번호 무시: %s", token)
        else:
            selected.append(token)
    return _unique(selected)


def resolve_selection(
    candidates: Sequence[CloudAccountCandidate],
    explicit: Optional[Sequence[str]] = None,
    auto_run: bool = False,
    prompt: Optional[Prompt] = None,
) -> List[str]:
    """
    선택 우선순위 (먼저 맞는 것이 이긴다):

    1. 명시 목록: 그대로 사용 (탐색 결과와 대조하지 않음)
    2. auto-run: GPU 후보 전부, 없으면 첫 번째 후보
    3. 대화형: 번호/ID 입력

    최종 선택이 비어 있으면 SelectionError.
    """
    if explicit:
        selected = _unique(p.strip() for p in explicit if p and p.strip())
        logger.info("명시된 대상 사용: %s", selected)
    elif auto_run:
        gpu = [c.identifier for c in candidates if c.has_gpu]
        if gpu:
            selected = gpu
            click.echo(f"GPU 프로젝트 대상으로 자동 실행합니다: {', '.join(selected)}")
        else:
            selected = [candidates[0].identifier] if candidates else []
            click.echo(f"첫 번째 프로젝트 대상으로 자동 실행합니다: {', '.join(selected)}")
    else:
        ask = prompt or default_prompt
        click.echo("온보딩할 프로젝트를 선택하세요 (번호 또는 ID, 쉼표 구분):")
        click.echo(render_candidates(candidates))
        answer = ask("프로젝트 ID 또는 번호 입력").strip()
        if not answer:
            raise SelectionError("프로젝트 선택이 필요합니다.")
        selected = parse_answer(answer, candidates)

    if not selected:
        raise SelectionError("선택된 프로젝트가 없습니다.")
    return selected


def resolve_resource_group(
    explicit: Optional[str],
    auto_run: bool,
    list_groups: Callable[[], List[str]],
    prompt: Optional[Prompt] = None,
) -> str:
    """
    Azure 리소스 그룹 결정. 명시값 > auto-run 기본값 > 대화형 선택(엔터 시 기본값).
    대화형에서는 기존 그룹 번호를 입력해도 된다.
    """
    if explicit:
        return explicit
    if auto_run:
        click.echo(f"auto-run 모드: 리소스 그룹 '{DEFAULT_RESOURCE_GROUP}' 을(를) 사용합니다.")
        return DEFAULT_RESOURCE_GROUP

    ask = prompt or default_prompt
    groups = list_groups()
    click.echo("사용 가능한 리소스 그룹:")
    if groups:
        for idx, name in enumerate(groups, start=1):
            click.echo(f"  [{idx}] {name}")
    else:
        click.echo("  (없음)")

    answer = ask(
        f"리소스 그룹 이름 또는 번호 입력 (엔터 시 '{DEFAULT_RESOURCE_GROUP}' 생성)"
    ).strip()
    if not answer:
        return DEFAULT_RESOURCE_GROUP
    if answer.isdecimal() and 1 <= int(answer) <= len(groups):
        return groups[int(answer) - 1]
    return answer
