from __future__ import annotations

from typing import List

import pytest

from onboard_kit.config import DEFAULT_RESOURCE_GROUP
from onboard_kit.models import CloudAccountCandidate
from onboard_kit.selection import (
    SelectionError,
    parse_answer,
    render_candidates,
    resolve_resource_group,
    resolve_selection,
)


CANDIDATES = [
    CloudAccountCandidate("proj-a"),
    CloudAccountCandidate("proj-b", has_gpu=True),
    CloudAccountCandidate("proj-c"),
]


def _scripted(*answers: str):  # noqa: ANN202
    queue: List[str] = list(answers)

    def prompt(text: str) -> str:  # noqa: ARG001
        return queue.pop(0)

    return prompt


def _no_prompt(text: str) -> str:
    raise AssertionError(f"prompt should not be called: {text}")


def test_explicit_list_wins_over_auto_run_and_prompt() -> None:
    selected = resolve_selection(CANDIDATES, ["proj-x", "proj-y"], auto_run=True, prompt=_no_prompt)

    assert selected == ["proj-x", "proj-y"]


def test_auto_run_selects_gpu_candidates() -> None:
    assert resolve_selection(CANDIDATES, None, auto_run=True, prompt=_no_prompt) == ["proj-b"]


def test_auto_run_without_gpu_selects_first_candidate() -> None:
    plain = [CloudAccountCandidate("proj-a"), CloudAccountCandidate("proj-b")]

    assert resolve_selection(plain, [], auto_run=True, prompt=_no_prompt) == ["proj-a"]


def test_interactive_indexes() -> None:
    assert resolve_selection(CANDIDATES, None, prompt=_scripted("1,3")) == ["proj-a", "proj-c"]


def test_interactive_out_of_range_index_fails() -> None:
    with pytest.raises(SelectionError):
        resolve_selection(CANDIDATES, None, prompt=_scripted("5"))


def test_interactive_empty_answer_fails() -> None:
    with pytest.raises(SelectionError):
        resolve_selection(CANDIDATES, None, prompt=_scripted("   "))


def test_parse_answer_mixes_ids_and_indexes() -> None:
    assert parse_answer(" other-proj , 2, 2 ,0", CANDIDATES) == ["other-proj", "proj-b"]


def test_parse_answer_treats_superscript_digits_as_ids() -> None:
    assert parse_answer("\u00b2,1", CANDIDATES) == ["\u00b2", "proj-a"]


def test_render_marks_gpu_candidates() -> None:
    rendered = render_candidates(CANDIDATES)

    assert "[2] proj-b (GPU)" in rendered
    assert "[1] proj-a\n" in rendered


def test_resource_group_explicit_wins() -> None:
    assert resolve_resource_group("mine", True, lambda: [], prompt=_no_prompt) == "mine"


def test_resource_group_auto_run_uses_default() -> None:
    def no_listing() -> List[str]:
        raise AssertionError("resource groups should not be listed")

    assert resolve_resource_group(None, True, no_listing, prompt=_no_prompt) == DEFAULT_RESOURCE_GROUP


@pytest.mark.parametrize(
    "answer, expected",
    [("", DEFAULT_RESOURCE_GROUP), ("2", "rg-two"), ("new-rg", "new-rg"), ("9", "9")],
)
def test_resource_group_interactive(answer: str, expected: str) -> None:
    groups = lambda: ["rg-one", "rg-two"]  # noqa: E731

    assert resolve_resource_group(None, False, groups, prompt=_scripted(answer)) == expected
