from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Any, Sequence

from .config import TRUE_VALUES
from .logging_utils import get_logger


logger = get_logger(__name__)


_BRAILLE_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
_ASCII_FRAMES = ["|", "/", "-", "\\"]


def _is_tty(stream) -> bool:  # noqa: ANN001
    try:
        return bool(getattr(stream, "isatty") and stream.isatty())
    except Exception:  # noqa: BLE001
        return False


def _parse_env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in TRUE_VALUES


def _select_frames(style: str) -> list[str]:
    s = (style or "").strip().lower()
    if s == "ascii":
        return _ASCII_FRAMES
    return _BRAILLE_FRAMES


def _format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:0.1f}s"
    minutes = int(seconds // 60)
    sec = int(seconds % 60)
    return f"{minutes}m{sec:02d}s"


def _default_progress_message(cmd: Sequence[str]) -> str:
    return shorten(" ".join(cmd), width=72, placeholder="…")


class _ProgressIndicator:
    """
    gcloud/az 호출이 오래 걸릴 때 stderr 한 줄에 스피너 + 경과시간을 그린다.
    idle_seconds 가 지나기 전에는 아무것도 출력하지 않는다.
    """

    def __init__(
        self,
        message: str,
        *,
        stream=None,  # noqa: ANN001
        style: str = "braille",
        interval: float = 0.12,
        idle_seconds: float = 2.0,
    ) -> None:
        self._message = message
        self._stream = stream if stream is not None else sys.stderr
        self._frames = _select_frames(style)
        self._interval = max(float(interval), 0.02)
        self._idle_seconds = max(float(idle_seconds), 0.0)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_len = 0

    def _render(self, idx: int, elapsed: float) -> None:
        frame = self._frames[idx % len(self._frames)]
        text = f"{frame} {self._message}  {_format_elapsed(elapsed)}"
        self._last_len = max(self._last_len, len(text))
        self._stream.write("\r" + text)
        self._stream.flush()

    def start(self) -> None:
        if self._thread is not None:
            return
        started = time.monotonic()

        def _run() -> None:
            if self._stop.wait(self._idle_seconds):
                return
            idx = 0
            while not self._stop.is_set():
                self._render(idx, time.monotonic() - started)
                idx += 1
                self._stop.wait(self._interval)

        self._thread = threading.Thread(target=_run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        if self._last_len > 0:
            self._stream.write("\r" + (" " * self._last_len) + "\r")
            self._stream.flush()


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


def require_command(name: str) -> str:
    """
    실행 파일이 PATH 에 있는지 확인하고 절대 경로를 반환한다.
    없으면 바로 RuntimeError 를 던진다.
    """
    path = shutil.which(name)
    if not path:
        raise RuntimeError(
            f"필요한 명령을 찾을 수 없습니다: {name} (먼저 설치한 뒤 다시 실행하세요)"
        )
    return path


def run_command(
    cmd: Sequence[str],
    *,
    interactive: bool = False,
    spinner_message: str | None = None,
    show_progress: bool | None = None,
    progress_idle_seconds: float = 2.0,
    progress_style: str = "braille",
    progress_interval: float = 0.12,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - interactive=False: stdout/stderr 캡처, 실패 시 요약을 포함한 RuntimeError
    - interactive=True : 터미널 stdin/stdout 을 그대로 넘긴다 (az login 등 사용자 입력 필요 시)
    """
    logger.info("명령 실행: %s", " ".join(cmd))

    if interactive:
        try:
            proc = subprocess.run(  # noqa: S603
                list(cmd),
                check=False,
            )
        except FileNotFoundError as e:
            raise RuntimeError(f"필요한 명령을 찾을 수 없습니다: {cmd[0]}") from e
        if proc.returncode != 0:
            raise RuntimeError(
                f"명령 실행 실패: {' '.join(cmd)} (exit={proc.returncode})"
            )
        return RunResult(returncode=proc.returncode, stdout="", stderr="")

    # 우선순위: 호출 인자 > CLI_SHOW_PROGRESS env > 기본값(True)
    if show_progress is None:
        env_show = _parse_env_bool("CLI_SHOW_PROGRESS")
        show_progress = True if env_show is None else env_show

    indicator: _ProgressIndicator | None = None
    if show_progress and _is_tty(sys.stderr):
        indicator = _ProgressIndicator(
            spinner_message or _default_progress_message(cmd),
            stream=sys.stderr,
            style=progress_style,
            interval=progress_interval,
            idle_seconds=progress_idle_seconds,
        )
        indicator.start()

    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
        )
        if result.stdout:
            logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
        if result.stderr:
            logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
        return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")
    except FileNotFoundError as e:
        raise RuntimeError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud/az 가 설치되어 있는지 확인하세요)"
        ) from e
    except subprocess.CalledProcessError as e:
        stdout = (e.stdout or "").strip()
        stderr = (e.stderr or "").strip()
        detail = ""
        if stderr:
            detail = "\nstderr:\n" + shorten(stderr, width=2000)
        elif stdout:
            detail = "\nstdout:\n" + shorten(stdout, width=2000)
        raise RuntimeError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={e.returncode}){detail}"
        ) from e
    finally:
        if indicator is not None:
            indicator.stop()


def run_json(cmd: Sequence[str], **kwargs: Any) -> Any:
    """
    JSON 출력(--format=json / -o json)을 내는 명령을 실행하고 파싱 결과를 반환한다.
    출력이 비어 있으면 None.
    """
    result = run_command(cmd, **kwargs)
    text = result.stdout.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise RuntimeError(
            f"명령 출력이 JSON 형식이 아닙니다: {' '.join(cmd)}\n"
            + shorten(text, width=500)
        ) from e
