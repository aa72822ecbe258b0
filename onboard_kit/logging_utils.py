import logging
import sys


# 서드파티 라이브러리 로그는 -vv 일 때만 DEBUG 로 내린다.
_NOISY_LOGGERS = ("google", "urllib3", "requests")


def setup_logging(verbosity: int = 0) -> None:
    level = logging.INFO
    if verbosity >= 1:
        level = logging.DEBUG

    # stdout 은 요약/페이로드 출력용으로 남겨두고 로그는 stderr 로 보낸다.
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )

    third_party_level = logging.DEBUG if verbosity >= 2 else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
