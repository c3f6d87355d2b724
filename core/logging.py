"""
로깅 설정 유틸리티

Ledger 서비스 공통 로깅 설정.
- 콘솔: INFO 레벨 (--log-level / --debug로 조정)
- 파일: INFO 레벨 (TimedRotatingFileHandler, daily)
- extra={...}로 넘긴 필드(actor_id, amount 등)는 메시지 뒤에 key=value로 출력

사용법:
    from core.logging import setup_logging
    setup_logging("ledger", log_dir=Path("logs"))
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.constants import Paths


# 로그 설정 상수
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_BACKUP_COUNT = 7  # 최대 7일치 파일 유지

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# 불필요한 로그를 생성하는 로거 목록 (레벨 조정 대상)
NOISY_LOGGERS = [
    "aiosqlite",      # DB 쿼리마다 executing/completed 로그 (매우 많음)
    "asyncio",        # 비동기 이벤트 루프 로그
]

# LogRecord 기본 속성 (extra 필드 구분용)
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


class ExtraFieldsFormatter(logging.Formatter):
    """extra 필드를 메시지 뒤에 붙이는 Formatter

    logger.info("송금 완료", extra={"from_actor_id": 1, "amount": "100"})
    → ... | 송금 완료 | from_actor_id=1 amount=100
    """

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if not extras:
            return base

        fields = " ".join(f"{key}={value}" for key, value in extras.items())
        # 예외 traceback이 붙은 경우 첫 줄 뒤에 삽입
        head, sep, tail = base.partition("\n")
        return f"{head} | {fields}{sep}{tail}"


def parse_log_level(name: str) -> int:
    """로그 레벨 이름 → logging 상수

    Raises:
        ValueError: 지원하지 않는 레벨 이름
    """
    normalized = name.strip().upper()
    if normalized not in LOG_LEVELS:
        raise ValueError(f"지원하지 않는 로그 레벨: {name!r} (허용: {', '.join(LOG_LEVELS)})")
    return getattr(logging, normalized)


def get_log_file_path(process_name: str, log_dir: Path | None = None) -> Path:
    """로그 파일 경로 반환

    Args:
        process_name: 프로세스 이름 (예: "ledger")
        log_dir: 로그 디렉토리 (None이면 기본 경로)

    Returns:
        로그 파일 Path
    """
    return (log_dir or Paths.LOGS_DIR) / f"{process_name}.log"


def setup_logging(
    process_name: str,
    console_level: int = logging.INFO,
    file_level: int = logging.INFO,
    log_dir: Path | None = None,
    backup_count: int = LOG_FILE_BACKUP_COUNT,
) -> logging.Logger:
    """로깅 설정 초기화

    Daily 롤링으로 매일 자정에 새 파일 생성.

    Args:
        process_name: 프로세스 이름 (로그 파일명으로 사용)
        console_level: 콘솔 로그 레벨 (기본: INFO)
        file_level: 파일 로그 레벨 (기본: INFO)
        log_dir: 로그 디렉토리 (None이면 Paths.LOGS_DIR)
        backup_count: 보관할 일별 백업 파일 수

    Returns:
        설정된 루트 Logger
    """
    log_file = get_log_file_path(process_name, log_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # 루트는 DEBUG로 설정 (핸들러에서 필터링)

    # 기존 핸들러 제거 (중복 방지)
    root_logger.handlers.clear()

    formatter = ExtraFieldsFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        interval=1,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.suffix = "%Y-%m-%d"  # 백업 파일 형식: ledger.log.2026-02-21
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info(
        f"로깅 초기화 완료: {process_name}",
        extra={
            "console": logging.getLevelName(console_level),
            "log_file": str(log_file),
            "file_level": logging.getLevelName(file_level),
            "backups": backup_count,
        },
    )

    return root_logger
