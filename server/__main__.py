"""
Ledger 서비스 진입점

실행 방법:
    python -m server
    python -m server --config config/economy.yaml
    python -m server --log-dir /var/log/ledger --log-level WARNING
"""

import argparse
import asyncio
import logging
from pathlib import Path

from core.constants import Paths
from core.logging import LOG_FILE_BACKUP_COUNT, LOG_LEVELS, parse_log_level, setup_logging
from server.bootstrap import main


def build_parser() -> argparse.ArgumentParser:
    """CLI 인자 파서"""
    parser = argparse.ArgumentParser(
        description="캐시 기반 가상 경제 원장 서비스"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="economy.yaml 경로 (기본: config/economy.yaml)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=Paths.LOGS_DIR,
        help=f"로그 디렉토리 (기본: {Paths.LOGS_DIR})",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default="INFO",
        help="콘솔/파일 로그 레벨 (기본: INFO)",
    )
    parser.add_argument(
        "--log-backups",
        type=int,
        default=LOG_FILE_BACKUP_COUNT,
        help=f"보관할 일별 로그 파일 수 (기본: {LOG_FILE_BACKUP_COUNT})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="콘솔 DEBUG 로그 출력 (--log-level보다 우선)",
    )
    return parser


def configure_logging(args: argparse.Namespace) -> logging.Logger:
    """CLI 인자로 로깅 초기화"""
    level = parse_log_level(args.log_level)
    return setup_logging(
        "ledger",
        console_level=logging.DEBUG if args.debug else level,
        file_level=level,
        log_dir=args.log_dir,
        backup_count=args.log_backups,
    )


if __name__ == "__main__":
    args = build_parser().parse_args()
    configure_logging(args)
    
    try:
        asyncio.run(main(args.config))
    except KeyboardInterrupt:
        pass
