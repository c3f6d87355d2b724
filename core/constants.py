"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from decimal import Decimal
from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → 루트)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class Defaults:
    """경제 설정 기본값 (config 파일이 없거나 검증 실패 시 사용)"""

    STARTING_BALANCE: Decimal = Decimal("1000")
    CURRENCY_NAME: str = "Credits"
    CURRENCY_SYMBOL: str = "$"

    ENABLE_INTEREST: bool = True
    INTEREST_RATE: Decimal = Decimal("0.05")
    INTEREST_INTERVAL_MINUTES: int = 60

    MAX_BALANCE: Decimal = Decimal("1000000000")
    TRANSACTION_TAX_RATE: Decimal = Decimal("0.02")
    DAILY_BONUS_AMOUNT: Decimal = Decimal("100")

    LOAN_INTEREST_RATE: Decimal = Decimal("0.10")
    MAX_LOAN_AMOUNT: Decimal = Decimal("50000")


class Limits:
    """도메인 규칙 상수"""

    DAILY_BONUS_COOLDOWN_SECONDS: int = 86400  # 24시간
    LOAN_MIN_DAYS: int = 1
    LOAN_MAX_DAYS: int = 365

    HISTORY_DEFAULT_LIMIT: int = 10
    HISTORY_MAX_LIMIT: int = 100
    TOP_ACCOUNTS_DEFAULT_LIMIT: int = 10

    SETTLEMENT_TICK_SECONDS: int = 60  # 정산 패스 간격


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    # 설정 파일
    ECONOMY_CONFIG_FILE: Path = CONFIG_DIR / "economy.yaml"

    # DB 파일
    LEDGER_DB: Path = DATA_DIR / "ledger.db"
