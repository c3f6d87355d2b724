"""
설정 로더

economy.yaml 로드, 검증, 기본값 생성

검증 실패 시 파일 전체를 거부하고 기본 설정으로 동작한다 (로그 ERROR).
"""

import logging
from dataclasses import asdict, dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from core.constants import Defaults, Paths
from core.utils.money import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EconomyConfig:
    """경제 설정 스냅샷 (economy.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지.
    런타임 교체는 새 인스턴스를 만들어 LedgerEngine.update_config()로 전달.
    """

    starting_balance: Decimal = Defaults.STARTING_BALANCE
    currency_name: str = Defaults.CURRENCY_NAME
    currency_symbol: str = Defaults.CURRENCY_SYMBOL
    enable_interest: bool = Defaults.ENABLE_INTEREST
    interest_rate: Decimal = Defaults.INTEREST_RATE
    interest_interval_minutes: int = Defaults.INTEREST_INTERVAL_MINUTES
    max_balance: Decimal = Defaults.MAX_BALANCE
    transaction_tax_rate: Decimal = Defaults.TRANSACTION_TAX_RATE
    daily_bonus_amount: Decimal = Defaults.DAILY_BONUS_AMOUNT
    loan_interest_rate: Decimal = Defaults.LOAN_INTEREST_RATE
    max_loan_amount: Decimal = Defaults.MAX_LOAN_AMOUNT
    database_path: Path = Paths.LEDGER_DB

    @property
    def interest_interval_seconds(self) -> int:
        """이자 지급 간격 (초)"""
        return self.interest_interval_minutes * 60

    def validate(self) -> list[str]:
        """설정 값 검증

        Returns:
            오류 메시지 목록 (비어 있으면 유효)
        """
        errors: list[str] = []

        if self.starting_balance < 0:
            errors.append("starting_balance는 음수일 수 없습니다")

        for name in ("interest_rate", "transaction_tax_rate", "loan_interest_rate"):
            rate = getattr(self, name)
            if rate < 0 or rate > 1:
                errors.append(f"{name}는 0과 1 사이여야 합니다: {rate}")

        if self.max_balance <= 0:
            errors.append("max_balance는 양수여야 합니다")
        elif self.starting_balance > self.max_balance:
            errors.append("starting_balance가 max_balance를 초과합니다")

        if self.daily_bonus_amount <= 0:
            errors.append("daily_bonus_amount는 양수여야 합니다")

        if self.max_loan_amount <= 0:
            errors.append("max_loan_amount는 양수여야 합니다")

        if self.interest_interval_minutes <= 0:
            errors.append("interest_interval_minutes는 양수여야 합니다")

        return errors

    def to_dict(self) -> dict[str, Any]:
        """YAML 저장용 딕셔너리 (Decimal/Path는 문자열)"""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, (Decimal, Path)):
                data[key] = str(value)
        return data


class ConfigLoadError(Exception):
    """economy.yaml 로드 실패 예외"""

    pass


_DECIMAL_FIELDS = {
    "starting_balance",
    "interest_rate",
    "max_balance",
    "transaction_tax_rate",
    "daily_bonus_amount",
    "loan_interest_rate",
    "max_loan_amount",
}


def parse_economy_config(data: dict[str, Any]) -> EconomyConfig:
    """딕셔너리를 EconomyConfig로 변환 + 검증

    Args:
        data: yaml.safe_load 결과

    Returns:
        검증된 EconomyConfig

    Raises:
        ConfigLoadError: 타입 변환 또는 검증 실패
    """
    known = {f.name for f in fields(EconomyConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(f"알 수 없는 설정 키 무시: {unknown}")

    values: dict[str, Any] = {}
    try:
        for key, raw in data.items():
            if key not in known or raw is None:
                continue
            if key in _DECIMAL_FIELDS:
                values[key] = to_decimal(raw)
            elif key == "enable_interest":
                if not isinstance(raw, bool):
                    raise ValueError(f"enable_interest는 true/false여야 합니다: {raw!r}")
                values[key] = raw
            elif key == "interest_interval_minutes":
                values[key] = int(raw)
            elif key == "database_path":
                values[key] = Path(raw)
            else:
                values[key] = str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigLoadError(f"설정 값 변환 실패: {e}") from e

    config = EconomyConfig(**values)

    errors = config.validate()
    if errors:
        raise ConfigLoadError("설정 검증 실패: " + "; ".join(errors))

    return config


def read_economy_config(path: Path) -> EconomyConfig:
    """economy.yaml 파일 읽기 (폴백 없음)

    Raises:
        ConfigLoadError: 파일이 없거나 형식/값이 잘못된 경우
    """
    if not path.exists():
        raise ConfigLoadError(f"economy.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"economy.yaml 파싱 실패: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigLoadError("economy.yaml 최상위는 매핑이어야 합니다")

    return parse_economy_config(data)


def save_economy_config(config: EconomyConfig, path: Path) -> None:
    """설정을 YAML로 저장"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump(config.to_dict(), sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )


def load_economy_config(path: Path | None = None) -> EconomyConfig:
    """economy.yaml 로드 (실패 시 기본 설정으로 폴백)

    - 파일 없음: 기본 설정을 파일로 생성 후 반환
    - 파싱/검증 실패: ERROR 로그 후 기본 설정 반환 (파일은 유지)

    Args:
        path: economy.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        EconomyConfig 인스턴스
    """
    if path is None:
        path = Paths.ECONOMY_CONFIG_FILE

    if not path.exists():
        config = EconomyConfig()
        try:
            save_economy_config(config, path)
            logger.info(f"기본 설정 파일 생성: {path}")
        except OSError as e:
            logger.error(f"기본 설정 파일 저장 실패: {e}")
        return config

    try:
        return read_economy_config(path)
    except ConfigLoadError as e:
        logger.error(f"설정 로드 실패, 기본 설정 사용: {e}")
        return EconomyConfig()
