"""
Ledger 연산 결과 타입

예상된 비즈니스 결과(잔액 부족, 쿨다운 등)는 예외가 아닌 결과 객체로 반환.
인프라 장애(저장소 쓰기 실패)는 retryable=True 결과로 변환.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from core.ledger.models import Loan
from core.utils.money import ZERO
from core.utils.timezone import split_cooldown


@dataclass(frozen=True)
class OperationResult:
    """연산 결과 공통

    Attributes:
        success: 성공 여부
        message: 사람이 읽을 수 있는 메시지
        amount: 관련 금액
        retryable: 인프라 장애로 실패 (재시도 가능)
    """

    success: bool
    message: str
    amount: Decimal = ZERO
    retryable: bool = False


@dataclass(frozen=True)
class TransferResult(OperationResult):
    """송금 결과"""

    tax_amount: Decimal = ZERO


@dataclass(frozen=True)
class BonusResult(OperationResult):
    """일일 보너스 결과

    cooldown: 보너스 재수령까지 남은 시간 (쿨다운 중일 때만)
    """

    cooldown: timedelta | None = None

    @property
    def hours(self) -> int:
        if self.cooldown is None:
            return 0
        return split_cooldown(self.cooldown.total_seconds())[0]

    @property
    def minutes(self) -> int:
        if self.cooldown is None:
            return 0
        return split_cooldown(self.cooldown.total_seconds())[1]


@dataclass(frozen=True)
class InterestResult(OperationResult):
    """이자 지급 결과

    applied: 이자 기준 시각이 갱신되었는지 (간격 미경과/비활성 → False)
    """

    applied: bool = False


@dataclass(frozen=True)
class LoanResult(OperationResult):
    """대출/상환 결과"""

    total_owed: Decimal = ZERO
    loan: Loan | None = None


@dataclass(frozen=True)
class AccountStats:
    """계정 통계"""

    balance: Decimal
    total_earned: Decimal
    total_spent: Decimal
    active_loans: int
    total_loan_debt: Decimal
    account_age: timedelta
    has_overdue_loan: bool = False
