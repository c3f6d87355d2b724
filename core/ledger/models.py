"""
Ledger 도메인 모델

Account / Transaction / Loan / ShopItem.
모든 금액은 Decimal, 모든 시각은 UTC aware datetime.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from core.types import ActorId, LoanStatus, TransactionKind
from core.utils.money import ZERO


@dataclass(frozen=True)
class Account:
    """행위자 1명의 경제 상태 (불변 스냅샷)

    변경은 새 인스턴스를 만들어 캐시 슬롯에 교체하는 방식으로만 수행.
    
    Attributes:
        actor_id: 행위자 ID (불변 키)
        balance: 잔액 (0 ≤ balance ≤ max_balance)
        last_interest_at: 마지막 이자 지급 시각 (단조 증가)
        last_bonus_at: 마지막 일일 보너스 시각 (단조 증가)
        total_earned: 누적 수입
        total_spent: 누적 지출
        created_at: 생성 시각
        updated_at: 마지막 변경 시각
    """

    actor_id: ActorId
    balance: Decimal
    last_interest_at: datetime
    last_bonus_at: datetime
    total_earned: Decimal
    total_spent: Decimal
    created_at: datetime
    updated_at: datetime

    @classmethod
    def open(cls, actor_id: ActorId, starting_balance: Decimal, now: datetime) -> "Account":
        """신규 계정 생성 (이자/보너스 기준 시각 = 생성 시각)"""
        return cls(
            actor_id=actor_id,
            balance=starting_balance,
            last_interest_at=now,
            last_bonus_at=now,
            total_earned=ZERO,
            total_spent=ZERO,
            created_at=now,
            updated_at=now,
        )

    def credited(self, amount: Decimal, now: datetime) -> "Account":
        """입금 적용본"""
        return replace(
            self,
            balance=self.balance + amount,
            total_earned=self.total_earned + amount,
            updated_at=now,
        )

    def debited(self, amount: Decimal, now: datetime) -> "Account":
        """출금 적용본"""
        return replace(
            self,
            balance=self.balance - amount,
            total_spent=self.total_spent + amount,
            updated_at=now,
        )


@dataclass(frozen=True)
class Transaction:
    """거래 기록 (append-only)

    from/to 중 하나는 None일 수 있음 (시스템 지급/차감).
    """

    id: int
    from_actor_id: ActorId | None
    to_actor_id: ActorId | None
    amount: Decimal
    kind: TransactionKind
    description: str
    timestamp: datetime


@dataclass(frozen=True)
class Loan:
    """대출 1건

    remaining 초기값 = principal * (1 + interest_rate)
    """

    id: int
    actor_id: ActorId
    principal: Decimal
    interest_rate: Decimal
    remaining: Decimal
    issued_at: datetime
    due_at: datetime
    status: LoanStatus = LoanStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    def is_overdue(self, now: datetime) -> bool:
        """상환 기한 경과 여부 (Active 대출만 해당)"""
        return self.is_active and now > self.due_at

    def repaid(self, amount: Decimal) -> "Loan":
        """상환 적용본 (잔액 0 이하 → Paid, 잔액은 0으로 고정)"""
        remaining = self.remaining - amount
        if remaining <= 0:
            return replace(self, remaining=ZERO, status=LoanStatus.PAID)
        return replace(self, remaining=remaining)


@dataclass(frozen=True)
class ShopItem:
    """상점 카탈로그 항목

    stock = -1 은 무제한 재고.
    """

    item_id: int
    item_name: str
    buy_price: Decimal | None = None
    sell_price: Decimal | None = None
    stock: int = -1
    category: str | None = None
    id: int | None = None
