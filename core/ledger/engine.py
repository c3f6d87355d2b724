"""
Ledger Engine

캐시된 계정에 대한 변경 연산 (관리자 설정, 지급, 차감, 송금, 이자, 일일 보너스, 대출).

모든 연산은 같은 순서를 따른다:
1. 관련 행위자 Lock 획득 (여러 명이면 actor_id 오름차순)
2. 사전 조건 검증 (실패 시 아무것도 변경하지 않음)
3. 저장소 쓰기 (실패 시 캐시 변경 없이 retryable 결과 반환)
4. 거래 기록 추가 (best-effort, 실패는 로그만)
5. 캐시 스냅샷 교체
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Callable, TypeVar

from core.config.loader import EconomyConfig
from core.constants import Limits
from core.ledger.errors import LedgerStoreError
from core.ledger.models import Account
from core.ledger.results import (
    BonusResult,
    InterestResult,
    LoanResult,
    OperationResult,
    TransferResult,
)
from core.types import ActorId, TransactionKind
from core.utils.money import ZERO, apply_rate, format_currency, quantize_money, to_decimal
from core.utils.timezone import now_utc, split_cooldown

if TYPE_CHECKING:
    from adapters.interfaces import ILedgerStore
    from core.ledger.cache import LedgerCache

logger = logging.getLogger(__name__)

MSG_NOT_FOUND = "Account not found"
MSG_INSUFFICIENT = "Insufficient funds"
MSG_EXCEEDS_MAX = "Balance would exceed maximum"
MSG_STORE_FAILURE = "Operation could not be completed, please retry"

R = TypeVar("R", bound=OperationResult)


def parse_amount(value: Decimal | int | str) -> Decimal | None:
    """금액 입력 파싱
    
    숫자가 아니거나 소수 2자리를 넘으면 None.
    센트 단위로 표현할 수 없을 만큼 큰 값(Decimal 정밀도 초과)도 None.
    """
    try:
        amount = to_decimal(value)
        quantized = quantize_money(amount)
    except (ValueError, InvalidOperation):
        return None
    if amount != quantized:
        return None
    return amount


class LedgerEngine:
    """Ledger 변경 연산 엔진
    
    Args:
        store: 영속 저장소
        cache: 계정 캐시
        config: 경제 설정 스냅샷 (update_config로 런타임 교체)
        clock: 현재 시각 함수 (테스트에서 교체)
        
    사용 예시:
    ```python
    engine = LedgerEngine(store, cache, config)
    
    result = await engine.transfer(1, 2, Decimal("100"))
    if not result.success:
        print(result.message)
    ```
    """
    
    def __init__(
        self,
        store: ILedgerStore,
        cache: LedgerCache,
        config: EconomyConfig,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.cache = cache
        self._config = config
        self._clock = clock
    
    @property
    def config(self) -> EconomyConfig:
        """현재 설정 스냅샷"""
        return self._config
    
    def update_config(self, config: EconomyConfig) -> None:
        """설정 교체 (진행 중인 연산은 시작 시점 스냅샷 유지)"""
        self._config = config
        logger.info("경제 설정 교체 완료")
    
    def now(self) -> datetime:
        return self._clock()
    
    def format_currency(self, amount: Decimal) -> str:
        return format_currency(amount, self._config.currency_symbol)
    
    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------
    
    async def get_balance(self, actor_id: ActorId) -> Decimal:
        """잔액 조회 (캐시 우선, 없으면 저장소, 둘 다 없으면 0)"""
        account = self.cache.peek(actor_id)
        if account is not None:
            return account.balance
        
        stored = await self.store.get_account(actor_id)
        return stored.balance if stored else ZERO
    
    # -------------------------------------------------------------------------
    # 단일 행위자 연산
    # -------------------------------------------------------------------------
    
    async def set_balance(
        self,
        actor_id: ActorId,
        amount: Decimal | int | str,
    ) -> OperationResult:
        """잔액 직접 설정 (관리자)
        
        AdminSet 기록의 amount는 변경량(음수 가능).
        """
        cfg = self._config
        value = parse_amount(amount)
        if value is None or value < 0 or value > cfg.max_balance:
            return OperationResult(
                success=False,
                message=f"Amount must be between {self.format_currency(ZERO)} "
                        f"and {self.format_currency(cfg.max_balance)}",
            )
        
        async with self.cache.exclusive(actor_id):
            account = self.cache.peek(actor_id)
            if account is None:
                return OperationResult(success=False, message=MSG_NOT_FOUND)
            
            now = self._clock()
            delta = value - account.balance
            updated = replace(account, balance=value, updated_at=now)
            
            if not await self._persist(updated):
                return self._store_failure(OperationResult)
            
            await self._record(None, actor_id, delta, TransactionKind.ADMIN_SET, "Balance set by admin", now)
            self.cache.commit(updated)
        
        logger.info(
            "잔액 설정",
            extra={"actor_id": actor_id, "balance": str(value), "delta": str(delta)},
        )
        return OperationResult(
            success=True,
            message=f"Balance set to {self.format_currency(value)}",
            amount=value,
        )
    
    async def credit(
        self,
        actor_id: ActorId,
        amount: Decimal | int | str,
        reason: str = "Admin Grant",
    ) -> OperationResult:
        """지급 (balance += amount, total_earned += amount)"""
        value = parse_amount(amount)
        if value is None or value <= 0:
            return OperationResult(success=False, message="Amount must be positive")
        
        async with self.cache.exclusive(actor_id):
            account = self.cache.peek(actor_id)
            if account is None:
                return OperationResult(success=False, message=MSG_NOT_FOUND)
            
            return await self._credit_locked(account, value, TransactionKind.ADD, reason)
    
    async def debit(
        self,
        actor_id: ActorId,
        amount: Decimal | int | str,
        reason: str = "Admin Remove",
    ) -> OperationResult:
        """차감 (balance -= amount, total_spent += amount)"""
        value = parse_amount(amount)
        if value is None or value <= 0:
            return OperationResult(success=False, message="Amount must be positive")
        
        async with self.cache.exclusive(actor_id):
            account = self.cache.peek(actor_id)
            if account is None:
                return OperationResult(success=False, message=MSG_NOT_FOUND)
            
            if account.balance < value:
                return OperationResult(success=False, message=MSG_INSUFFICIENT)
            
            now = self._clock()
            updated = account.debited(value, now)
            if not await self._persist(updated):
                return self._store_failure(OperationResult)
            
            await self._record(actor_id, None, value, TransactionKind.REMOVE, reason, now)
            self.cache.commit(updated)
        
        return OperationResult(
            success=True,
            message=f"Removed {self.format_currency(value)}",
            amount=value,
        )
    
    async def accrue_interest(
        self,
        actor_id: ActorId,
        now: datetime | None = None,
    ) -> InterestResult:
        """이자 지급 (정산 스케줄러에서 호출)
        
        간격 미경과/이자 비활성/캐시에 없는 행위자는 오류가 아닌 no-op (applied=False).
        잔액 상한을 넘지 않도록 이자를 잘라낸다.
        """
        cfg = self._config
        if not cfg.enable_interest:
            return InterestResult(success=True, message="Interest is disabled")
        
        async with self.cache.exclusive(actor_id):
            account = self.cache.peek(actor_id)
            if account is None:
                return InterestResult(success=True, message="Account not active")
            
            at = now or self._clock()
            elapsed = at - account.last_interest_at
            if elapsed < timedelta(seconds=cfg.interest_interval_seconds):
                return InterestResult(success=True, message="Interest not due yet")
            
            headroom = cfg.max_balance - account.balance
            interest = min(apply_rate(account.balance, cfg.interest_rate), headroom)
            interest = max(interest, ZERO)
            
            updated = replace(
                account,
                balance=account.balance + interest,
                total_earned=account.total_earned + interest,
                last_interest_at=at,
                updated_at=at,
            )
            if not await self._persist(updated):
                return self._store_failure(InterestResult)
            
            if interest > 0:
                await self._record(None, actor_id, interest, TransactionKind.INTEREST, "Automatic interest payment", at)
            self.cache.commit(updated)
        
        return InterestResult(
            success=True,
            message=f"Interest paid: {self.format_currency(interest)}",
            amount=interest,
            applied=True,
        )
    
    async def claim_daily_bonus(
        self,
        actor_id: ActorId,
        now: datetime | None = None,
    ) -> BonusResult:
        """일일 보너스 수령 (24시간 쿨다운)"""
        cfg = self._config
        
        async with self.cache.exclusive(actor_id):
            account = self.cache.peek(actor_id)
            if account is None:
                return BonusResult(success=False, message=MSG_NOT_FOUND)
            
            at = now or self._clock()
            cooldown = timedelta(seconds=Limits.DAILY_BONUS_COOLDOWN_SECONDS)
            elapsed = at - account.last_bonus_at
            if elapsed < cooldown:
                remaining = cooldown - elapsed
                hours, minutes = split_cooldown(remaining.total_seconds())
                return BonusResult(
                    success=False,
                    message=f"Daily bonus available in {hours}h {minutes}m",
                    cooldown=remaining,
                )
            
            bonus = cfg.daily_bonus_amount
            if account.balance + bonus > cfg.max_balance:
                return BonusResult(success=False, message=MSG_EXCEEDS_MAX)
            
            updated = replace(account.credited(bonus, at), last_bonus_at=at)
            if not await self._persist(updated):
                return self._store_failure(BonusResult)
            
            await self._record(None, actor_id, bonus, TransactionKind.DAILY_BONUS, "Daily bonus claimed", at)
            self.cache.commit(updated)
        
        return BonusResult(
            success=True,
            message=f"Claimed daily bonus: {self.format_currency(bonus)}",
            amount=bonus,
        )
    
    # -------------------------------------------------------------------------
    # 송금
    # -------------------------------------------------------------------------
    
    async def transfer(
        self,
        from_actor_id: ActorId,
        to_actor_id: ActorId,
        amount: Decimal | int | str,
    ) -> TransferResult:
        """행위자 간 송금
        
        송금인은 amount + tax, 수취인은 amount.
        두 계정의 저장은 하나의 저장소 트랜잭션 - 둘 다 성공하거나 둘 다 실패.
        """
        value = parse_amount(amount)
        if value is None or value <= 0:
            return TransferResult(success=False, message="Amount must be positive")
        
        if from_actor_id == to_actor_id:
            return TransferResult(success=False, message="Cannot transfer to yourself")
        
        cfg = self._config
        tax = apply_rate(value, cfg.transaction_tax_rate)
        total = value + tax
        
        async with self.cache.exclusive(from_actor_id, to_actor_id):
            sender = self.cache.peek(from_actor_id)
            if sender is None:
                return TransferResult(success=False, message="Sender account not found")
            
            recipient = self.cache.peek(to_actor_id)
            if recipient is None:
                return TransferResult(success=False, message="Recipient account not found")
            
            if sender.balance < total:
                return TransferResult(success=False, message=MSG_INSUFFICIENT)
            
            if recipient.balance + value > cfg.max_balance:
                return TransferResult(
                    success=False,
                    message="Recipient balance would exceed maximum",
                )
            
            now = self._clock()
            new_sender = sender.debited(total, now)
            new_recipient = recipient.credited(value, now)
            
            if not await self._persist(new_sender, new_recipient):
                return self._store_failure(TransferResult)
            
            await self._record(
                from_actor_id,
                to_actor_id,
                value,
                TransactionKind.TRANSFER,
                f"Transfer with {self.format_currency(tax)} tax",
                now,
            )
            self.cache.commit(new_sender)
            self.cache.commit(new_recipient)
        
        logger.info(
            "송금 완료",
            extra={
                "from_actor_id": from_actor_id,
                "to_actor_id": to_actor_id,
                "amount": str(value),
                "tax": str(tax),
            },
        )
        return TransferResult(
            success=True,
            message=f"Transferred {self.format_currency(value)} (Tax: {self.format_currency(tax)})",
            amount=value,
            tax_amount=tax,
        )
    
    # -------------------------------------------------------------------------
    # 대출
    # -------------------------------------------------------------------------
    
    async def request_loan(
        self,
        actor_id: ActorId,
        amount: Decimal | int | str,
        duration_days: int,
        now: datetime | None = None,
    ) -> LoanResult:
        """대출 신청
        
        행위자당 Active 대출은 최대 1건.
        확인과 생성이 같은 행위자 Lock 안에서 이루어짐.
        """
        cfg = self._config
        value = parse_amount(amount)
        if value is None or value <= 0 or value > cfg.max_loan_amount:
            return LoanResult(
                success=False,
                message=f"Loan amount must be greater than {self.format_currency(ZERO)} "
                        f"and at most {self.format_currency(cfg.max_loan_amount)}",
            )
        
        if not Limits.LOAN_MIN_DAYS <= duration_days <= Limits.LOAN_MAX_DAYS:
            return LoanResult(
                success=False,
                message=f"Loan duration must be between {Limits.LOAN_MIN_DAYS} "
                        f"and {Limits.LOAN_MAX_DAYS} days",
            )
        
        async with self.cache.exclusive(actor_id):
            account = self.cache.peek(actor_id)
            if account is None:
                return LoanResult(success=False, message=MSG_NOT_FOUND)
            
            try:
                active_loans = await self.store.get_active_loans(actor_id)
            except LedgerStoreError:
                return self._store_failure(LoanResult)
            
            if active_loans:
                return LoanResult(success=False, message="Account already has an active loan")
            
            if account.balance + value > cfg.max_balance:
                return LoanResult(success=False, message=MSG_EXCEEDS_MAX)
            
            at = now or self._clock()
            total_owed = value + apply_rate(value, cfg.loan_interest_rate)
            due_at = at + timedelta(days=duration_days)
            
            try:
                loan = await self.store.create_loan(
                    actor_id=actor_id,
                    principal=value,
                    interest_rate=cfg.loan_interest_rate,
                    remaining=total_owed,
                    issued_at=at,
                    due_at=due_at,
                )
            except LedgerStoreError:
                return self._store_failure(LoanResult)
            
            updated = account.credited(value, at)
            if not await self._persist(updated):
                await self._cancel_loan(loan.id)
                return self._store_failure(LoanResult)
            
            await self._record(None, actor_id, value, TransactionKind.LOAN_DISBURSEMENT, "Loan disbursement", at)
            self.cache.commit(updated)
        
        logger.info(
            "대출 실행",
            extra={
                "actor_id": actor_id,
                "loan_id": loan.id,
                "principal": str(value),
                "total_owed": str(total_owed),
            },
        )
        return LoanResult(
            success=True,
            message=f"Loan approved! You received {self.format_currency(value)}. "
                    f"Total to repay: {self.format_currency(total_owed)} by {due_at:%Y-%m-%d}",
            amount=value,
            total_owed=total_owed,
            loan=loan,
        )
    
    async def repay_loan(
        self,
        actor_id: ActorId,
        amount: Decimal | int | str,
        now: datetime | None = None,
    ) -> LoanResult:
        """대출 상환
        
        잔여 원리금이 0 이하가 되면 Paid (잔여 0으로 저장).
        계정과 대출은 하나의 저장소 트랜잭션으로 저장.
        """
        value = parse_amount(amount)
        if value is None or value <= 0:
            return LoanResult(success=False, message="Amount must be positive")
        
        async with self.cache.exclusive(actor_id):
            account = self.cache.peek(actor_id)
            if account is None:
                return LoanResult(success=False, message=MSG_NOT_FOUND)
            
            try:
                active_loans = await self.store.get_active_loans(actor_id)
            except LedgerStoreError:
                return self._store_failure(LoanResult)
            
            if not active_loans:
                return LoanResult(success=False, message="No active loans found")
            
            if account.balance < value:
                return LoanResult(success=False, message=MSG_INSUFFICIENT)
            
            at = now or self._clock()
            loan = active_loans[0].repaid(value)
            updated = account.debited(value, at)
            
            try:
                await self.store.update_account_with_loan(updated, loan)
            except LedgerStoreError:
                return self._store_failure(LoanResult)
            
            description = "Loan fully repaid" if not loan.is_active else "Partial loan repayment"
            await self._record(actor_id, None, value, TransactionKind.LOAN_REPAYMENT, description, at)
            self.cache.commit(updated)
        
        if not loan.is_active:
            logger.info("대출 완제", extra={"actor_id": actor_id, "loan_id": loan.id})
            return LoanResult(
                success=True,
                message="Loan fully repaid! Congratulations!",
                amount=value,
                loan=loan,
            )
        
        return LoanResult(
            success=True,
            message=f"Repaid {self.format_currency(value)}. "
                    f"Remaining: {self.format_currency(loan.remaining)}",
            amount=value,
            total_owed=loan.remaining,
            loan=loan,
        )
    
    # -------------------------------------------------------------------------
    # 내부 헬퍼 (행위자 Lock 보유 상태에서 호출)
    # -------------------------------------------------------------------------
    
    async def _credit_locked(
        self,
        account: Account,
        amount: Decimal,
        kind: TransactionKind,
        reason: str,
    ) -> OperationResult:
        if account.balance + amount > self._config.max_balance:
            return OperationResult(success=False, message=MSG_EXCEEDS_MAX)
        
        now = self._clock()
        updated = account.credited(amount, now)
        if not await self._persist(updated):
            return self._store_failure(OperationResult)
        
        await self._record(None, account.actor_id, amount, kind, reason, now)
        self.cache.commit(updated)
        return OperationResult(
            success=True,
            message=f"Added {self.format_currency(amount)}",
            amount=amount,
        )
    
    async def _persist(self, *accounts: Account) -> bool:
        """계정 저장 (실패 시 False, 캐시는 건드리지 않음)"""
        try:
            await self.store.update_accounts(*accounts)
            return True
        except LedgerStoreError as e:
            logger.error(
                "계정 저장 실패 - 변경 취소",
                extra={
                    "actor_ids": [a.actor_id for a in accounts],
                    "error": str(e),
                },
            )
            return False
    
    async def _record(
        self,
        from_actor_id: ActorId | None,
        to_actor_id: ActorId | None,
        amount: Decimal,
        kind: TransactionKind,
        description: str,
        timestamp: datetime,
    ) -> None:
        """거래 기록 추가 (best-effort)"""
        try:
            await self.store.append_transaction(
                from_actor_id, to_actor_id, amount, kind, description, timestamp
            )
        except LedgerStoreError as e:
            logger.error(
                "거래 기록 추가 실패",
                extra={
                    "kind": kind.value,
                    "from_actor_id": from_actor_id,
                    "to_actor_id": to_actor_id,
                    "amount": str(amount),
                    "error": str(e),
                },
            )
    
    async def _cancel_loan(self, loan_id: int) -> None:
        """대출 실행 실패 시 생성된 대출 삭제"""
        try:
            await self.store.delete_loan(loan_id)
        except LedgerStoreError as e:
            # 계정은 변경되지 않았으므로 돈은 생기지 않지만 Active 대출이 남음
            logger.critical(
                "대출 보상 삭제 실패 - 수동 정리 필요",
                extra={"loan_id": loan_id, "error": str(e)},
            )
    
    @staticmethod
    def _store_failure(result_type: type[R]) -> R:
        return result_type(success=False, message=MSG_STORE_FAILURE, retryable=True)
