"""
LedgerEngine 단위 테스트

관리자 연산, 송금, 이자, 일일 보너스, 대출, 저장소 장애, 동시성
"""

import asyncio
import random
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from adapters.mock.ledger_store import MockLedgerStore
from core.config.loader import EconomyConfig
from core.ledger.cache import LedgerCache
from core.ledger.engine import (
    MSG_EXCEEDS_MAX,
    MSG_INSUFFICIENT,
    MSG_NOT_FOUND,
    LedgerEngine,
    parse_amount,
)
from core.ledger.errors import LedgerStoreError
from core.types import LoanStatus, TransactionKind


def make_engine(
    mock_store: MockLedgerStore,
    ledger_cache: LedgerCache,
    clock,
    **overrides,
) -> LedgerEngine:
    """설정 일부를 바꾼 엔진"""
    return LedgerEngine(mock_store, ledger_cache, EconomyConfig(**overrides), clock=clock)


# -------------------------------------------------------------------------
# parse_amount
# -------------------------------------------------------------------------

class TestParseAmount:
    """parse_amount 테스트"""

    def test_valid(self) -> None:
        """정수/소수 2자리까지 허용"""
        assert parse_amount("100") == Decimal("100")
        assert parse_amount("12.34") == Decimal("12.34")
        assert parse_amount(5) == Decimal("5")

    def test_too_many_decimals(self) -> None:
        """소수 3자리 이상 거부"""
        assert parse_amount("1.001") is None

    def test_not_a_number(self) -> None:
        """숫자가 아님"""
        assert parse_amount("abc") is None

    def test_beyond_precision(self) -> None:
        """센트 단위로 표현 불가한 큰 값 거부 (예외 없이 None)"""
        assert parse_amount("1e27") is None
        assert parse_amount(Decimal("1E+30")) is None

    @pytest.mark.asyncio
    async def test_operations_reject_huge_amount(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """모든 금액 입력 연산이 예외 대신 실패 결과 반환"""
        await ledger_cache.load(1)
        await ledger_cache.load(2)

        results = [
            await ledger_engine.set_balance(1, "1e27"),
            await ledger_engine.credit(1, "1e27"),
            await ledger_engine.debit(1, "1e27"),
            await ledger_engine.transfer(1, 2, "1e27"),
            await ledger_engine.request_loan(1, "1e27", 7),
            await ledger_engine.repay_loan(1, "1e27"),
        ]

        assert all(r.success is False for r in results)
        assert all(r.retryable is False for r in results)
        assert ledger_cache.peek(1).balance == Decimal("1000")
        assert ledger_cache.peek(2).balance == Decimal("1000")
        assert mock_store.state.transactions == []


# -------------------------------------------------------------------------
# 관리자 연산
# -------------------------------------------------------------------------

class TestSetBalance:
    """set_balance() 테스트"""

    @pytest.mark.asyncio
    async def test_set_balance(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """잔액 설정 + AdminSet 기록 (변경량)"""
        await ledger_cache.load(1)

        result = await ledger_engine.set_balance(1, "500")

        assert result.success is True
        assert result.message == "Balance set to $500.00"
        assert ledger_cache.peek(1).balance == Decimal("500")
        assert mock_store.state.accounts[1].balance == Decimal("500")
        records = mock_store.transactions_of(TransactionKind.ADMIN_SET)
        assert len(records) == 1
        assert records[0].amount == Decimal("-500")
        assert records[0].to_actor_id == 1

    @pytest.mark.asyncio
    async def test_negative_rejected(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """음수 거부, 잔액 변경 없음"""
        await ledger_cache.load(1)

        result = await ledger_engine.set_balance(1, "-5")

        assert result.success is False
        assert ledger_cache.peek(1).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_above_max_rejected(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """최대 잔액 + 1 거부"""
        await ledger_cache.load(1)

        result = await ledger_engine.set_balance(1, ledger_engine.config.max_balance + 1)

        assert result.success is False
        assert ledger_cache.peek(1).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_set_to_max_allowed(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """최대 잔액과 같은 값은 허용"""
        await ledger_cache.load(1)

        result = await ledger_engine.set_balance(1, ledger_engine.config.max_balance)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_not_cached(self, ledger_engine: LedgerEngine) -> None:
        """캐시에 없는 행위자"""
        result = await ledger_engine.set_balance(99, "10")

        assert result.success is False
        assert result.message == MSG_NOT_FOUND


class TestCreditDebit:
    """credit() / debit() 테스트"""

    @pytest.mark.asyncio
    async def test_credit(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """지급: 잔액/누적 수입 증가"""
        await ledger_cache.load(1)

        result = await ledger_engine.credit(1, "250")

        account = ledger_cache.peek(1)
        assert result.success is True
        assert result.message == "Added $250.00"
        assert account.balance == Decimal("1250")
        assert account.total_earned == Decimal("250")
        records = mock_store.transactions_of(TransactionKind.ADD)
        assert records[0].description == "Admin Grant"
        assert records[0].from_actor_id is None

    @pytest.mark.asyncio
    async def test_credit_exceeding_max(
        self,
        mock_store: MockLedgerStore,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """최대 잔액 초과 지급 거부"""
        engine = make_engine(mock_store, ledger_cache, clock, max_balance=Decimal("1050"))
        await ledger_cache.load(1)

        result = await engine.credit(1, "100")

        assert result.success is False
        assert result.message == MSG_EXCEEDS_MAX
        assert ledger_cache.peek(1).balance == Decimal("1000")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "1.005"])
    async def test_credit_invalid_amount(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        amount: str,
    ) -> None:
        """양수가 아닌 금액 거부"""
        await ledger_cache.load(1)

        result = await ledger_engine.credit(1, amount)

        assert result.success is False
        assert result.message == "Amount must be positive"

    @pytest.mark.asyncio
    async def test_debit(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """차감: 잔액 감소, 누적 지출 증가"""
        await ledger_cache.load(1)

        result = await ledger_engine.debit(1, "300", reason="Shop purchase")

        account = ledger_cache.peek(1)
        assert result.success is True
        assert account.balance == Decimal("700")
        assert account.total_spent == Decimal("300")
        records = mock_store.transactions_of(TransactionKind.REMOVE)
        assert records[0].description == "Shop purchase"
        assert records[0].from_actor_id == 1

    @pytest.mark.asyncio
    async def test_debit_insufficient(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """잔액 부족"""
        await ledger_cache.load(1)

        result = await ledger_engine.debit(1, "1000.01")

        assert result.success is False
        assert result.message == MSG_INSUFFICIENT
        assert ledger_cache.peek(1).balance == Decimal("1000")
        assert mock_store.state.transactions == []


# -------------------------------------------------------------------------
# 송금
# -------------------------------------------------------------------------

class TestTransfer:
    """transfer() 테스트"""

    @pytest.mark.asyncio
    async def test_transfer_with_tax(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """1000 → 100 송금 (세금 2%) → 898 / 1100"""
        await ledger_cache.load(1)
        await ledger_cache.load(2)

        result = await ledger_engine.transfer(1, 2, "100")

        assert result.success is True
        assert result.amount == Decimal("100")
        assert result.tax_amount == Decimal("2.00")
        assert result.message == "Transferred $100.00 (Tax: $2.00)"

        sender = ledger_cache.peek(1)
        recipient = ledger_cache.peek(2)
        assert sender.balance == Decimal("898")
        assert sender.total_spent == Decimal("102")
        assert recipient.balance == Decimal("1100")
        assert recipient.total_earned == Decimal("100")

        # 저장소도 동일
        assert mock_store.state.accounts[1].balance == Decimal("898")
        assert mock_store.state.accounts[2].balance == Decimal("1100")

        records = mock_store.transactions_of(TransactionKind.TRANSFER)
        assert len(records) == 1
        assert records[0].from_actor_id == 1
        assert records[0].to_actor_id == 2
        assert records[0].amount == Decimal("100")
        assert records[0].description == "Transfer with $2.00 tax"

    @pytest.mark.asyncio
    async def test_insufficient_including_tax(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """세금 포함 금액이 잔액 초과"""
        await ledger_cache.load(1)
        await ledger_cache.load(2)

        result = await ledger_engine.transfer(1, 2, "990")

        assert result.success is False
        assert result.message == MSG_INSUFFICIENT
        assert ledger_cache.peek(1).balance == Decimal("1000")
        assert ledger_cache.peek(2).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_self_transfer(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """자기 자신에게 송금 불가"""
        await ledger_cache.load(1)

        result = await ledger_engine.transfer(1, 1, "10")

        assert result.success is False
        assert result.message == "Cannot transfer to yourself"

    @pytest.mark.asyncio
    async def test_non_positive_amount(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """0 이하 금액"""
        await ledger_cache.load(1)
        await ledger_cache.load(2)

        result = await ledger_engine.transfer(1, 2, "0")

        assert result.success is False
        assert result.message == "Amount must be positive"

    @pytest.mark.asyncio
    async def test_unknown_participants(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """캐시에 없는 송금인/수취인"""
        await ledger_cache.load(1)

        to_missing = await ledger_engine.transfer(1, 2, "10")
        from_missing = await ledger_engine.transfer(3, 1, "10")

        assert to_missing.message == "Recipient account not found"
        assert from_missing.message == "Sender account not found"
        assert ledger_cache.peek(1).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_recipient_would_exceed_max(
        self,
        mock_store: MockLedgerStore,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """수취인 최대 잔액 초과"""
        engine = make_engine(mock_store, ledger_cache, clock, max_balance=Decimal("1050"))
        await ledger_cache.load(1)
        await ledger_cache.load(2)

        result = await engine.transfer(1, 2, "100")

        assert result.success is False
        assert result.message == "Recipient balance would exceed maximum"
        assert ledger_cache.peek(1).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_tax_rounded_to_cents(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """세금은 센트 단위 반올림"""
        await ledger_cache.load(1)
        await ledger_cache.load(2)

        result = await ledger_engine.transfer(1, 2, "0.25")

        assert result.tax_amount == Decimal("0.01")
        assert ledger_cache.peek(1).balance == Decimal("999.74")


# -------------------------------------------------------------------------
# 이자
# -------------------------------------------------------------------------

class TestAccrueInterest:
    """accrue_interest() 테스트"""

    @pytest.mark.asyncio
    async def test_not_due_is_noop(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """간격 미경과 → no-op"""
        await ledger_cache.load(1)

        result = await ledger_engine.accrue_interest(1, clock() + timedelta(minutes=30))

        assert result.success is True
        assert result.applied is False
        assert ledger_cache.peek(1).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_interest_paid_after_interval(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
        clock,
    ) -> None:
        """간격 경과 → 5% 지급, 기준 시각 갱신"""
        await ledger_cache.load(1)
        at = clock() + timedelta(minutes=60)

        result = await ledger_engine.accrue_interest(1, at)

        account = ledger_cache.peek(1)
        assert result.applied is True
        assert result.amount == Decimal("50.00")
        assert account.balance == Decimal("1050")
        assert account.total_earned == Decimal("50")
        assert account.last_interest_at == at
        records = mock_store.transactions_of(TransactionKind.INTEREST)
        assert len(records) == 1
        assert records[0].to_actor_id == 1

        # 같은 시각에 다시 호출 → no-op
        again = await ledger_engine.accrue_interest(1, at)
        assert again.applied is False
        assert ledger_cache.peek(1).balance == Decimal("1050")

    @pytest.mark.asyncio
    async def test_clamped_to_max_balance(
        self,
        mock_store: MockLedgerStore,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """최대 잔액을 넘지 않도록 이자 제한"""
        engine = make_engine(mock_store, ledger_cache, clock, max_balance=Decimal("1020"))
        await ledger_cache.load(1)

        first = await engine.accrue_interest(1, clock() + timedelta(hours=1))
        second = await engine.accrue_interest(1, clock() + timedelta(hours=2))

        assert first.amount == Decimal("20")
        assert ledger_cache.peek(1).balance == Decimal("1020")
        # 상한 도달 후에는 0 지급, 기준 시각만 갱신, 기록 없음
        assert second.applied is True
        assert second.amount == Decimal("0")
        assert ledger_cache.peek(1).last_interest_at == clock() + timedelta(hours=2)
        assert len(mock_store.transactions_of(TransactionKind.INTEREST)) == 1

    @pytest.mark.asyncio
    async def test_disabled(
        self,
        mock_store: MockLedgerStore,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """이자 비활성 → no-op"""
        engine = make_engine(mock_store, ledger_cache, clock, enable_interest=False)
        await ledger_cache.load(1)

        result = await engine.accrue_interest(1, clock() + timedelta(days=1))

        assert result.success is True
        assert result.applied is False
        assert ledger_cache.peek(1).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_not_cached(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """캐시에 없는 행위자는 오류가 아닌 no-op"""
        result = await ledger_engine.accrue_interest(5)

        assert result.success is True
        assert result.applied is False
        assert result.retryable is False
        assert result.amount == Decimal("0")
        assert 5 not in ledger_cache
        assert mock_store.state.write_count == 0


# -------------------------------------------------------------------------
# 일일 보너스
# -------------------------------------------------------------------------

class TestDailyBonus:
    """claim_daily_bonus() 테스트"""

    @pytest.mark.asyncio
    async def test_new_account_on_cooldown(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """신규 계정은 생성 시각부터 24시간 쿨다운"""
        await ledger_cache.load(1)

        result = await ledger_engine.claim_daily_bonus(1)

        assert result.success is False
        assert result.message == "Daily bonus available in 24h 0m"
        assert result.hours == 24
        assert result.minutes == 0

    @pytest.mark.asyncio
    async def test_claim_and_cooldown(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
        clock,
    ) -> None:
        """수령 후 다시 24시간 쿨다운"""
        await ledger_cache.load(1)
        claimed_at = clock() + timedelta(hours=25)

        result = await ledger_engine.claim_daily_bonus(1, claimed_at)

        assert result.success is True
        assert result.amount == Decimal("100")
        assert result.message == "Claimed daily bonus: $100.00"
        assert ledger_cache.peek(1).balance == Decimal("1100")
        assert ledger_cache.peek(1).last_bonus_at == claimed_at
        assert len(mock_store.transactions_of(TransactionKind.DAILY_BONUS)) == 1

        again = await ledger_engine.claim_daily_bonus(
            1, claimed_at + timedelta(hours=1, minutes=30)
        )

        assert again.success is False
        assert again.message == "Daily bonus available in 22h 30m"
        assert again.cooldown == timedelta(hours=22, minutes=30)
        assert ledger_cache.peek(1).balance == Decimal("1100")

    @pytest.mark.asyncio
    async def test_exactly_24_hours(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """정확히 24시간 경과 시 수령 가능"""
        await ledger_cache.load(1)

        result = await ledger_engine.claim_daily_bonus(1, clock() + timedelta(hours=24))

        assert result.success is True

    @pytest.mark.asyncio
    async def test_bonus_exceeding_max(
        self,
        mock_store: MockLedgerStore,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """최대 잔액 초과 시 거부"""
        engine = make_engine(mock_store, ledger_cache, clock, max_balance=Decimal("1050"))
        await ledger_cache.load(1)

        result = await engine.claim_daily_bonus(1, clock() + timedelta(days=2))

        assert result.success is False
        assert result.message == MSG_EXCEEDS_MAX


# -------------------------------------------------------------------------
# 대출
# -------------------------------------------------------------------------

class TestLoans:
    """request_loan() / repay_loan() 테스트"""

    @pytest.mark.asyncio
    async def test_request_loan(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
        clock,
    ) -> None:
        """500 대출 (10%) → 상환 총액 550"""
        await ledger_cache.load(1)

        result = await ledger_engine.request_loan(1, "500", 30)

        assert result.success is True
        assert result.total_owed == Decimal("550.00")
        assert "Total to repay: $550.00" in result.message
        assert (clock() + timedelta(days=30)).strftime("%Y-%m-%d") in result.message
        assert ledger_cache.peek(1).balance == Decimal("1500")

        loan = result.loan
        assert loan.principal == Decimal("500")
        assert loan.remaining == Decimal("550.00")
        assert loan.status == LoanStatus.ACTIVE
        assert loan.due_at == clock() + timedelta(days=30)
        assert len(mock_store.transactions_of(TransactionKind.LOAN_DISBURSEMENT)) == 1

    @pytest.mark.asyncio
    async def test_second_loan_rejected(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """Active 대출이 있으면 거부"""
        await ledger_cache.load(1)
        await ledger_engine.request_loan(1, "500", 30)

        result = await ledger_engine.request_loan(1, "100", 10)

        assert result.success is False
        assert "already has an active loan" in result.message
        assert ledger_cache.peek(1).balance == Decimal("1500")

    @pytest.mark.asyncio
    async def test_concurrent_requests_create_one_loan(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """동시 대출 신청 → 하나만 성공"""
        await ledger_cache.load(1)
        mock_store.state.write_delay = 0.005

        results = await asyncio.gather(
            *(ledger_engine.request_loan(1, "100", 7) for _ in range(5))
        )

        assert sum(r.success for r in results) == 1
        assert len(mock_store.state.loans) == 1
        assert ledger_cache.peek(1).balance == Decimal("1100")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("amount", "days"),
        [("0", 30), ("50000.01", 30), ("100", 0), ("100", 366)],
    )
    async def test_invalid_request(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
        amount: str,
        days: int,
    ) -> None:
        """금액/기간 범위 밖"""
        await ledger_cache.load(1)

        result = await ledger_engine.request_loan(1, amount, days)

        assert result.success is False
        assert mock_store.state.loans == {}

    @pytest.mark.asyncio
    async def test_full_repayment(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """550 상환 → Paid"""
        await ledger_cache.load(1)
        loan_result = await ledger_engine.request_loan(1, "500", 30)

        result = await ledger_engine.repay_loan(1, "550")

        assert result.success is True
        assert result.message == "Loan fully repaid! Congratulations!"
        assert ledger_cache.peek(1).balance == Decimal("950")
        stored = mock_store.state.loans[loan_result.loan.id]
        assert stored.status == LoanStatus.PAID
        assert stored.remaining == Decimal("0")
        records = mock_store.transactions_of(TransactionKind.LOAN_REPAYMENT)
        assert records[0].description == "Loan fully repaid"

        # 완제 후 새 대출 가능
        again = await ledger_engine.request_loan(1, "100", 7)
        assert again.success is True

    @pytest.mark.asyncio
    async def test_partial_repayment(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """부분 상환"""
        await ledger_cache.load(1)
        await ledger_engine.request_loan(1, "500", 30)

        result = await ledger_engine.repay_loan(1, "200")

        assert result.success is True
        assert result.message == "Repaid $200.00. Remaining: $350.00"
        assert result.loan.status == LoanStatus.ACTIVE
        assert ledger_cache.peek(1).balance == Decimal("1300")
        records = mock_store.transactions_of(TransactionKind.LOAN_REPAYMENT)
        assert records[0].description == "Partial loan repayment"

    @pytest.mark.asyncio
    async def test_overpayment_debits_full_amount(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """초과 상환도 전액 차감, 잔여 0으로 Paid"""
        await ledger_cache.load(1)
        await ledger_engine.request_loan(1, "500", 30)

        result = await ledger_engine.repay_loan(1, "600")

        assert result.success is True
        assert result.loan.remaining == Decimal("0")
        assert ledger_cache.peek(1).balance == Decimal("900")

    @pytest.mark.asyncio
    async def test_repay_without_loan(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """Active 대출 없음"""
        await ledger_cache.load(1)

        result = await ledger_engine.repay_loan(1, "10")

        assert result.success is False
        assert result.message == "No active loans found"

    @pytest.mark.asyncio
    async def test_repay_insufficient(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """상환액이 잔액 초과"""
        await ledger_cache.load(1)
        await ledger_engine.request_loan(1, "500", 30)

        result = await ledger_engine.repay_loan(1, "2000")

        assert result.success is False
        assert result.message == MSG_INSUFFICIENT
        assert ledger_cache.peek(1).balance == Decimal("1500")

    @pytest.mark.asyncio
    async def test_repay_non_positive(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """0 이하 상환 거부"""
        await ledger_cache.load(1)
        await ledger_engine.request_loan(1, "500", 30)

        result = await ledger_engine.repay_loan(1, "-10")

        assert result.success is False

    @pytest.mark.asyncio
    async def test_disbursement_failure_deletes_loan(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """지급 저장 실패 → 대출 삭제, 잔액 변경 없음"""
        await ledger_cache.load(1)
        mock_store.update_accounts = AsyncMock(side_effect=LedgerStoreError("disk full"))

        result = await ledger_engine.request_loan(1, "500", 30)

        assert result.success is False
        assert result.retryable is True
        assert mock_store.state.loans == {}
        assert ledger_cache.peek(1).balance == Decimal("1000")
        assert mock_store.transactions_of(TransactionKind.LOAN_DISBURSEMENT) == []


# -------------------------------------------------------------------------
# 저장소 장애
# -------------------------------------------------------------------------

class TestStoreFailures:
    """저장소 쓰기 실패 시 캐시 불변"""

    @pytest.mark.asyncio
    async def test_credit_write_failure(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """쓰기 실패 → retryable, 캐시/저장소 변경 없음"""
        before = await ledger_cache.load(1)
        mock_store.state.fail_next_writes = 1

        result = await ledger_engine.credit(1, "100")

        assert result.success is False
        assert result.retryable is True
        assert ledger_cache.peek(1) is before
        assert mock_store.state.accounts[1] == before
        assert mock_store.state.transactions == []

        # 재시도는 성공
        retry = await ledger_engine.credit(1, "100")
        assert retry.success is True
        assert ledger_cache.peek(1).balance == Decimal("1100")

    @pytest.mark.asyncio
    async def test_transfer_write_failure(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """송금 쓰기 실패 → 양쪽 모두 변경 없음"""
        await ledger_cache.load(1)
        await ledger_cache.load(2)
        mock_store.state.fail_next_writes = 1

        result = await ledger_engine.transfer(1, 2, "100")

        assert result.retryable is True
        assert ledger_cache.peek(1).balance == Decimal("1000")
        assert ledger_cache.peek(2).balance == Decimal("1000")
        assert mock_store.state.accounts[1].balance == Decimal("1000")
        assert mock_store.state.accounts[2].balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_repay_write_failure(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """상환 쓰기 실패 → 대출/잔액 변경 없음"""
        await ledger_cache.load(1)
        loan = (await ledger_engine.request_loan(1, "500", 30)).loan
        mock_store.state.fail_next_writes = 1

        result = await ledger_engine.repay_loan(1, "550")

        assert result.retryable is True
        assert ledger_cache.peek(1).balance == Decimal("1500")
        assert mock_store.state.loans[loan.id].status == LoanStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_history_append_failure_keeps_change(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """거래 기록 실패는 연산을 실패시키지 않음"""
        await ledger_cache.load(1)
        mock_store.state.fail_transaction_append = True

        result = await ledger_engine.credit(1, "100")

        assert result.success is True
        assert ledger_cache.peek(1).balance == Decimal("1100")
        assert mock_store.state.accounts[1].balance == Decimal("1100")
        assert mock_store.state.transactions == []


# -------------------------------------------------------------------------
# 동시성
# -------------------------------------------------------------------------

class TestConcurrency:
    """동시 연산 테스트"""

    @pytest.mark.asyncio
    async def test_opposite_transfers_do_not_deadlock(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """A→B, B→A 동시 송금 교착 없음 + 총액 보존"""
        await ledger_cache.load(1)
        await ledger_cache.load(2)
        mock_store.state.write_delay = 0.001

        transfers = []
        for _ in range(25):
            transfers.append(ledger_engine.transfer(1, 2, "10"))
            transfers.append(ledger_engine.transfer(2, 1, "10"))

        results = await asyncio.wait_for(asyncio.gather(*transfers), timeout=10)

        assert all(r.success for r in results)
        total_tax = sum((r.tax_amount for r in results), Decimal("0"))
        balances = ledger_cache.peek(1).balance + ledger_cache.peek(2).balance
        assert balances + total_tax == Decimal("2000")
        assert ledger_cache.peek(1).balance == Decimal("995")
        assert ledger_cache.peek(2).balance == Decimal("995")

    @pytest.mark.asyncio
    async def test_concurrent_debits_never_overdraw(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        mock_store: MockLedgerStore,
    ) -> None:
        """동시 차감이 잔액을 음수로 만들지 않음"""
        await ledger_cache.load(1)
        mock_store.state.write_delay = 0.001

        results = await asyncio.gather(
            *(ledger_engine.debit(1, "300") for _ in range(5))
        )

        assert sum(r.success for r in results) == 3
        assert ledger_cache.peek(1).balance == Decimal("100")
        assert mock_store.state.accounts[1].balance == Decimal("100")

    @pytest.mark.asyncio
    async def test_config_swap_applies_to_next_operation(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """설정 교체 후 연산은 새 설정 사용"""
        await ledger_cache.load(1)
        await ledger_cache.load(2)

        ledger_engine.update_config(
            replace(ledger_engine.config, transaction_tax_rate=Decimal("0"))
        )
        result = await ledger_engine.transfer(1, 2, "100")

        assert result.tax_amount == Decimal("0")
        assert ledger_cache.peek(1).balance == Decimal("900")


class TestGetBalance:
    """get_balance() 테스트"""

    @pytest.mark.asyncio
    async def test_cached_stored_unknown(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
    ) -> None:
        """캐시 → 저장소 → 0"""
        await ledger_cache.load(1)
        await ledger_engine.credit(1, "5")
        await ledger_cache.evict(1)
        await ledger_cache.load(2)

        assert await ledger_engine.get_balance(2) == Decimal("1000")
        assert await ledger_engine.get_balance(1) == Decimal("1005")
        assert await ledger_engine.get_balance(3) == Decimal("0")


class TestInvariants:
    """상태 불변식"""

    @pytest.mark.asyncio
    async def test_cooldown_non_increasing_then_single_success(
        self,
        ledger_engine: LedgerEngine,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """쿨다운 중 두 번 실패 (남은 시간 비증가), 24시간 후 한 번만 성공"""
        await ledger_cache.load(1)
        claimed_at = clock() + timedelta(days=1)
        assert (await ledger_engine.claim_daily_bonus(1, claimed_at)).success is True

        first = await ledger_engine.claim_daily_bonus(1, claimed_at + timedelta(hours=2))
        second = await ledger_engine.claim_daily_bonus(1, claimed_at + timedelta(hours=20))

        assert first.success is False
        assert second.success is False
        assert second.cooldown <= first.cooldown

        eligible_at = claimed_at + timedelta(hours=24)
        results = [
            await ledger_engine.claim_daily_bonus(1, eligible_at),
            await ledger_engine.claim_daily_bonus(1, eligible_at),
        ]
        assert [r.success for r in results] == [True, False]

    @pytest.mark.asyncio
    async def test_balance_stays_in_range(
        self,
        mock_store: MockLedgerStore,
        ledger_cache: LedgerCache,
        clock,
    ) -> None:
        """임의 연산 순서에서도 0 ≤ balance ≤ max_balance"""
        max_balance = Decimal("5000")
        engine = make_engine(mock_store, ledger_cache, clock, max_balance=max_balance)
        actors = [1, 2, 3]
        for actor_id in actors:
            await ledger_cache.load(actor_id)

        rng = random.Random(1234)
        for step in range(300):
            a, b = rng.sample(actors, 2)
            amount = str(rng.randint(1, 3000))
            op = rng.choice(["credit", "debit", "transfer", "set", "interest", "loan", "repay"])
            clock.advance(minutes=37)

            if op == "credit":
                await engine.credit(a, amount)
            elif op == "debit":
                await engine.debit(a, amount)
            elif op == "transfer":
                await engine.transfer(a, b, amount)
            elif op == "set":
                await engine.set_balance(a, amount)
            elif op == "interest":
                await engine.accrue_interest(a)
            elif op == "loan":
                await engine.request_loan(a, amount, rng.randint(1, 30))
            else:
                await engine.repay_loan(a, amount)

            for account in ledger_cache.snapshot():
                assert Decimal("0") <= account.balance <= max_balance, (step, op)
            for actor_id in actors:
                active = await mock_store.get_active_loans(actor_id)
                assert len(active) <= 1
