"""
Mock Ledger 저장소

테스트용 메모리 내 저장소.
ILedgerStore Protocol 준수.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from core.ledger.errors import LedgerStoreError
from core.ledger.models import Account, Loan, ShopItem, Transaction
from core.types import ActorId, LoanStatus, TransactionKind


@dataclass
class MockStoreState:
    """Mock 상태 (메모리 내 저장)"""
    
    accounts: dict[ActorId, Account] = field(default_factory=dict)
    transactions: list[Transaction] = field(default_factory=list)
    loans: dict[int, Loan] = field(default_factory=dict)
    shop_items: dict[int, ShopItem] = field(default_factory=dict)
    
    # 장애 시뮬레이션 옵션
    unavailable: bool = False  # 모든 연산 실패
    fail_next_writes: int = 0  # 다음 N번의 쓰기 실패
    fail_transaction_append: bool = False  # 거래 기록 추가만 실패
    write_delay: float = 0.0  # 쓰기 지연 (동시성 테스트용)
    
    # 카운터
    transaction_counter: int = 0
    loan_counter: int = 0
    shop_counter: int = 0
    write_count: int = 0


class MockLedgerStore:
    """Mock Ledger 저장소
    
    사용 예시:
    ```python
    store = MockLedgerStore()
    
    # 다음 쓰기 1회 실패
    store.state.fail_next_writes = 1
    
    # 저장소 전체 장애
    store.state.unavailable = True
    ```
    """
    
    def __init__(self, state: MockStoreState | None = None):
        self.state = state or MockStoreState()
    
    def _check_read(self) -> None:
        if self.state.unavailable:
            raise LedgerStoreError("Mock store unavailable")
    
    async def _delay(self) -> None:
        if self.state.write_delay > 0:
            await asyncio.sleep(self.state.write_delay)  # 시뮬레이션 딜레이
    
    def _check_write(self) -> None:
        self._check_read()
        if self.state.fail_next_writes > 0:
            self.state.fail_next_writes -= 1
            raise LedgerStoreError("Mock write failure")
        self.state.write_count += 1
    
    # -------------------------------------------------------------------------
    # 계정
    # -------------------------------------------------------------------------
    
    async def get_account(self, actor_id: ActorId) -> Account | None:
        self._check_read()
        return self.state.accounts.get(actor_id)
    
    async def create_account(
        self,
        actor_id: ActorId,
        starting_balance: Decimal,
        now: datetime,
    ) -> Account:
        await self._delay()
        self._check_write()
        if actor_id not in self.state.accounts:
            self.state.accounts[actor_id] = Account.open(actor_id, starting_balance, now)
        return self.state.accounts[actor_id]
    
    async def update_account(self, account: Account) -> None:
        await self.update_accounts(account)
    
    async def update_accounts(self, *accounts: Account) -> None:
        await self._delay()
        self._check_write()
        for account in accounts:
            if account.actor_id not in self.state.accounts:
                raise LedgerStoreError(f"존재하지 않는 계정: {account.actor_id}")
        for account in accounts:
            self.state.accounts[account.actor_id] = account
    
    async def get_top_accounts(self, limit: int) -> list[Account]:
        self._check_read()
        ranked = sorted(
            self.state.accounts.values(),
            key=lambda a: (-a.balance, a.actor_id),
        )
        return ranked[:limit]
    
    # -------------------------------------------------------------------------
    # 거래 기록
    # -------------------------------------------------------------------------
    
    async def append_transaction(
        self,
        from_actor_id: ActorId | None,
        to_actor_id: ActorId | None,
        amount: Decimal,
        kind: TransactionKind,
        description: str,
        timestamp: datetime,
    ) -> Transaction:
        if self.state.fail_transaction_append:
            raise LedgerStoreError("Mock transaction append failure")
        self._check_write()
        self.state.transaction_counter += 1
        tx = Transaction(
            id=self.state.transaction_counter,
            from_actor_id=from_actor_id,
            to_actor_id=to_actor_id,
            amount=amount,
            kind=kind,
            description=description,
            timestamp=timestamp,
        )
        self.state.transactions.append(tx)
        return tx
    
    async def get_transaction_history(
        self,
        actor_id: ActorId,
        limit: int,
    ) -> list[Transaction]:
        self._check_read()
        related = [
            tx for tx in self.state.transactions
            if actor_id in (tx.from_actor_id, tx.to_actor_id)
        ]
        related.sort(key=lambda tx: (tx.timestamp, tx.id), reverse=True)
        return related[:limit]
    
    def transactions_of(self, kind: TransactionKind) -> list[Transaction]:
        """특정 유형의 거래 기록 (테스트 검증용)"""
        return [tx for tx in self.state.transactions if tx.kind == kind]
    
    # -------------------------------------------------------------------------
    # 대출
    # -------------------------------------------------------------------------
    
    async def create_loan(
        self,
        actor_id: ActorId,
        principal: Decimal,
        interest_rate: Decimal,
        remaining: Decimal,
        issued_at: datetime,
        due_at: datetime,
    ) -> Loan:
        await self._delay()
        self._check_write()
        self.state.loan_counter += 1
        loan = Loan(
            id=self.state.loan_counter,
            actor_id=actor_id,
            principal=principal,
            interest_rate=interest_rate,
            remaining=remaining,
            issued_at=issued_at,
            due_at=due_at,
            status=LoanStatus.ACTIVE,
        )
        self.state.loans[loan.id] = loan
        return loan
    
    async def get_active_loans(self, actor_id: ActorId) -> list[Loan]:
        self._check_read()
        return [
            loan for loan in self.state.loans.values()
            if loan.actor_id == actor_id and loan.is_active
        ]
    
    async def update_loan(self, loan: Loan) -> None:
        self._check_write()
        if loan.id not in self.state.loans:
            raise LedgerStoreError(f"존재하지 않는 대출: {loan.id}")
        self.state.loans[loan.id] = loan
    
    async def update_account_with_loan(self, account: Account, loan: Loan) -> None:
        await self._delay()
        self._check_write()
        if account.actor_id not in self.state.accounts:
            raise LedgerStoreError(f"존재하지 않는 계정: {account.actor_id}")
        if loan.id not in self.state.loans:
            raise LedgerStoreError(f"존재하지 않는 대출: {loan.id}")
        self.state.accounts[account.actor_id] = account
        self.state.loans[loan.id] = loan
    
    async def delete_loan(self, loan_id: int) -> None:
        self._check_write()
        self.state.loans.pop(loan_id, None)
    
    # -------------------------------------------------------------------------
    # 상점 카탈로그
    # -------------------------------------------------------------------------
    
    async def get_shop_items(self, category: str | None = None) -> list[ShopItem]:
        self._check_read()
        items = sorted(self.state.shop_items.values(), key=lambda i: i.item_id)
        if category is None:
            return items
        return [item for item in items if item.category == category]
    
    async def upsert_shop_item(self, item: ShopItem) -> ShopItem:
        self._check_write()
        existing = self.state.shop_items.get(item.item_id)
        if existing is None:
            self.state.shop_counter += 1
            stored = replace(item, id=self.state.shop_counter)
        else:
            stored = replace(item, id=existing.id)
        self.state.shop_items[item.item_id] = stored
        return stored
