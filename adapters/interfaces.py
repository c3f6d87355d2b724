"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable

from core.ledger.errors import LedgerStoreError
from core.ledger.models import Account, Loan, ShopItem, Transaction
from core.types import ActorId, TransactionKind

__all__ = ["ILedgerStore", "LedgerStoreError"]


@runtime_checkable
class ILedgerStore(Protocol):
    """Ledger 영속 저장소 인터페이스
    
    계정/거래/대출/상점 테이블에 대한 좁은 읽기·쓰기 연산.
    금액은 반드시 Decimal 타입 사용.
    실패 시 LedgerStoreError 발생.
    """
    
    # -------------------------------------------------------------------------
    # 계정
    # -------------------------------------------------------------------------
    
    async def get_account(self, actor_id: ActorId) -> Account | None:
        """계정 조회
        
        Returns:
            계정 또는 None (없음)
        """
        ...
    
    async def create_account(
        self,
        actor_id: ActorId,
        starting_balance: Decimal,
        now: datetime,
    ) -> Account:
        """계정 생성 (이미 있으면 기존 계정 반환)"""
        ...
    
    async def update_account(self, account: Account) -> None:
        """계정 상태 저장 (행이 없으면 LedgerStoreError)"""
        ...
    
    async def update_accounts(self, *accounts: Account) -> None:
        """여러 계정을 하나의 트랜잭션으로 저장 (전부 성공 또는 전부 실패)"""
        ...
    
    async def get_top_accounts(self, limit: int) -> list[Account]:
        """잔액 내림차순 계정 목록"""
        ...
    
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
        """거래 기록 추가"""
        ...
    
    async def get_transaction_history(
        self,
        actor_id: ActorId,
        limit: int,
    ) -> list[Transaction]:
        """행위자 관련 거래 기록 (최신순)"""
        ...
    
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
        """대출 생성 (status=Active)"""
        ...
    
    async def get_active_loans(self, actor_id: ActorId) -> list[Loan]:
        """Active 대출 목록"""
        ...
    
    async def update_loan(self, loan: Loan) -> None:
        """대출 잔액/상태 저장"""
        ...
    
    async def update_account_with_loan(self, account: Account, loan: Loan) -> None:
        """계정과 대출을 하나의 트랜잭션으로 저장 (상환용)"""
        ...
    
    async def delete_loan(self, loan_id: int) -> None:
        """대출 삭제 (실행 실패 시 보상용)"""
        ...
    
    # -------------------------------------------------------------------------
    # 상점 카탈로그
    # -------------------------------------------------------------------------
    
    async def get_shop_items(self, category: str | None = None) -> list[ShopItem]:
        """상점 항목 목록 (category 지정 시 필터)"""
        ...
    
    async def upsert_shop_item(self, item: ShopItem) -> ShopItem:
        """item_id 기준 추가 또는 갱신"""
        ...
