"""
Ledger Reporting

읽기 전용 집계 (계정 통계, 거래 내역, 잔액 순위).
활성 계정은 캐시 스냅샷, 비활성 계정은 저장소 값을 사용.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from core.constants import Limits
from core.ledger.models import Account, Transaction
from core.ledger.results import AccountStats
from core.types import ActorId
from core.utils.money import ZERO
from core.utils.timezone import now_utc

if TYPE_CHECKING:
    from adapters.interfaces import ILedgerStore
    from core.ledger.cache import LedgerCache

logger = logging.getLogger(__name__)


class LedgerReporter:
    """읽기 전용 리포트
    
    Lock을 잡지 않는다. 캐시의 Account는 불변 스냅샷이라
    조회 결과는 변경 전 또는 변경 후 상태이며 중간 상태는 없다.
    
    Args:
        store: 영속 저장소
        cache: 계정 캐시
        clock: 현재 시각 함수
    """
    
    def __init__(
        self,
        store: ILedgerStore,
        cache: LedgerCache,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.cache = cache
        self._clock = clock
    
    async def _resolve_account(self, actor_id: ActorId) -> Account | None:
        """캐시 우선 조회, 없으면 저장소 값"""
        account = self.cache.peek(actor_id)
        if account is not None:
            return account
        return await self.store.get_account(actor_id)
    
    async def get_stats(
        self,
        actor_id: ActorId,
        now: datetime | None = None,
    ) -> AccountStats | None:
        """계정 통계
        
        Returns:
            AccountStats 또는 None (계정 없음)
        """
        account = await self._resolve_account(actor_id)
        if account is None:
            return None
        
        at = now or self._clock()
        loans = await self.store.get_active_loans(actor_id)
        
        return AccountStats(
            balance=account.balance,
            total_earned=account.total_earned,
            total_spent=account.total_spent,
            active_loans=len(loans),
            total_loan_debt=sum((loan.remaining for loan in loans), ZERO),
            account_age=at - account.created_at,
            has_overdue_loan=any(loan.is_overdue(at) for loan in loans),
        )
    
    async def get_transaction_history(
        self,
        actor_id: ActorId,
        limit: int = Limits.HISTORY_DEFAULT_LIMIT,
    ) -> list[Transaction]:
        """거래 내역 (최신순)
        
        limit은 1 ~ HISTORY_MAX_LIMIT 범위로 보정.
        """
        limit = max(1, min(limit, Limits.HISTORY_MAX_LIMIT))
        return await self.store.get_transaction_history(actor_id, limit)
    
    async def get_top_accounts(
        self,
        limit: int = Limits.TOP_ACCOUNTS_DEFAULT_LIMIT,
    ) -> list[Account]:
        """잔액 순위 (내림차순)
        
        저장소 순위에 캐시 스냅샷을 덮어써서 재정렬.
        캐시 계정이 저장소보다 최신일 수 있으므로 캐시 수만큼 더 조회.
        """
        if limit <= 0:
            return []
        
        cached = {account.actor_id: account for account in self.cache.snapshot()}
        stored = await self.store.get_top_accounts(limit + len(cached))
        
        merged: dict[ActorId, Account] = {account.actor_id: account for account in stored}
        merged.update(cached)
        
        ranked = sorted(merged.values(), key=lambda a: (-a.balance, a.actor_id))
        return ranked[:limit]
