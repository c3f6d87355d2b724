"""
Ledger Cache

행위자 ID → Account 메모리 캐시.
행위자가 활성 상태인 동안 캐시가 유일한 가변 사본이며,
저장소는 write-through로 동기화되는 영속 사본.

동시성 모델:
- 매핑(dict) 추가/삭제/조회 구간에는 await 지점이 없음 → 이벤트 루프에서 원자적
- 계정 필드 변경은 행위자별 asyncio.Lock 보유 중에만 수행
- 여러 행위자를 잠글 때는 항상 actor_id 오름차순 (교착 방지)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, AsyncIterator, Callable

from core.ledger.errors import AccountLoadError, LedgerStoreError
from core.ledger.models import Account
from core.types import ActorId
from core.utils.timezone import now_utc

if TYPE_CHECKING:
    from datetime import datetime

    from adapters.interfaces import ILedgerStore

logger = logging.getLogger(__name__)


@dataclass
class _ActorLock:
    """행위자 Lock + 사용자 수"""
    
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class LedgerCache:
    """계정 캐시
    
    Args:
        store: 영속 저장소
        starting_balance_getter: 신규 계정 시작 잔액 조회 함수 (설정 교체 대응)
        clock: 현재 시각 함수
        
    사용 예시:
    ```python
    cache = LedgerCache(store, lambda: config.starting_balance)
    
    account = await cache.load(42)        # 세션 시작
    async with cache.exclusive(42):
        ...                               # 필드 변경
        cache.commit(new_account)
    await cache.evict(42)                 # 세션 종료
    ```
    """
    
    def __init__(
        self,
        store: ILedgerStore,
        starting_balance_getter: Callable[[], Decimal],
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self._starting_balance_getter = starting_balance_getter
        self._clock = clock
        
        self._accounts: dict[ActorId, Account] = {}
        # 행위자별 Lock 테이블 - 보유자/대기자가 남아 있는 동안만 유지
        self._locks: dict[ActorId, _ActorLock] = {}
    
    def __len__(self) -> int:
        return len(self._accounts)
    
    def __contains__(self, actor_id: object) -> bool:
        return actor_id in self._accounts
    
    @property
    def lock_count(self) -> int:
        """Lock 테이블 크기 (보유/대기 중인 행위자 수)"""
        return len(self._locks)
    
    def is_locked(self, actor_id: ActorId) -> bool:
        """행위자 Lock 보유 여부"""
        entry = self._locks.get(actor_id)
        return entry is not None and entry.lock.locked()
    
    @asynccontextmanager
    async def _hold(self, actor_id: ActorId) -> AsyncIterator[None]:
        """행위자 Lock 보유 구간
        
        사용자 수(보유자 + 대기자)가 0이 되면 테이블에서 제거.
        대기 중인 코루틴이 있는 동안에는 같은 Lock이 유지되므로
        이후 호출자도 같은 Lock에서 기다린다.
        """
        entry = self._locks.get(actor_id)
        if entry is None:
            entry = _ActorLock()
            self._locks[actor_id] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[actor_id]
    
    @asynccontextmanager
    async def exclusive(self, *actor_ids: ActorId) -> AsyncIterator[None]:
        """여러 행위자의 배타 구간
        
        중복 제거 후 actor_id 오름차순으로 Lock 획득.
        반대 방향 송금이 동시에 일어나도 교착되지 않음.
        """
        async with AsyncExitStack() as stack:
            for actor_id in sorted(set(actor_ids)):
                await stack.enter_async_context(self._hold(actor_id))
            yield
    
    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------
    
    def peek(self, actor_id: ActorId) -> Account | None:
        """캐시 조회 (저장소 접근 없음)
        
        Account는 불변 스냅샷이므로 반환값이 부분 변경 상태일 수 없음.
        """
        return self._accounts.get(actor_id)
    
    def cached_actor_ids(self) -> list[ActorId]:
        """현재 캐시된 행위자 ID 목록 (스냅샷)"""
        return list(self._accounts)
    
    def snapshot(self) -> list[Account]:
        """현재 캐시된 계정 목록 (스냅샷)"""
        return list(self._accounts.values())
    
    # -------------------------------------------------------------------------
    # 생명주기
    # -------------------------------------------------------------------------
    
    async def load(self, actor_id: ActorId) -> Account:
        """계정 로드 (세션 시작)
        
        캐시에 있으면 그대로 반환.
        없으면 저장소에서 조회하고, 저장소에도 없으면 시작 잔액으로 생성.
        행위자 Lock 안에서 수행하므로 동일 행위자 로드는 동시에 하나만 진행.
        
        Raises:
            AccountLoadError: 저장소 조회/생성 실패
        """
        cached = self._accounts.get(actor_id)
        if cached is not None:
            return cached
        
        async with self._hold(actor_id):
            # Lock 대기 중 다른 코루틴이 로드했을 수 있음
            cached = self._accounts.get(actor_id)
            if cached is not None:
                return cached
            
            try:
                account = await self.store.get_account(actor_id)
                if account is None:
                    account = await self.store.create_account(
                        actor_id,
                        self._starting_balance_getter(),
                        self._clock(),
                    )
                    logger.info(
                        "신규 계정 생성",
                        extra={"actor_id": actor_id, "balance": str(account.balance)},
                    )
            except LedgerStoreError as e:
                raise AccountLoadError(actor_id, str(e)) from e
            
            self._accounts[actor_id] = account
            logger.debug(f"Account loaded: {actor_id}")
            return account
    
    async def evict(self, actor_id: ActorId) -> bool:
        """계정 저장 후 캐시에서 제거 (세션 종료)
        
        캐시에 없으면 no-op.
        저장 실패 시 캐시에 남겨둔 채 LedgerStoreError 전파.
        
        Returns:
            실제로 제거했으면 True
        """
        if actor_id not in self._accounts:
            return False
        
        async with self._hold(actor_id):
            account = self._accounts.get(actor_id)
            if account is None:
                return False
            
            # write-through라 이미 저장되어 있지만, 마지막 상태를 그대로 한 번 더 기록
            await self.store.update_account(account)
            del self._accounts[actor_id]
        
        logger.debug(f"Account evicted: {actor_id}")
        return True
    
    def commit(self, account: Account) -> None:
        """변경된 계정 스냅샷을 캐시에 반영
        
        호출자는 해당 행위자의 Lock을 보유하고, 저장소 쓰기를 마친 상태여야 함.
        """
        if account.actor_id not in self._accounts:
            raise KeyError(f"캐시에 없는 계정: {account.actor_id}")
        self._accounts[account.actor_id] = account
