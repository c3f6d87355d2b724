"""
SettlementScheduler

주기적으로 캐시된 모든 계정에 이자를 지급하는 백그라운드 작업.

전역 Lock 없이 계정 하나씩 처리한다 (LedgerEngine.accrue_interest가
해당 행위자 Lock만 획득). 바쁜 계정은 차례가 올 때까지 기다릴 뿐
캐시 전체를 막지 않는다.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from core.constants import Limits
from core.utils.timezone import now_utc

if TYPE_CHECKING:
    from core.ledger.cache import LedgerCache
    from core.ledger.engine import LedgerEngine

logger = logging.getLogger(__name__)


class SettlementScheduler:
    """이자 정산 스케줄러
    
    Args:
        engine: Ledger 엔진 (accrue_interest 호출)
        cache: 계정 캐시 (대상 행위자 목록)
        tick_seconds: 정산 패스 간격 (초)
        
    사용 예시:
    ```python
    scheduler = SettlementScheduler(engine, cache)
    await scheduler.start()
    ...
    await scheduler.stop()
    ```
    """
    
    def __init__(
        self,
        engine: LedgerEngine,
        cache: LedgerCache,
        tick_seconds: float = Limits.SETTLEMENT_TICK_SECONDS,
    ):
        self.engine = engine
        self.cache = cache
        self.tick_seconds = tick_seconds
        
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._in_pass = False
        self._last_pass_time: datetime | None = None
        
        # 통계
        self._pass_count = 0
        self._failure_count = 0
    
    @property
    def is_running(self) -> bool:
        return self._running
    
    @property
    def last_pass_time(self) -> datetime | None:
        return self._last_pass_time
    
    def get_stats(self) -> dict[str, Any]:
        """스케줄러 통계"""
        return {
            "running": self._running,
            "pass_count": self._pass_count,
            "failure_count": self._failure_count,
            "last_pass_time": self._last_pass_time.isoformat() if self._last_pass_time else None,
        }
    
    def should_run(self, now: datetime | None = None) -> bool:
        """정산 패스 필요 여부
        
        이자 비활성, 다른 패스 진행 중, tick 간격 미경과 시 False.
        """
        if not self.engine.config.enable_interest:
            return False
        
        if self._in_pass:
            return False
        
        if self._last_pass_time is None:
            return True
        
        at = now or now_utc()
        elapsed = (at - self._last_pass_time).total_seconds()
        return elapsed >= self.tick_seconds
    
    async def run_pass(self, now: datetime | None = None) -> dict[str, Any]:
        """정산 패스 1회 실행
        
        패스 시작 시점의 캐시 행위자 목록을 순회하며 같은 기준 시각으로 이자 지급.
        한 계정의 실패는 로그만 남기고 다음 계정 계속 처리.
        
        Returns:
            {
                "processed": int,   # accrue_interest 호출 수
                "credited": int,    # 이자 기준 시각이 갱신된 계정 수
                "failed": int,      # 실패 계정 수
                "pass_time": datetime,
                "duration_ms": float,
            }
        """
        if self._in_pass:
            logger.warning("정산 패스가 이미 실행 중입니다")
            return {"processed": 0, "credited": 0, "failed": 0, "skipped": True}
        
        self._in_pass = True
        pass_time = now or now_utc()
        started = datetime.now(timezone.utc)
        processed = credited = failed = 0
        
        try:
            if not self.engine.config.enable_interest:
                return {"processed": 0, "credited": 0, "failed": 0, "skipped": True}
            
            for actor_id in self.cache.cached_actor_ids():
                try:
                    result = await self.engine.accrue_interest(actor_id, pass_time)
                except Exception as e:
                    failed += 1
                    logger.error(
                        "이자 지급 중 예상치 못한 오류",
                        extra={"actor_id": actor_id, "error": str(e)},
                        exc_info=True,
                    )
                    continue
                
                # 패스 도중 evict된 계정은 applied=False로 돌아옴 (지급 없음)
                processed += 1
                if result.retryable:
                    failed += 1
                elif result.applied:
                    credited += 1
            
            self._last_pass_time = pass_time
            self._pass_count += 1
            self._failure_count += failed
            
            duration_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000
            
            if credited or failed:
                logger.info(
                    "이자 정산 완료",
                    extra={
                        "processed": processed,
                        "credited": credited,
                        "failed": failed,
                        "duration_ms": duration_ms,
                    },
                )
            else:
                logger.debug("이자 정산 완료: 지급 대상 없음")
            
            return {
                "processed": processed,
                "credited": credited,
                "failed": failed,
                "pass_time": pass_time,
                "duration_ms": duration_ms,
            }
        
        finally:
            self._in_pass = False
    
    async def start(self) -> None:
        """백그라운드 정산 시작"""
        if self._running:
            return
        
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "이자 정산 스케줄러 시작",
            extra={"tick_seconds": self.tick_seconds},
        )
    
    async def stop(self) -> None:
        """백그라운드 정산 중지"""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("이자 정산 스케줄러 정지")
    
    async def _loop(self) -> None:
        """정산 루프"""
        while self._running:
            try:
                if self.should_run():
                    await self.run_pass()
            except Exception as e:
                logger.error(f"정산 루프 에러: {e}", exc_info=True)
            
            await asyncio.sleep(self.tick_seconds)
