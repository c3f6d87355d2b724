"""
Ledger Service Bootstrap

설정 로드, 의존성 주입, 생명주기 관리.

구성 순서:
    EconomyConfig → SQLiteAdapter → LedgerStore → LedgerCache
    → LedgerEngine → LedgerReporter → SettlementScheduler
"""

import asyncio
import logging
from pathlib import Path

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from core.config.loader import EconomyConfig, load_economy_config
from core.constants import Paths
from core.ledger.cache import LedgerCache
from core.ledger.engine import LedgerEngine
from core.ledger.errors import AccountLoadError, LedgerStoreError
from core.ledger.reporting import LedgerReporter
from core.storage.ledger_store import LedgerStore
from core.types import ActorId
from server.settlement.scheduler import SettlementScheduler

logger = logging.getLogger(__name__)


class LedgerService:
    """Ledger 서비스
    
    세션 훅(on_session_start/on_session_end)으로 계정을 캐시에 올리고 내리며,
    이자 활성 시 정산 스케줄러를 함께 운영한다.
    
    Args:
        config: 경제 설정
        config_path: 설정 파일 경로 (reload_config에서 사용)
        db: SQLite 어댑터 (None이면 config.database_path로 생성)
        
    사용 예시:
    ```python
    service = LedgerService(load_economy_config())
    await service.start()
    
    message = await service.on_session_start(42)
    result = await service.engine.credit(42, "100")
    await service.on_session_end(42)
    
    await service.stop()
    ```
    """
    
    def __init__(
        self,
        config: EconomyConfig,
        config_path: Path | None = None,
        db: SQLiteAdapter | None = None,
    ):
        self.config = config
        self.config_path = config_path or Paths.ECONOMY_CONFIG_FILE
        self.db = db or SQLiteAdapter(config.database_path)
        
        self.store = LedgerStore(self.db)
        self.cache = LedgerCache(self.store, lambda: self.config.starting_balance)
        self.engine = LedgerEngine(self.store, self.cache, config)
        self.reporter = LedgerReporter(self.store, self.cache)
        self.scheduler = SettlementScheduler(self.engine, self.cache)
        
        self._started = False
    
    @property
    def is_started(self) -> bool:
        return self._started
    
    async def start(self) -> None:
        """서비스 시작 (DB 연결, 스키마 생성, 정산 스케줄러 시작)"""
        if self._started:
            return
        
        await self.db.connect()
        await init_schema(self.db)
        
        if self.config.enable_interest:
            await self.scheduler.start()
        
        self._started = True
        logger.info(
            "Ledger 서비스 시작",
            extra={
                "db_path": str(self.db.db_path),
                "enable_interest": self.config.enable_interest,
            },
        )
    
    async def stop(self) -> None:
        """서비스 종료
        
        스케줄러를 먼저 멈춘 뒤 캐시된 모든 계정을 저장하고 DB 연결을 닫는다.
        저장 실패 계정은 로그만 남기고 나머지 계속 처리.
        """
        if not self._started:
            return
        
        logger.info("Ledger 서비스 종료 중...")
        
        await self.scheduler.stop()
        
        flushed = 0
        for actor_id in self.cache.cached_actor_ids():
            try:
                if await self.cache.evict(actor_id):
                    flushed += 1
            except LedgerStoreError as e:
                logger.error(
                    "종료 중 계정 저장 실패",
                    extra={"actor_id": actor_id, "error": str(e)},
                    exc_info=True,
                )
        
        await self.db.close()
        self._started = False
        logger.info("Ledger 서비스 종료 완료", extra={"flushed": flushed})
    
    # -------------------------------------------------------------------------
    # 세션 훅
    # -------------------------------------------------------------------------
    
    async def on_session_start(self, actor_id: ActorId) -> str | None:
        """세션 시작: 계정 로드 후 환영 메시지 반환
        
        Returns:
            환영 메시지 또는 None (로드 실패)
        """
        try:
            account = await self.cache.load(actor_id)
        except AccountLoadError as e:
            logger.error(
                "세션 시작 시 계정 로드 실패",
                extra={"actor_id": actor_id, "error": str(e)},
            )
            return None
        
        return f"Welcome! Your balance: {self.engine.format_currency(account.balance)}"
    
    async def on_session_end(self, actor_id: ActorId) -> bool:
        """세션 종료: 계정 저장 후 캐시에서 제거
        
        Returns:
            제거 성공 여부 (저장 실패 시 False, 계정은 캐시에 남음)
        """
        try:
            return await self.cache.evict(actor_id)
        except LedgerStoreError as e:
            logger.error(
                "세션 종료 시 계정 저장 실패",
                extra={"actor_id": actor_id, "error": str(e)},
                exc_info=True,
            )
            return False
    
    # -------------------------------------------------------------------------
    # 설정
    # -------------------------------------------------------------------------
    
    async def reload_config(self) -> EconomyConfig:
        """설정 파일 재로드
        
        엔진 설정 스냅샷을 교체하고 enable_interest에 맞춰 스케줄러를 시작/정지.
        database_path 변경은 재시작 후 반영.
        """
        config = load_economy_config(self.config_path)
        
        if config.database_path != self.config.database_path:
            logger.warning(
                "database_path 변경은 재시작 후 반영됩니다",
                extra={"current": str(self.config.database_path), "new": str(config.database_path)},
            )
        
        self.config = config
        self.engine.update_config(config)
        
        if self._started:
            if config.enable_interest and not self.scheduler.is_running:
                await self.scheduler.start()
            elif not config.enable_interest and self.scheduler.is_running:
                await self.scheduler.stop()
        
        logger.info("설정 재로드 완료", extra={"enable_interest": config.enable_interest})
        return config


async def main(config_path: Path | None = None) -> None:
    """Ledger 서비스 메인 함수"""
    logger.info("=" * 60)
    logger.info("EconLedger 서비스 시작")
    logger.info("=" * 60)
    
    # 1. 설정 로드 (실패 시 기본 설정)
    config = load_economy_config(config_path)
    
    logger.info(f"Currency: {config.currency_name} ({config.currency_symbol})")
    logger.info(f"DB: {config.database_path}")
    
    # 2. DB 연결 및 서비스 생성
    async with SQLiteAdapter(config.database_path) as db:
        service = LedgerService(config, config_path=config_path, db=db)
        
        # 3. 종료 이벤트 설정
        shutdown_event = asyncio.Event()
        
        logger.info("Ledger 서비스 실행 (종료: Ctrl+C)")
        
        try:
            # 4. 서비스 시작
            await service.start()
            
            # 5. 종료 신호 대기
            await shutdown_event.wait()
            
        except asyncio.CancelledError:
            logger.info("서비스 취소됨")
        except KeyboardInterrupt:
            logger.info("Ctrl+C 감지")
        finally:
            # 6. 서비스 종료 (캐시 계정 저장)
            await service.stop()
    
    logger.info("=" * 60)
    logger.info("EconLedger 서비스 정상 종료")
    logger.info("=" * 60)
