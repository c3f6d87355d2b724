"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
하나의 연결을 여러 코루틴이 공유하므로 쓰기 트랜잭션은 연결 단위 Lock으로 직렬화.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)
    
    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부
        
    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)
    
    # 디렉토리가 없으면 생성
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    
    if readonly:
        conn = await aiosqlite.connect(f"file:{db_path_str}?mode=ro", uri=True)
    else:
        conn = await aiosqlite.connect(db_path_str)
    
    # WAL 모드 설정
    await conn.execute("PRAGMA journal_mode=WAL")
    
    # 동시 접근 설정
    await conn.execute("PRAGMA busy_timeout=30000")  # 30초 대기
    
    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )
    
    return conn


class SQLiteAdapter:
    """SQLite 어댑터
    
    WAL 모드로 SQLite 연결 관리.
    트랜잭션 컨텍스트 매니저 제공.
    
    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부
    
    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()
    
    async with adapter.transaction() as conn:
        await conn.execute("INSERT INTO ...")
    
    await adapter.close()
    ```
    """
    
    def __init__(self, db_path: Path | str, readonly: bool = False):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
    
    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None
    
    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return
        
        self._conn = await create_connection(self.db_path, self.readonly)
    
    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")
    
    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        if self._conn is None:
            raise RuntimeError("Not connected to database")
        
        if parameters:
            return await self._conn.execute(sql, parameters)
        return await self._conn.execute(sql)
    
    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회
        
        열린 쓰기 트랜잭션이 끝날 때까지 대기 (커밋 전 행 노출 방지).
        """
        async with self._write_lock:
            cursor = await self.execute(sql, parameters)
            return await cursor.fetchone()
    
    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[tuple[Any, ...]]:
        """전체 행 조회 (fetchone과 같이 쓰기 트랜잭션 종료 후 실행)"""
        async with self._write_lock:
            cursor = await self.execute(sql, parameters)
            return list(await cursor.fetchall())
    
    async def commit(self) -> None:
        """커밋"""
        if self._conn is not None:
            await self._conn.commit()
    
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """쓰기 트랜잭션 컨텍스트 매니저
        
        성공 시 자동 커밋, 예외 시 자동 롤백.
        동시에 하나의 트랜잭션만 열림 (다른 코루틴의 커밋이 섞이지 않도록).
        
        사용 예시:
        ```python
        async with adapter.transaction() as conn:
            await conn.execute("UPDATE ...")
            await conn.execute("UPDATE ...")
        ```
        """
        if self._conn is None:
            raise RuntimeError("Not connected to database")
        
        async with self._write_lock:
            try:
                yield self._conn
                await self._conn.commit()
            except BaseException:
                await self._conn.rollback()
                raise
    
    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None
    
    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------
    
    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self
    
    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """Ledger 스키마 초기화 (테이블 생성)
    
    금액은 TEXT(Decimal 문자열), 시각은 TEXT(ISO-8601 UTC)로 저장.
    
    Args:
        adapter: 연결된 SQLiteAdapter
    """
    async with adapter.transaction() as conn:
        # accounts
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                actor_id          INTEGER PRIMARY KEY,
                balance           TEXT NOT NULL DEFAULT '0',
                last_interest_at  TEXT NOT NULL,
                last_bonus_at     TEXT NOT NULL,
                total_earned      TEXT NOT NULL DEFAULT '0',
                total_spent       TEXT NOT NULL DEFAULT '0',
                created_at        TEXT NOT NULL,
                updated_at        TEXT NOT NULL
            )
        """)
        
        # transactions (append-only)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                from_actor_id     INTEGER,
                to_actor_id       INTEGER,
                amount            TEXT NOT NULL,
                kind              TEXT NOT NULL,
                description       TEXT,
                ts                TEXT NOT NULL
            )
        """)
        
        # loans
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS loans (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                actor_id          INTEGER NOT NULL,
                principal         TEXT NOT NULL,
                interest_rate     TEXT NOT NULL,
                remaining         TEXT NOT NULL,
                issued_at         TEXT NOT NULL,
                due_at            TEXT NOT NULL,
                status            TEXT NOT NULL
            )
        """)
        
        # shop_items (상점 카탈로그)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS shop_items (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                item_id           INTEGER NOT NULL UNIQUE,
                item_name         TEXT NOT NULL,
                buy_price         TEXT,
                sell_price        TEXT,
                stock             INTEGER NOT NULL DEFAULT -1,
                category          TEXT
            )
        """)
        
        # 인덱스 생성
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_transactions_from 
            ON transactions(from_actor_id, ts)
        """)
        
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_transactions_to 
            ON transactions(to_actor_id, ts)
        """)
        
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_loans_actor_status 
            ON loans(actor_id, status)
        """)
    
    logger.info("스키마 초기화 완료")
