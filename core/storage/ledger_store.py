"""
LedgerStore - SQLite 기반 영속 저장소

accounts / transactions / loans / shop_items 테이블 읽기·쓰기.
ILedgerStore Protocol 구현.

DB 오류는 모두 LedgerStoreError로 변환하여 상위(Engine)에서
인프라 실패로 처리할 수 있게 한다.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, AsyncIterator

import aiosqlite

from core.ledger.errors import LedgerStoreError
from core.ledger.models import Account, Loan, ShopItem, Transaction
from core.types import ActorId, LoanStatus, TransactionKind
from core.utils.timezone import from_iso, to_iso

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


_ACCOUNT_COLUMNS = """
    actor_id, balance, last_interest_at, last_bonus_at,
    total_earned, total_spent, created_at, updated_at
"""

_LOAN_COLUMNS = """
    id, actor_id, principal, interest_rate, remaining,
    issued_at, due_at, status
"""

_ACCOUNT_UPDATE_SQL = """
    UPDATE accounts SET
        balance = ?, last_interest_at = ?, last_bonus_at = ?,
        total_earned = ?, total_spent = ?, updated_at = ?
    WHERE actor_id = ?
"""

_LOAN_UPDATE_SQL = "UPDATE loans SET remaining = ?, status = ? WHERE id = ?"


def _row_to_account(row: tuple[Any, ...]) -> Account:
    return Account(
        actor_id=int(row[0]),
        balance=Decimal(row[1]),
        last_interest_at=from_iso(row[2]),
        last_bonus_at=from_iso(row[3]),
        total_earned=Decimal(row[4]),
        total_spent=Decimal(row[5]),
        created_at=from_iso(row[6]),
        updated_at=from_iso(row[7]),
    )


def _account_update_params(account: Account) -> tuple[Any, ...]:
    return (
        str(account.balance),
        to_iso(account.last_interest_at),
        to_iso(account.last_bonus_at),
        str(account.total_earned),
        str(account.total_spent),
        to_iso(account.updated_at),
        account.actor_id,
    )


def _row_to_loan(row: tuple[Any, ...]) -> Loan:
    return Loan(
        id=int(row[0]),
        actor_id=int(row[1]),
        principal=Decimal(row[2]),
        interest_rate=Decimal(row[3]),
        remaining=Decimal(row[4]),
        issued_at=from_iso(row[5]),
        due_at=from_iso(row[6]),
        status=LoanStatus(row[7]),
    )


def _row_to_transaction(row: tuple[Any, ...]) -> Transaction:
    return Transaction(
        id=int(row[0]),
        from_actor_id=row[1],
        to_actor_id=row[2],
        amount=Decimal(row[3]),
        kind=TransactionKind(row[4]),
        description=row[5] or "",
        timestamp=from_iso(row[6]),
    )


def _row_to_shop_item(row: tuple[Any, ...]) -> ShopItem:
    return ShopItem(
        id=int(row[0]),
        item_id=int(row[1]),
        item_name=row[2],
        buy_price=Decimal(row[3]) if row[3] is not None else None,
        sell_price=Decimal(row[4]) if row[4] is not None else None,
        stock=int(row[5]),
        category=row[6],
    )


def _price(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


@asynccontextmanager
async def _store_errors(operation: str) -> AsyncIterator[None]:
    """DB 오류 → LedgerStoreError 변환"""
    try:
        yield
    except LedgerStoreError:
        raise
    except (aiosqlite.Error, RuntimeError, OSError) as e:
        logger.error(
            f"Ledger 저장소 오류: {operation}",
            extra={"operation": operation, "error": str(e)},
        )
        raise LedgerStoreError(f"{operation} 실패: {e}") from e


class LedgerStore:
    """SQLite Ledger 저장소
    
    Args:
        db: SQLite 어댑터 (init_schema 완료 상태)
        
    사용 예시:
    ```python
    async with SQLiteAdapter(db_path) as db:
        await init_schema(db)
        store = LedgerStore(db)
        account = await store.create_account(1, Decimal("1000"), now_utc())
    ```
    """
    
    def __init__(self, db: SQLiteAdapter):
        self.db = db
    
    # -------------------------------------------------------------------------
    # 계정
    # -------------------------------------------------------------------------
    
    async def get_account(self, actor_id: ActorId) -> Account | None:
        async with _store_errors("get_account"):
            row = await self.db.fetchone(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE actor_id = ?",
                (actor_id,),
            )
        return _row_to_account(row) if row else None
    
    async def create_account(
        self,
        actor_id: ActorId,
        starting_balance: Decimal,
        now: datetime,
    ) -> Account:
        """계정 생성
        
        INSERT OR IGNORE 후 재조회 - 이미 있으면 기존 계정 반환.
        """
        account = Account.open(actor_id, starting_balance, now)
        async with _store_errors("create_account"):
            async with self.db.transaction() as conn:
                await conn.execute(
                    f"""
                    INSERT OR IGNORE INTO accounts ({_ACCOUNT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        account.actor_id,
                        str(account.balance),
                        to_iso(account.last_interest_at),
                        to_iso(account.last_bonus_at),
                        str(account.total_earned),
                        str(account.total_spent),
                        to_iso(account.created_at),
                        to_iso(account.updated_at),
                    ),
                )
        
        stored = await self.get_account(actor_id)
        if stored is None:
            raise LedgerStoreError(f"create_account 후 계정을 찾을 수 없습니다: {actor_id}")
        
        logger.debug(f"Account created: {actor_id}")
        return stored
    
    async def update_account(self, account: Account) -> None:
        await self.update_accounts(account)
    
    async def update_accounts(self, *accounts: Account) -> None:
        """여러 계정을 단일 트랜잭션으로 저장
        
        한 계정이라도 행이 없으면 전체 롤백.
        """
        async with _store_errors("update_accounts"):
            async with self.db.transaction() as conn:
                for account in accounts:
                    await self._update_account_row(conn, account)
    
    async def get_top_accounts(self, limit: int) -> list[Account]:
        async with _store_errors("get_top_accounts"):
            rows = await self.db.fetchall(
                f"""
                SELECT {_ACCOUNT_COLUMNS} FROM accounts
                ORDER BY CAST(balance AS REAL) DESC, actor_id ASC
                LIMIT ?
                """,
                (limit,),
            )
        return [_row_to_account(row) for row in rows]
    
    async def _update_account_row(
        self,
        conn: aiosqlite.Connection,
        account: Account,
    ) -> None:
        cursor = await conn.execute(_ACCOUNT_UPDATE_SQL, _account_update_params(account))
        if cursor.rowcount == 0:
            raise LedgerStoreError(f"존재하지 않는 계정: {account.actor_id}")
    
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
        async with _store_errors("append_transaction"):
            async with self.db.transaction() as conn:
                cursor = await conn.execute(
                    """
                    INSERT INTO transactions (
                        from_actor_id, to_actor_id, amount, kind, description, ts
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        from_actor_id,
                        to_actor_id,
                        str(amount),
                        kind.value,
                        description,
                        to_iso(timestamp),
                    ),
                )
                tx_id = cursor.lastrowid
        
        return Transaction(
            id=int(tx_id or 0),
            from_actor_id=from_actor_id,
            to_actor_id=to_actor_id,
            amount=amount,
            kind=kind,
            description=description,
            timestamp=timestamp,
        )
    
    async def get_transaction_history(
        self,
        actor_id: ActorId,
        limit: int,
    ) -> list[Transaction]:
        async with _store_errors("get_transaction_history"):
            rows = await self.db.fetchall(
                """
                SELECT id, from_actor_id, to_actor_id, amount, kind, description, ts
                FROM transactions
                WHERE from_actor_id = ? OR to_actor_id = ?
                ORDER BY ts DESC, id DESC
                LIMIT ?
                """,
                (actor_id, actor_id, limit),
            )
        return [_row_to_transaction(row) for row in rows]
    
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
        async with _store_errors("create_loan"):
            async with self.db.transaction() as conn:
                cursor = await conn.execute(
                    f"""
                    INSERT INTO loans ({_LOAN_COLUMNS})
                    VALUES (NULL, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        actor_id,
                        str(principal),
                        str(interest_rate),
                        str(remaining),
                        to_iso(issued_at),
                        to_iso(due_at),
                        LoanStatus.ACTIVE.value,
                    ),
                )
                loan_id = cursor.lastrowid
        
        logger.debug(f"Loan created: {loan_id} (actor {actor_id})")
        return Loan(
            id=int(loan_id or 0),
            actor_id=actor_id,
            principal=principal,
            interest_rate=interest_rate,
            remaining=remaining,
            issued_at=issued_at,
            due_at=due_at,
            status=LoanStatus.ACTIVE,
        )
    
    async def get_active_loans(self, actor_id: ActorId) -> list[Loan]:
        async with _store_errors("get_active_loans"):
            rows = await self.db.fetchall(
                f"""
                SELECT {_LOAN_COLUMNS} FROM loans
                WHERE actor_id = ? AND status = ?
                ORDER BY issued_at ASC, id ASC
                """,
                (actor_id, LoanStatus.ACTIVE.value),
            )
        return [_row_to_loan(row) for row in rows]
    
    async def update_loan(self, loan: Loan) -> None:
        async with _store_errors("update_loan"):
            async with self.db.transaction() as conn:
                await self._update_loan_row(conn, loan)
    
    async def update_account_with_loan(self, account: Account, loan: Loan) -> None:
        """계정 + 대출 동시 저장 (상환)"""
        async with _store_errors("update_account_with_loan"):
            async with self.db.transaction() as conn:
                await self._update_account_row(conn, account)
                await self._update_loan_row(conn, loan)
    
    async def delete_loan(self, loan_id: int) -> None:
        async with _store_errors("delete_loan"):
            async with self.db.transaction() as conn:
                await conn.execute("DELETE FROM loans WHERE id = ?", (loan_id,))
        logger.warning(f"Loan deleted: {loan_id}")
    
    async def _update_loan_row(self, conn: aiosqlite.Connection, loan: Loan) -> None:
        cursor = await conn.execute(
            _LOAN_UPDATE_SQL,
            (str(loan.remaining), loan.status.value, loan.id),
        )
        if cursor.rowcount == 0:
            raise LedgerStoreError(f"존재하지 않는 대출: {loan.id}")
    
    # -------------------------------------------------------------------------
    # 상점 카탈로그
    # -------------------------------------------------------------------------
    
    async def get_shop_items(self, category: str | None = None) -> list[ShopItem]:
        sql = """
            SELECT id, item_id, item_name, buy_price, sell_price, stock, category
            FROM shop_items
        """
        params: tuple[Any, ...] | None = None
        if category is not None:
            sql += " WHERE category = ?"
            params = (category,)
        sql += " ORDER BY item_id"
        
        async with _store_errors("get_shop_items"):
            rows = await self.db.fetchall(sql, params)
        return [_row_to_shop_item(row) for row in rows]
    
    async def upsert_shop_item(self, item: ShopItem) -> ShopItem:
        async with _store_errors("upsert_shop_item"):
            async with self.db.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO shop_items (
                        item_id, item_name, buy_price, sell_price, stock, category
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(item_id) DO UPDATE SET
                        item_name = excluded.item_name,
                        buy_price = excluded.buy_price,
                        sell_price = excluded.sell_price,
                        stock = excluded.stock,
                        category = excluded.category
                    """,
                    (
                        item.item_id,
                        item.item_name,
                        _price(item.buy_price),
                        _price(item.sell_price),
                        item.stock,
                        item.category,
                    ),
                )
            row = await self.db.fetchone(
                """
                SELECT id, item_id, item_name, buy_price, sell_price, stock, category
                FROM shop_items WHERE item_id = ?
                """,
                (item.item_id,),
            )
        
        if row is None:
            raise LedgerStoreError(f"upsert_shop_item 후 항목을 찾을 수 없습니다: {item.item_id}")
        return _row_to_shop_item(row)
