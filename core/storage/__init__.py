"""
스토리지 모듈

SQLite 기반 Ledger 저장소 제공
"""

from core.storage.ledger_store import LedgerStore

__all__ = [
    "LedgerStore",
]
