"""
Ledger 코어

캐시 기반 계정 원장: 캐시(LedgerCache), 변경 연산(LedgerEngine), 리포트(LedgerReporter).

사용 예시:
```python
from core.ledger import LedgerCache, LedgerEngine, LedgerReporter

cache = LedgerCache(store, lambda: config.starting_balance)
engine = LedgerEngine(store, cache, config)
reporter = LedgerReporter(store, cache)

await cache.load(1)
await cache.load(2)
result = await engine.transfer(1, 2, Decimal("100"))

top = await reporter.get_top_accounts(10)
```
"""

from core.ledger.cache import LedgerCache
from core.ledger.engine import LedgerEngine
from core.ledger.errors import AccountLoadError, LedgerStoreError
from core.ledger.models import Account, Loan, ShopItem, Transaction
from core.ledger.reporting import LedgerReporter
from core.ledger.results import (
    AccountStats,
    BonusResult,
    InterestResult,
    LoanResult,
    OperationResult,
    TransferResult,
)

__all__ = [
    # 핵심 클래스
    "LedgerCache",
    "LedgerEngine",
    "LedgerReporter",
    # 모델
    "Account",
    "Transaction",
    "Loan",
    "ShopItem",
    # 결과
    "OperationResult",
    "TransferResult",
    "BonusResult",
    "InterestResult",
    "LoanResult",
    "AccountStats",
    # 예외
    "LedgerStoreError",
    "AccountLoadError",
]
