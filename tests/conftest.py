"""
pytest 공통 fixture 정의

Ledger 코어 테스트용 fixture (Mock 저장소, 고정 시계, 캐시, 엔진).
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from adapters.mock.ledger_store import MockLedgerStore
from core.config.loader import EconomyConfig
from core.ledger.cache import LedgerCache
from core.ledger.engine import LedgerEngine
from core.ledger.reporting import LedgerReporter


class FakeClock:
    """수동으로 진행시키는 테스트용 시계"""
    
    def __init__(self, start: datetime):
        self.current = start
    
    def __call__(self) -> datetime:
        return self.current
    
    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> FakeClock:
    """2026-01-01 00:00 UTC에서 시작하는 시계"""
    return FakeClock(datetime(2026, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def economy_config() -> EconomyConfig:
    """기본 경제 설정"""
    return EconomyConfig()


@pytest.fixture
def mock_store() -> MockLedgerStore:
    """Mock Ledger 저장소"""
    return MockLedgerStore()


@pytest.fixture
def ledger_cache(
    mock_store: MockLedgerStore,
    economy_config: EconomyConfig,
    clock: FakeClock,
) -> LedgerCache:
    """Mock 저장소 기반 캐시"""
    return LedgerCache(mock_store, lambda: economy_config.starting_balance, clock=clock)


@pytest.fixture
def ledger_engine(
    mock_store: MockLedgerStore,
    ledger_cache: LedgerCache,
    economy_config: EconomyConfig,
    clock: FakeClock,
) -> LedgerEngine:
    """Mock 저장소 기반 엔진"""
    return LedgerEngine(mock_store, ledger_cache, economy_config, clock=clock)


@pytest.fixture
def ledger_reporter(
    mock_store: MockLedgerStore,
    ledger_cache: LedgerCache,
    clock: FakeClock,
) -> LedgerReporter:
    """Mock 저장소 기반 리포터"""
    return LedgerReporter(mock_store, ledger_cache, clock=clock)
