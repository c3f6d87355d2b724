"""
정산 모듈

캐시된 계정에 대한 주기적 이자 지급.
"""

from server.settlement.scheduler import SettlementScheduler

__all__ = [
    "SettlementScheduler",
]
