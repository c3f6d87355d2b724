"""
유틸리티 패키지

타임존 처리, 금액 계산 등 공통 유틸리티
"""

from core.utils.money import (
    CENT,
    ZERO,
    apply_rate,
    format_currency,
    quantize_money,
    to_decimal,
)
from core.utils.timezone import (
    ensure_utc,
    from_iso,
    now_utc,
    split_cooldown,
    to_iso,
)

__all__ = [
    "CENT",
    "ZERO",
    "apply_rate",
    "format_currency",
    "quantize_money",
    "to_decimal",
    "ensure_utc",
    "from_iso",
    "now_utc",
    "split_cooldown",
    "to_iso",
]
