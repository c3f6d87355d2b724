"""
금액 유틸리티

모든 통화 금액은 Decimal 사용 (float 금지).
파생 금액(세금, 이자, 대출 총액)은 센트 단위로 반올림.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value: Decimal | int | str | float) -> Decimal:
    """입력 값을 Decimal로 변환
    
    float는 str을 거쳐 변환하여 이진 부동소수점 오차 유입 방지.
    
    Raises:
        ValueError: 숫자로 해석할 수 없는 경우
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError) as e:
            raise ValueError(f"금액으로 변환할 수 없습니다: {value!r}") from e

    if not result.is_finite():
        raise ValueError(f"유한한 금액이 아닙니다: {value!r}")
    return result


def quantize_money(amount: Decimal) -> Decimal:
    """센트 단위 반올림 (ROUND_HALF_UP)"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def apply_rate(amount: Decimal, rate: Decimal) -> Decimal:
    """금액 × 비율 (센트 단위 반올림)
    
    Example:
        >>> apply_rate(Decimal("100"), Decimal("0.02"))
        Decimal('2.00')
    """
    return quantize_money(amount * rate)


def format_currency(amount: Decimal, symbol: str = "$") -> str:
    """통화 표시 문자열 (천 단위 구분, 소수 2자리)
    
    Example:
        >>> format_currency(Decimal("1234.5"))
        '$1,234.50'
    """
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(quantize_money(amount)):,.2f}"
