"""
타임존 유틸리티

내부 저장: UTC ISO-8601 문자열 원칙 준수를 위한 헬퍼 함수
"""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """현재 UTC 시간 반환 (타임존 명시)
    
    datetime.now(timezone.utc)의 축약형.
    
    Returns:
        현재 UTC 시간 (tzinfo=timezone.utc)
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """naive datetime은 UTC로 간주하고, aware datetime은 UTC로 변환
    
    Args:
        dt: datetime 객체
        
    Returns:
        UTC 타임존의 datetime
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """DB 저장용 ISO-8601 문자열 (UTC)"""
    return ensure_utc(dt).isoformat()


def from_iso(value: str) -> datetime:
    """DB에서 읽은 ISO-8601 문자열을 UTC datetime으로 변환
    
    Example:
        >>> from_iso("2026-02-20T16:00:00+00:00").hour
        16
    """
    return ensure_utc(datetime.fromisoformat(value))


def split_cooldown(seconds: float) -> tuple[int, int]:
    """남은 초를 (시간, 분)으로 분해
    
    Example:
        >>> split_cooldown(3 * 3600 + 25 * 60 + 10)
        (3, 25)
    """
    total = max(int(seconds), 0)
    return total // 3600, (total % 3600) // 60
