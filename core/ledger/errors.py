"""
Ledger 예외

인프라 장애만 예외로 표현. 비즈니스 실패는 results 모듈의 결과 객체 사용.
"""


class LedgerStoreError(Exception):
    """영속 저장소 장애 (연결 끊김, 쓰기 실패, 타임아웃 등)"""

    pass


class AccountLoadError(Exception):
    """계정 로드 실패 (저장소 조회/생성 불가)"""

    def __init__(self, actor_id: int, reason: str):
        self.actor_id = actor_id
        self.reason = reason
        super().__init__(f"계정 로드 실패 (actor_id={actor_id}): {reason}")
