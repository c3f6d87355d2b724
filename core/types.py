"""
타입 정의 모듈

Enum 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from enum import Enum


# 행위자(플레이어) 식별자
ActorId = int


class TransactionKind(str, Enum):
    """거래 기록 유형

    Transaction.kind 값. DB에는 value 문자열로 저장.
    """

    INTEREST = "Interest"  # 자동 이자 지급
    ADMIN_SET = "AdminSet"  # 관리자 잔액 설정 (signed delta)
    ADD = "Add"  # 시스템 지급
    REMOVE = "Remove"  # 시스템 차감
    TRANSFER = "Transfer"  # 행위자 간 송금
    DAILY_BONUS = "DailyBonus"  # 일일 보너스
    LOAN_DISBURSEMENT = "LoanDisbursement"  # 대출 실행
    LOAN_REPAYMENT = "LoanRepayment"  # 대출 상환


class LoanStatus(str, Enum):
    """대출 상태

    Active → Paid 단방향 전이만 허용
    """

    ACTIVE = "Active"
    PAID = "Paid"
