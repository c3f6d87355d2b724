"""
Ledger 서비스

LedgerService 조립 및 정산 스케줄러.
"""
