"""
Payments Repository Layer
"""

from typing import Optional
import uuid

from app.domain.payments.models import Transaction, TransactionKind, TransactionStatus


class TransactionRepository:
    """Repository for ledger transactions"""

    def __init__(self, db):
        self.db = db

    def create(self, transaction_data: dict) -> Transaction:
        """Record a transaction"""
        transaction = Transaction(**transaction_data)
        self.db.add(transaction)
        self.db.commit()
        self.db.refresh(transaction)
        return transaction

    def get_by_id(self, transaction_id: uuid.UUID) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(Transaction.id == transaction_id).first()

    def latest_successful_payment(self, appointment_id: uuid.UUID) -> Optional[Transaction]:
        """Most recent successful charge tied to an appointment"""
        return self.db.query(Transaction).filter(
            Transaction.appointment_id == appointment_id,
            Transaction.kind == TransactionKind.PAYMENT,
            Transaction.status == TransactionStatus.SUCCESS,
        ).order_by(Transaction.created_at.desc()).first()

    def has_balance_credit(self, appointment_id: uuid.UUID) -> bool:
        return self.db.query(Transaction.id).filter(
            Transaction.appointment_id == appointment_id,
            Transaction.kind == TransactionKind.BALANCE_CREDIT,
        ).first() is not None
