# Payments domain module
from app.domain.payments.models import Transaction, TransactionKind, TransactionStatus

__all__ = [
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
]
