from dataclasses import dataclass
from typing import Optional
import logging
import uuid

from app.core.clock import Clock, naive_utc, utc_now
from app.core.config import settings
from app.domain.payments.models import TransactionKind, TransactionStatus
from app.domain.payments.repository import TransactionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    transaction_id: Optional[uuid.UUID]
    status: TransactionStatus

    @property
    def succeeded(self) -> bool:
        return self.status == TransactionStatus.SUCCESS


class PaymentGateway:
    """Charges a user; only success or failure is reported back"""

    def charge(
        self,
        user_id: uuid.UUID,
        amount: float,
        purpose: str,
        reference: str,
        appointment_id: Optional[uuid.UUID] = None,
        method: Optional[str] = None,
    ) -> ChargeResult:
        raise NotImplementedError


class LedgerPaymentGateway(PaymentGateway):
    """Settles charges directly against the internal ledger.

    Used where no card processor is wired in: every charge is recorded as a
    successful PAYMENT transaction.
    """

    provider = "LEDGER"

    def __init__(self, db, clock: Clock = utc_now):
        self.transactions = TransactionRepository(db)
        self.clock = clock

    def charge(
        self,
        user_id: uuid.UUID,
        amount: float,
        purpose: str,
        reference: str,
        appointment_id: Optional[uuid.UUID] = None,
        method: Optional[str] = None,
    ) -> ChargeResult:
        transaction = self.transactions.create({
            "user_id": user_id,
            "appointment_id": appointment_id,
            "amount": round(float(amount), 2),
            "currency": settings.DEFAULT_CURRENCY,
            "status": TransactionStatus.SUCCESS,
            "kind": TransactionKind.PAYMENT,
            "purpose": purpose,
            "provider": method or self.provider,
            "reference": reference,
            "meta": {"reference": reference},
            "created_at": naive_utc(self.clock()),
        })
        logger.info(f"Charged {transaction.amount} {transaction.currency} to user {user_id} for {purpose}")
        return ChargeResult(transaction_id=transaction.id, status=transaction.status)
