"""
Doctor balance crediting.

A completed, paid appointment credits the doctor once with the most recent
successful payment for it, minus the platform fee. The BALANCE_CREDIT ledger
row is both the record and the idempotency key.
"""

from typing import Optional
import logging

from sqlalchemy.exc import IntegrityError

from app.core.clock import Clock, naive_utc, utc_now
from app.core.config import settings
from app.domain.accounts.repository import UserRepository
from app.domain.payments.models import (
    PaymentPurpose, Transaction, TransactionKind, TransactionStatus
)
from app.domain.payments.repository import TransactionRepository

logger = logging.getLogger(__name__)


class BalanceService:
    def __init__(self, db, clock: Clock = utc_now, platform_fee_percent: Optional[float] = None):
        self.db = db
        self.clock = clock
        self.platform_fee_percent = (
            settings.PLATFORM_FEE_PERCENT if platform_fee_percent is None else platform_fee_percent
        )
        self.transactions = TransactionRepository(db)
        self.user_repo = UserRepository(db)

    def credit_for_appointment(self, appointment) -> Optional[Transaction]:
        """Credit the doctor for an appointment; no-op if already credited"""
        if self.transactions.has_balance_credit(appointment.id):
            logger.info(f"Appointment {appointment.id} already credited, skipping")
            return None

        payment = self.transactions.latest_successful_payment(appointment.id)
        if payment is None:
            logger.warning(f"No successful payment found for appointment {appointment.id}")
            return None

        profile = self.user_repo.get_doctor_profile(appointment.doctor_id)
        if profile is None:
            logger.warning(f"Doctor profile {appointment.doctor_id} missing, cannot credit")
            return None

        gross = float(payment.amount)
        platform_fee = round(gross * self.platform_fee_percent / 100, 2)
        net = round(gross - platform_fee, 2)

        credit = Transaction(
            user_id=appointment.doctor_id,
            appointment_id=appointment.id,
            amount=net,
            currency=payment.currency,
            status=TransactionStatus.SUCCESS,
            kind=TransactionKind.BALANCE_CREDIT,
            purpose=PaymentPurpose.APPOINTMENT.value,
            provider=payment.provider,
            reference=str(payment.id),
            meta={"gross": gross, "platform_fee": platform_fee, "source_transaction_id": str(payment.id)},
            created_at=naive_utc(self.clock()),
        )
        profile.balance = round(float(profile.balance or 0) + net, 2)
        self.db.add(credit)
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent completion wrote the credit first
            self.db.rollback()
            logger.info(f"Appointment {appointment.id} credited concurrently, skipping")
            return None

        logger.info(f"Credited {net} {payment.currency} to doctor {appointment.doctor_id} for appointment {appointment.id}")
        return credit
