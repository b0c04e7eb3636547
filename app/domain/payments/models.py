"""
Payments Domain Models

Ledger of charges against patients and credits to doctor balances.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum, Index, JSON, Uuid, text
from sqlalchemy.sql import func
from app.infrastructure.database import Base
import uuid
import enum


class TransactionStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class TransactionKind(str, enum.Enum):
    PAYMENT = "PAYMENT"
    BALANCE_CREDIT = "BALANCE_CREDIT"


class PaymentPurpose(str, enum.Enum):
    APPOINTMENT = "APPOINTMENT"
    RESCHEDULE_FEE = "RESCHEDULE_FEE"


_balance_credit_sql = text("kind = 'BALANCE_CREDIT'")


class Transaction(Base):
    """A payment charged to a user or a credit to a doctor's balance"""
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    appointment_id = Column(Uuid, ForeignKey("appointments.id"), index=True)

    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    status = Column(Enum(TransactionStatus), nullable=False)
    kind = Column(Enum(TransactionKind), nullable=False, default=TransactionKind.PAYMENT)
    purpose = Column(String(50))
    provider = Column(String(50))
    reference = Column(String(200))
    meta = Column("metadata", JSON, default=dict)

    created_at = Column(DateTime, default=func.now(), index=True)

    __table_args__ = (
        # One balance credit per appointment
        Index(
            "uq_transactions_appointment_credit",
            "appointment_id",
            unique=True,
            postgresql_where=_balance_credit_sql,
            sqlite_where=_balance_credit_sql,
        ),
    )
