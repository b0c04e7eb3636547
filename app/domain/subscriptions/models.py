"""
Subscriptions Domain Models
"""

from sqlalchemy import Column, String, DateTime, Integer, Numeric, Enum, Uuid
from sqlalchemy.sql import func
from app.infrastructure.database import Base
import uuid
import enum


class PlanStatus(str, enum.Enum):
    """Catalog status of a plan"""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class SubscriptionPlan(Base):
    """Plan a doctor subscribes to; limits come from the plan policy table"""
    __tablename__ = "subscription_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False, index=True)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    duration_in_days = Column(Integer, nullable=False, default=30)
    status = Column(Enum(PlanStatus), default=PlanStatus.ACTIVE)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
