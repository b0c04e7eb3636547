import pytest
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Generator, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.clock import naive_utc
from app.core.permissions import Identity, Role
from app.core.security import create_access_token
from app.infrastructure.database import Base, get_db, import_models
from app.domain.accounts.models import DoctorProfile, User
from app.domain.appointments.models import (
    Appointment, AppointmentStatus, BookingType, PaymentStatus
)
from app.domain.subscriptions.models import SubscriptionPlan


# Test database: in-memory SQLite shared by every connection
TEST_DATABASE_URL = "sqlite://"

FIXED_NOW = datetime(2024, 6, 10, 8, 0, tzinfo=timezone.utc)


class FixedClock:
    """Injectable clock frozen at a given instant"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="function")
def engine():
    import_models()
    test_engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    TestSessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# Factories

@pytest.fixture(scope="function")
def make_user(db_session: Session):
    def _make_user(role: Role, full_name: Optional[str] = None) -> User:
        user_id = uuid.uuid4()
        user = User(
            id=user_id,
            full_name=full_name or f"{role.value.title()} {user_id.hex[:6]}",
            email=f"{user_id.hex}@example.com",
            role=role,
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture(scope="function")
def make_plan(db_session: Session):
    def _make_plan(name: str = "BASIC", duration_in_days: int = 30, price: float = 29) -> SubscriptionPlan:
        plan = SubscriptionPlan(name=name, duration_in_days=duration_in_days, price=price)
        db_session.add(plan)
        db_session.commit()
        return plan

    return _make_plan


@pytest.fixture(scope="function")
def make_doctor(db_session: Session, make_user, make_plan):
    def _make_doctor(
        plan_name: Optional[str] = "BASIC",
        expires_at: Optional[datetime] = None,
        consultation_fee: float = 40,
        slot_duration_minutes: Optional[int] = 30,
        is_approved: bool = True,
        profile_completed: bool = True,
    ) -> User:
        doctor = make_user(Role.DOCTOR, full_name="Dr. House")
        plan = make_plan(plan_name) if plan_name else None
        profile = DoctorProfile(
            user_id=doctor.id,
            is_approved=is_approved,
            profile_completed=profile_completed,
            slot_duration_minutes=slot_duration_minutes,
            consultation_fee=consultation_fee,
            balance=0,
            subscription_plan_id=plan.id if plan else None,
            subscription_expires_at=naive_utc(expires_at or FIXED_NOW + timedelta(days=20)),
        )
        db_session.add(profile)
        db_session.commit()
        return doctor

    return _make_doctor


@pytest.fixture(scope="function")
def doctor(make_doctor) -> User:
    return make_doctor()


@pytest.fixture(scope="function")
def patient(make_user) -> User:
    return make_user(Role.PATIENT, full_name="Jane Patient")


@pytest.fixture(scope="function")
def admin(make_user) -> User:
    return make_user(Role.ADMIN, full_name="Site Admin")


@pytest.fixture(scope="function")
def make_appointment(db_session: Session):
    """Insert an appointment directly, bypassing the lifecycle rules"""
    def _make_appointment(doctor: User, patient: User, **overrides) -> Appointment:
        data = {
            "appointment_number": f"APT-{uuid.uuid4().hex[:10]}",
            "doctor_id": doctor.id,
            "patient_id": patient.id,
            "appointment_date": date(2024, 6, 10),
            "appointment_time": "17:45",
            "appointment_end_time": "18:15",
            "appointment_duration": 30,
            "timezone_offset": 300,
            "booking_type": BookingType.ONLINE,
            "status": AppointmentStatus.CONFIRMED,
            "payment_status": PaymentStatus.UNPAID,
            "created_at": naive_utc(FIXED_NOW - timedelta(days=1)),
        }
        data.update(overrides)
        appointment = Appointment(**data)
        db_session.add(appointment)
        db_session.commit()
        return appointment

    return _make_appointment


# Identities and tokens

@pytest.fixture
def identity_of():
    def _identity_of(user: User) -> Identity:
        return Identity(user_id=user.id, role=user.role)

    return _identity_of


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        token = create_access_token(
            subject=str(user.id),
            data={"user_id": str(user.id), "role": user.role.value},
        )
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "appointments: mark test as appointment lifecycle related"
    )
    config.addinivalue_line(
        "markers", "reschedules: mark test as reschedule workflow related"
    )
    config.addinivalue_line(
        "markers", "subscriptions: mark test as subscription quota related"
    )
