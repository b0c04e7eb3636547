from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings

# Check if using SQLite
is_sqlite = "sqlite" in settings.DATABASE_URL.lower()

if is_sqlite:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        echo=settings.DEBUG,
        connect_args={"check_same_thread": False}
    )
else:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.DEBUG
    )

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False
)

# Base model
Base = declarative_base()


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def import_models():
    """Register every mapped class on Base.metadata"""
    from app.domain.accounts import models as accounts_models  # noqa: F401
    from app.domain.appointments import models as appointments_models  # noqa: F401
    from app.domain.reschedules import models as reschedules_models  # noqa: F401
    from app.domain.payments import models as payments_models  # noqa: F401
    from app.domain.subscriptions import models as subscriptions_models  # noqa: F401
    from app.domain.communication import models as communication_models  # noqa: F401
    from app.infrastructure import notifications  # noqa: F401


def init_db(bind=None):
    """Initialize database tables"""
    import_models()
    Base.metadata.create_all(bind=bind or engine)


def close_db():
    """Close database connections"""
    engine.dispose()
