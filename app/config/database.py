"""Database configuration and connection setup"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from app.config.settings import get_settings

settings = get_settings()

# A booking waiting on another booking's owner lock gives up after
# DB_LOCK_TIMEOUT_MS instead of holding a worker indefinitely
engine = create_engine(
    settings.DATABASE_URL,
    poolclass=QueuePool,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    echo=False,
    connect_args={
        "application_name": "booking-scheduler",
        "options": f"-c lock_timeout={settings.DB_LOCK_TIMEOUT_MS}",
    },
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_database(db: Session) -> None:
    """Round trip to the database; raises SQLAlchemyError when it is unreachable"""
    db.execute(text("SELECT 1"))


def create_tables():
    """Create all scheduling tables (local development only, use alembic elsewhere)"""
    from app.models import Base

    print("Creating scheduling tables...")
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created successfully!")


if __name__ == "__main__":
    create_tables()
