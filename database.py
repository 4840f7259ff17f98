"""Database setup and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from config import settings


def _connect_args(url: str) -> dict:
    # SQLite connections are shared between the API threadpool and the scheduler
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    echo=settings.environment == "development" and settings.log_level == "DEBUG",
    connect_args=_connect_args(settings.database_url),
    future=True,
)

SessionLocal = sessionmaker(
    engine,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()


def init_db(bind=None):
    """Create all tables."""
    import models  # noqa: F401  (registers tables on Base.metadata)
    Base.metadata.create_all(bind=bind or engine)

