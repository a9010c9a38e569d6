from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from linkengine.config import settings


def build_engine(database_url: str):
    """Create an engine; SQLite needs cross-thread access and a busy timeout."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.database_busy_timeout,
        }
    return create_engine(database_url, connect_args=connect_args)


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
