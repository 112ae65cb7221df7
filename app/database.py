from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from app.config import settings

# Base class for all ORM models
Base = declarative_base()


def create_session_factory(database_url: str):
    """
    Build an engine and a session factory bound to it.
    The caller owns the engine and disposes of it on shutdown.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Required for SQLite to allow multi-threaded access (FastAPI runs sync routes in a threadpool)
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, connect_args=connect_args)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return engine, factory


engine, SessionLocal = create_session_factory(settings.DATABASE_URL)


def init_db(bind) -> None:
    """Create all tables once at startup. Runs outside request handling."""
    import app.models  # noqa: F401  registers the tables on Base.metadata
    Base.metadata.create_all(bind=bind)


def get_db():
    """FastAPI dependency that provides a DB session and ensures it's closed after use."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
