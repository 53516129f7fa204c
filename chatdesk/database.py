from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from chatdesk.config import get_settings


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


_database_url = get_settings().database_url

engine = create_engine(_database_url, **_engine_kwargs(_database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables. Production schemas are normally managed outside the app."""
    import chatdesk.models  # noqa: F401  registers the mappers on Base

    Base.metadata.create_all(bind=engine)
