from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from incident_desk.core.config import settings


def engine_options(database_url: str, timeout: int) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": timeout}}
    return {"connect_args": {"connect_timeout": timeout}, "pool_pre_ping": True}


engine = create_engine(
    settings.DATABASE_URL,
    **engine_options(settings.DATABASE_URL, settings.DB_TIMEOUT_SECONDS),
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
