"""Engine and session wiring for the two-factor tables."""
import os
from typing import Iterator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models.base import Base

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./two_factor.db")


def build_engine(url: Optional[str] = None) -> Engine:
    url = url or DATABASE_URL
    # Verification runs from worker threads, each with its own session
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(
        url,
        echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
        connect_args=connect_args,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine: Engine) -> None:
    """Create the secret, backup code and lockout tables if missing"""
    Base.metadata.create_all(bind=engine)


engine = build_engine()
SessionLocal = make_session_factory(engine)


def get_db() -> Iterator[Session]:
    """Yield a session on the default database and close it afterwards"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
