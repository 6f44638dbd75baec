"""
Database engine, sessions and declarative base.

The QA workflow stores items, QA states and changesets in one database;
SQLite for local work and tests, PostgreSQL when DATABASE_URL points at it.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from qa_workflow.config import settings

if settings.database_url.startswith("sqlite"):
    # Requests and the test client may use the connection from another thread
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False}
    )
else:
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10
    )

# Tracked saves flush explicitly; nothing is written before the controller asks
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session for the QA routes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
