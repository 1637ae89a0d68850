from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from fulfillment.config import get_settings

# Prefer DATABASE_URL (Postgres) when provided.
DATABASE_URL = get_settings().DATABASE_URL

if DATABASE_URL:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
    )
else:
    # Local fallback (SQLite)
    SQLALCHEMY_DATABASE_URL = "sqlite:///./fulfillment.db"
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
