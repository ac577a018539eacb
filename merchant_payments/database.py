from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from merchant_payments.config import database_url

DATABASE_URL = database_url()

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
)

# Stores hand detached rows back to the reconciler, so keep attributes loaded after commit
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
Base = declarative_base()
