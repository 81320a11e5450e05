# backend/models.py
from datetime import datetime

from sqlalchemy import create_engine, Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


# ---------------------------------------------------------
#   MODELS
# ---------------------------------------------------------
class Voter(Base):
    """
    Off-chain projection of a registered voter (source of truth is blockchain)
    """
    __tablename__ = "voters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False)
    account_hash = Column(String(66), unique=True, nullable=False)
    constituency = Column(String(100), nullable=False)
    address = Column(String(42), unique=True, nullable=False)
    is_registered = Column(Boolean, default=False, nullable=False)
    has_voted = Column(Boolean, default=False, nullable=False)
    registration_tx = Column(String(66), nullable=True)
    vote_tx = Column(String(66), nullable=True)
    registered_at = Column(DateTime, default=datetime.utcnow)
    voted_at = Column(DateTime, nullable=True)


# ---------------------------------------------------------
#   ENGINE + SESSION FACTORY
# ---------------------------------------------------------
def make_engine(database_url):
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
        )
    return create_engine(database_url, echo=False, pool_pre_ping=True)


def init_db(database_url):
    """Create tables if missing and return a session factory bound to them."""
    engine = make_engine(database_url)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
