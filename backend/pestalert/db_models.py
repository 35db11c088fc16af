# backend/pestalert/db_models.py
from sqlalchemy import Boolean, Column, DateTime, Float, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import datetime, timezone
from pathlib import Path

Base = declarative_base()

def _utcnow():
    return datetime.now(timezone.utc)

class AlertSubscriptionRow(Base):
    __tablename__ = "alert_subscriptions"
    subscriber_id = Column(String, primary_key=True)
    contact_address = Column(String, nullable=False)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    country = Column(String, default="Unknown")
    region = Column(String, default="Unknown")
    min_severity = Column(String, nullable=False, default="MODERATE")
    last_alert_sent_at = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

def make_engine(database_url: str):
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)
    in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
    if in_memory:
        # one shared connection, otherwise every session sees its own empty database
        return create_engine(database_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    db_file = database_url.split("///", 1)[-1]
    Path(db_file).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args={"check_same_thread": False})

def make_session_factory(database_url: str):
    engine = make_engine(database_url)
    init_db(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

def init_db(engine):
    Base.metadata.create_all(bind=engine)
