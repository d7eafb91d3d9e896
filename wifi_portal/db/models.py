from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, DECIMAL
from datetime import datetime
import enum
from wifi_portal.db.database import Base  # Import Base from database.py
from wifi_portal.core.access_window import DurationUnit

class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"

class Admin(Base):
    __tablename__ = "admins"
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

class Package(Base):
    __tablename__ = "packages"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    duration = Column(Integer, nullable=False)
    duration_unit = Column(Enum(DurationUnit), nullable=False)
    description = Column(String(500), nullable=True)
    popular = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

class AccessSession(Base):
    """Durable mirror of the in-memory session registry."""
    __tablename__ = "access_sessions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    session_key = Column(String(255), unique=True, nullable=False, index=True)
    package_id = Column(String(64), nullable=False)
    # ISO-8601 text, same form as the JSON round-trip
    start_time = Column(String(64), nullable=False)
    end_time = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(255), unique=True, nullable=False, index=True)
    phone_number = Column(String(20), nullable=False)
    amount = Column(DECIMAL(10, 2), nullable=False)
    package_id = Column(Integer, nullable=False)
    session_key = Column(String(255), nullable=False)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING)
    receipt_number = Column(String(255), nullable=True)
    failure_reason = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
