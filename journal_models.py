"""
Trading Journal - Database Models
=================================

Database models for the trading journal:
- Users, sign-in sessions and password reset tokens
- Trades, watchlist assets and goals
- Portfolio settings with deposit/withdrawal transactions
- Per-user preferences (notifications, risk defaults, trading hours)
- Error logs for backend failures

Every journal row is owned by a single user id. Ids are UUID strings.

Author: Trading Journal Team
"""

import uuid
import logging

from sqlalchemy import (
    Column, String, Float, Boolean, Date, DateTime, ForeignKey, Integer, Text, JSON,
    UniqueConstraint, create_engine, inspect,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from config import utc_now

logger = logging.getLogger(__name__)

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Journal account - email/password sign in
    """
    __tablename__ = "journal_users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)

    # Email confirmation
    email_confirmed = Column(Boolean, default=False)
    confirmation_token_hash = Column(String(64), nullable=True, index=True)

    # Account tracking
    created_at = Column(DateTime(timezone=True), default=utc_now)
    last_sign_in_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    sessions = relationship("AuthSession", back_populates="user", cascade="all, delete-orphan")
    reset_tokens = relationship("PasswordResetToken", back_populates="user", cascade="all, delete-orphan")
    trades = relationship("Trade", back_populates="user", cascade="all, delete-orphan")
    assets = relationship("Asset", back_populates="user", cascade="all, delete-orphan")
    goals = relationship("Goal", back_populates="user", cascade="all, delete-orphan")
    transactions = relationship("Transaction", back_populates="user", cascade="all, delete-orphan")


class AuthSession(Base):
    """Bearer token issued on sign in (only the SHA-256 digest is stored)"""
    __tablename__ = "auth_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("journal_users.id"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="sessions")


class PasswordResetToken(Base):
    """Single-use password reset token"""
    __tablename__ = "password_reset_tokens"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("journal_users.id"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="reset_tokens")


class Trade(Base):
    """
    Individual trade record
    """
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("journal_users.id"), nullable=False, index=True)

    # Timing
    date = Column(Date, nullable=False)
    time = Column(String(8), nullable=False)  # HH:MM

    # Trade details
    asset = Column(String, nullable=False)
    direction = Column(String(5), nullable=False)  # 'long' or 'short'
    entry_price = Column(Float, nullable=False)
    exit_price = Column(Float, nullable=True)
    position_size = Column(Float, nullable=False)

    # Journal notes
    strategy = Column(String, default="")
    reasoning = Column(Text, default="")
    market_conditions = Column(Text, default="")
    tags = Column(JSON, default=list)
    screenshots = Column(JSON, nullable=True)
    emotional_state = Column(String, nullable=True)

    # Result
    is_open = Column(Boolean, default=True)
    pnl = Column(Float, nullable=True)
    fees = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)

    user = relationship("User", back_populates="trades")


class Asset(Base):
    """Watchlist asset"""
    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("journal_users.id"), nullable=False, index=True)

    symbol = Column(String, nullable=False)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False)  # stocks, forex, crypto, ...
    exchange = Column(String, nullable=True)
    sector = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)

    user = relationship("User", back_populates="assets")


class Goal(Base):
    """Trading goal with target and progress"""
    __tablename__ = "goals"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("journal_users.id"), nullable=False, index=True)

    type = Column(String, nullable=False)
    target = Column(Float, nullable=False)
    current = Column(Float, default=0.0)
    deadline = Column(Date, nullable=False)
    description = Column(Text, default="")
    is_active = Column(Boolean, default=True)
    priority = Column(String, default="medium")
    category = Column(String, default="performance")

    created_at = Column(DateTime(timezone=True), default=utc_now)

    user = relationship("User", back_populates="goals")


class PortfolioSettings(Base):
    """
    Capital and risk limits - one row per user
    """
    __tablename__ = "portfolio_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("journal_users.id"), unique=True, nullable=False)

    # Capital
    initial_capital = Column(Float, nullable=False)
    current_balance = Column(Float, nullable=False)

    # Risk limits
    max_daily_loss = Column(Float, nullable=False)
    max_daily_loss_percentage = Column(Float, nullable=False)
    max_position_size = Column(Float, nullable=False)
    max_position_size_percentage = Column(Float, nullable=False)
    risk_reward_ratio = Column(Float, nullable=False)

    currency = Column(String(3), nullable=False)
    timezone = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now)


class Transaction(Base):
    """
    Capital deposit or withdrawal
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("journal_users.id"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    amount = Column(Float, nullable=False)
    type = Column(String(10), nullable=False)  # 'deposit' or 'withdrawal'
    description = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)

    user = relationship("User", back_populates="transactions")


class UserSettings(Base):
    """Preferences - one row per user. Nested sections are stored as JSON."""
    __tablename__ = "user_settings"
    __table_args__ = (UniqueConstraint("user_id", name="uq_user_settings_user_id"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("journal_users.id"), nullable=False)

    theme = Column(String, nullable=False)
    currency = Column(String(3), nullable=False)
    timezone = Column(String, nullable=False)
    date_format = Column(String, nullable=False)

    notifications = Column(JSON, nullable=False)
    risk_management = Column(JSON, nullable=False)
    trading_hours = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now)


class ErrorLog(Base):
    """Backend failure record for later inspection"""
    __tablename__ = "error_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime(timezone=True), default=utc_now, index=True)
    user_ref = Column(String(100), nullable=True)
    error_type = Column(String(100), nullable=False)
    error_message = Column(Text, nullable=True)
    context = Column(JSON, nullable=True)


def get_engine(database_url: str):
    """
    Create engine for DATABASE_URL.

    In-memory SQLite shares a single connection so every session sees the
    same tables.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def get_session_factory(engine):
    """Get session factory bound to engine"""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine):
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)

    inspector = inspect(engine)
    tables = inspector.get_table_names()

    required_tables = [
        'journal_users', 'auth_sessions', 'password_reset_tokens', 'trades',
        'assets', 'goals', 'portfolio_settings', 'transactions',
        'user_settings', 'error_logs',
    ]

    missing = [t for t in required_tables if t not in tables]
    if missing:
        logger.warning(f"⚠️ Missing tables: {missing}")
    else:
        logger.info("✅ Database schema up to date")


# Export everything
__all__ = [
    'Base', 'User', 'AuthSession', 'PasswordResetToken', 'Trade', 'Asset',
    'Goal', 'PortfolioSettings', 'Transaction', 'UserSettings', 'ErrorLog',
    'new_id', 'get_engine', 'get_session_factory', 'init_db',
]
