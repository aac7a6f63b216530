"""
Trading Journal Configuration
=============================

Centralized configuration for defaults, reference lists, environment
settings and datetime helpers. Single source of truth to avoid
inconsistencies across files.

Author: Trading Journal Team
Version: 1.0
"""

import os
from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# DEFAULTS - used when a user has no settings rows yet
# =============================================================================

DEFAULT_PORTFOLIO_SETTINGS = {
    'initial_capital': 10000.0,
    'current_balance': 10000.0,
    'max_daily_loss': 500.0,
    'max_daily_loss_percentage': 5.0,
    'max_position_size': 1000.0,
    'max_position_size_percentage': 10.0,
    'risk_reward_ratio': 2.0,
    'currency': 'USD',
    'timezone': 'America/New_York',
}

DEFAULT_NOTIFICATIONS = {
    'daily_loss_limit': True,
    'goal_progress': True,
    'trade_reminders': False,
}

DEFAULT_RISK_MANAGEMENT = {
    'max_daily_loss': 500.0,
    'max_daily_loss_percentage': 5.0,
    'max_position_size': 1000.0,
    'max_position_size_percentage': 10.0,
    'risk_reward_ratio': 2.0,
    'stop_loss_required': False,
    'take_profit_required': False,
}

DEFAULT_TRADING_HOURS = {
    'start': '09:30',
    'end': '16:00',
    'timezone': 'America/New_York',
}

DEFAULT_USER_SETTINGS = {
    'theme': 'light',
    'currency': 'USD',
    'timezone': 'America/New_York',
    'date_format': 'MM/DD/YYYY',
    'notifications': DEFAULT_NOTIFICATIONS,
    'risk_management': DEFAULT_RISK_MANAGEMENT,
    'trading_hours': DEFAULT_TRADING_HOURS,
}

# =============================================================================
# REFERENCE LISTS
# =============================================================================

CURRENCIES = {
    'USD': {'symbol': '$', 'name': 'US Dollar'},
    'EUR': {'symbol': '€', 'name': 'Euro'},
    'GBP': {'symbol': '£', 'name': 'British Pound'},
    'JPY': {'symbol': '¥', 'name': 'Japanese Yen'},
    'CAD': {'symbol': 'C$', 'name': 'Canadian Dollar'},
    'AUD': {'symbol': 'A$', 'name': 'Australian Dollar'},
    'CHF': {'symbol': 'Fr', 'name': 'Swiss Franc'},
    'INR': {'symbol': '₹', 'name': 'Indian Rupee'},
}

# Currencies quoted without minor units
ZERO_DECIMAL_CURRENCIES = {'JPY'}

TIMEZONES = [
    'America/New_York',
    'America/Chicago',
    'America/Denver',
    'America/Los_Angeles',
    'Europe/London',
    'Europe/Paris',
    'Europe/Berlin',
    'Asia/Tokyo',
    'Asia/Shanghai',
    'Asia/Singapore',
    'Asia/Kolkata',
    'Australia/Sydney',
]

DATE_FORMATS = ['MM/DD/YYYY', 'DD/MM/YYYY', 'YYYY-MM-DD']
THEMES = ['light', 'dark']


def get_currency_symbol(code: Optional[str]) -> str:
    """
    Get display symbol for a currency code.

    Unknown or empty codes fall back to the code itself (or '$').
    """
    if not code:
        return CURRENCIES['USD']['symbol']
    if code not in CURRENCIES:
        return code
    return CURRENCIES[code]['symbol']


def is_valid_currency(code: Optional[str]) -> bool:
    return bool(code) and code in CURRENCIES


def is_valid_timezone(name: Optional[str]) -> bool:
    return bool(name) and name in TIMEZONES


# =============================================================================
# AUTH CONSTANTS
# =============================================================================

PASSWORD_MIN_LENGTH = 6
PASSWORD_HASH_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "260000"))
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "168"))
RESET_TOKEN_TTL_MINUTES = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "60"))


def require_email_confirmation() -> bool:
    """Check whether sign-in is blocked until the email is confirmed."""
    return os.getenv("REQUIRE_EMAIL_CONFIRMATION", "").lower() in ("1", "true", "yes")


# =============================================================================
# DATETIME UTILITIES - Standardized UTC handling
# =============================================================================

def utc_now() -> datetime:
    """
    Get current UTC time (timezone-aware).

    Use this instead of datetime.utcnow() for consistency.
    Note: datetime.utcnow() is deprecated in Python 3.12+

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware (UTC).

    SQLite hands back naive datetimes even for timezone columns.

    Args:
        dt: Datetime that may be naive or aware

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def is_production() -> bool:
    """Check if running in production environment."""
    env = os.getenv("ENVIRONMENT", "").lower()
    railway_env = os.getenv("RAILWAY_ENVIRONMENT", "").lower()

    return env == "production" or railway_env == "production" or bool(os.getenv("RAILWAY_PROJECT_ID"))


DEFAULT_DATABASE_URL = "sqlite:///./trading_journal.db"


def get_database_url() -> Optional[str]:
    """
    Get DATABASE_URL with the Heroku/Railway postgres:// prefix normalised.
    """
    url = os.getenv("DATABASE_URL")
    if url and url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def is_postgres_url(url: Optional[str]) -> bool:
    return bool(url) and url.startswith("postgresql")


def get_admin_email() -> str:
    """Get admin email from environment with fallback."""
    return os.getenv("ADMIN_EMAIL", "admin@example.com")


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


# Error log limits
ERROR_MESSAGE_MAX_LENGTH = 1000
ERROR_CONTEXT_MAX_LENGTH = 2000


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    # Defaults
    'DEFAULT_PORTFOLIO_SETTINGS',
    'DEFAULT_NOTIFICATIONS',
    'DEFAULT_RISK_MANAGEMENT',
    'DEFAULT_TRADING_HOURS',
    'DEFAULT_USER_SETTINGS',

    # Reference lists
    'CURRENCIES',
    'ZERO_DECIMAL_CURRENCIES',
    'TIMEZONES',
    'DATE_FORMATS',
    'THEMES',
    'get_currency_symbol',
    'is_valid_currency',
    'is_valid_timezone',

    # Auth
    'PASSWORD_MIN_LENGTH',
    'PASSWORD_HASH_ITERATIONS',
    'SESSION_TTL_HOURS',
    'RESET_TOKEN_TTL_MINUTES',
    'require_email_confirmation',

    # Datetime utilities
    'utc_now',
    'ensure_utc_aware',

    # Environment
    'is_production',
    'DEFAULT_DATABASE_URL',
    'get_database_url',
    'is_postgres_url',
    'get_admin_email',
    'get_log_level',

    # Constants
    'ERROR_MESSAGE_MAX_LENGTH',
    'ERROR_CONTEXT_MAX_LENGTH',
]
