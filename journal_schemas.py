"""
Trading Journal - Request/Response Models
=========================================

Pydantic models for the journal API. Client-facing JSON uses camelCase
(``entryPrice``, ``isOpen``); database rows use snake_case. Every model
accepts both spellings on input and serialises with camelCase aliases.

``*Update`` models carry only the fields the caller sent: use
``model_dump(exclude_unset=True)`` to get a field-level update.
"""

import datetime as dt
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from config import DATE_FORMATS, THEMES, is_valid_currency, is_valid_timezone

Direction = Literal['long', 'short']
TransactionType = Literal['deposit', 'withdrawal']
GoalPriority = Literal['low', 'medium', 'high']

TIME_PATTERN = r'^\d{2}:\d{2}(:\d{2})?$'


class CamelModel(BaseModel):
    """Base model: camelCase aliases, snake_case attributes, ORM-friendly"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _check_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.upper()
    if not is_valid_currency(value):
        raise ValueError(f"Unsupported currency: {value}")
    return value


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_timezone(value):
        raise ValueError(f"Unsupported timezone: {value}")
    return value


# ==================== TRADES ====================

class TradeCreate(CamelModel):
    """New trade entry"""
    date: dt.date
    time: str = Field(pattern=TIME_PATTERN)
    asset: str = Field(min_length=1)
    direction: Direction
    entry_price: float = Field(gt=0)
    exit_price: Optional[float] = Field(default=None, gt=0)
    position_size: float = Field(gt=0)
    strategy: str = ""
    reasoning: str = ""
    market_conditions: str = ""
    tags: List[str] = Field(default_factory=list)
    screenshots: Optional[List[str]] = None
    is_open: bool = True
    pnl: Optional[float] = None
    fees: Optional[float] = Field(default=None, ge=0)
    emotional_state: Optional[str] = None

    @field_validator('asset')
    @classmethod
    def normalize_asset(cls, v: str) -> str:
        return v.strip().upper()


class Trade(TradeCreate):
    """Stored trade"""
    id: str
    created_at: Optional[dt.datetime] = None


class TradeUpdate(CamelModel):
    """Field-level trade update"""
    date: Optional[dt.date] = None
    time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    asset: Optional[str] = None
    direction: Optional[Direction] = None
    entry_price: Optional[float] = Field(default=None, gt=0)
    exit_price: Optional[float] = Field(default=None, gt=0)
    position_size: Optional[float] = Field(default=None, gt=0)
    strategy: Optional[str] = None
    reasoning: Optional[str] = None
    market_conditions: Optional[str] = None
    tags: Optional[List[str]] = None
    screenshots: Optional[List[str]] = None
    is_open: Optional[bool] = None
    pnl: Optional[float] = None
    fees: Optional[float] = Field(default=None, ge=0)
    emotional_state: Optional[str] = None

    @field_validator('asset')
    @classmethod
    def normalize_asset(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


# ==================== ASSETS ====================

class AssetCreate(CamelModel):
    """Watchlist entry"""
    symbol: str = Field(min_length=1)
    name: str
    category: str
    exchange: Optional[str] = None
    sector: Optional[str] = None
    is_active: bool = True

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.strip().upper()


class Asset(AssetCreate):
    id: str
    created_at: Optional[dt.datetime] = None


class AssetUpdate(CamelModel):
    symbol: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    exchange: Optional[str] = None
    sector: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


# ==================== GOALS ====================

class GoalCreate(CamelModel):
    """Trading goal"""
    type: str
    target: float
    current: float = 0.0
    deadline: dt.date
    description: str = ""
    is_active: bool = True
    priority: GoalPriority = 'medium'
    category: str = 'performance'


class Goal(GoalCreate):
    id: str
    created_at: Optional[dt.datetime] = None


class GoalUpdate(CamelModel):
    type: Optional[str] = None
    target: Optional[float] = None
    current: Optional[float] = None
    deadline: Optional[dt.date] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    priority: Optional[GoalPriority] = None
    category: Optional[str] = None


# ==================== PORTFOLIO ====================

class TransactionCreate(CamelModel):
    """Deposit or withdrawal"""
    date: dt.date
    amount: float = Field(gt=0)
    type: TransactionType
    description: Optional[str] = None


class Transaction(TransactionCreate):
    id: str


class PortfolioSettings(CamelModel):
    """Capital and risk configuration with transaction history"""
    initial_capital: float
    current_balance: float
    max_daily_loss: float
    max_daily_loss_percentage: float
    max_position_size: float
    max_position_size_percentage: float
    risk_reward_ratio: float
    currency: str
    timezone: str
    deposits: List[Transaction] = Field(default_factory=list)
    withdrawals: List[Transaction] = Field(default_factory=list)

    @field_validator('currency')
    @classmethod
    def check_currency(cls, v: Optional[str]) -> Optional[str]:
        return _check_currency(v)

    @field_validator('timezone')
    @classmethod
    def check_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class PortfolioSettingsUpdate(CamelModel):
    initial_capital: Optional[float] = Field(default=None, ge=0)
    current_balance: Optional[float] = None
    max_daily_loss: Optional[float] = Field(default=None, ge=0)
    max_daily_loss_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    max_position_size: Optional[float] = Field(default=None, ge=0)
    max_position_size_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    risk_reward_ratio: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def check_currency(cls, v: Optional[str]) -> Optional[str]:
        return _check_currency(v)

    @field_validator('timezone')
    @classmethod
    def check_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


# ==================== USER SETTINGS ====================

class NotificationSettings(CamelModel):
    daily_loss_limit: bool = True
    goal_progress: bool = True
    trade_reminders: bool = False


class RiskManagementSettings(CamelModel):
    max_daily_loss: float = 500.0
    max_daily_loss_percentage: float = 5.0
    max_position_size: float = 1000.0
    max_position_size_percentage: float = 10.0
    risk_reward_ratio: float = 2.0
    stop_loss_required: bool = False
    take_profit_required: bool = False


class TradingHours(CamelModel):
    start: str = Field(default='09:30', pattern=TIME_PATTERN)
    end: str = Field(default='16:00', pattern=TIME_PATTERN)
    timezone: str = 'America/New_York'

    @field_validator('timezone')
    @classmethod
    def check_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class UserSettings(CamelModel):
    theme: str = 'light'
    currency: str = 'USD'
    timezone: str = 'America/New_York'
    date_format: str = 'MM/DD/YYYY'
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    risk_management: RiskManagementSettings = Field(default_factory=RiskManagementSettings)
    trading_hours: TradingHours = Field(default_factory=TradingHours)

    @field_validator('currency')
    @classmethod
    def check_currency(cls, v: Optional[str]) -> Optional[str]:
        return _check_currency(v)

    @field_validator('timezone')
    @classmethod
    def check_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)

    @field_validator('theme')
    @classmethod
    def check_theme(cls, v: str) -> str:
        if v not in THEMES:
            raise ValueError(f"Unsupported theme: {v}")
        return v

    @field_validator('date_format')
    @classmethod
    def check_date_format(cls, v: str) -> str:
        if v not in DATE_FORMATS:
            raise ValueError(f"Unsupported date format: {v}")
        return v


class UserSettingsUpdate(CamelModel):
    """Partial settings. Nested sections are merged key by key."""
    theme: Optional[str] = None
    currency: Optional[str] = None
    timezone: Optional[str] = None
    date_format: Optional[str] = None
    notifications: Optional[Dict[str, Any]] = None
    risk_management: Optional[Dict[str, Any]] = None
    trading_hours: Optional[Dict[str, Any]] = None


# ==================== SETTINGS FORMS ====================
# Raw form values: numbers may arrive as strings and fall back when blank.

FormNumber = Optional[Union[float, str]]


class CapitalSettingsForm(CamelModel):
    initial_capital: FormNumber = None
    current_balance: FormNumber = None
    currency: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def check_currency(cls, v: Optional[str]) -> Optional[str]:
        return _check_currency(v)


class RiskSettingsForm(CamelModel):
    max_daily_loss: FormNumber = None
    max_daily_loss_percentage: FormNumber = None
    max_position_size: FormNumber = None
    max_position_size_percentage: FormNumber = None
    risk_reward_ratio: FormNumber = None
    stop_loss_required: bool = False
    take_profit_required: bool = False


# ==================== AUTH ====================

class SignUpRequest(CamelModel):
    email: EmailStr
    password: str
    confirm_password: str


class SignInRequest(CamelModel):
    email: EmailStr
    password: str


class ResetPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordConfirm(CamelModel):
    token: str
    password: str


class AuthUser(CamelModel):
    id: str
    email: str
    email_confirmed: bool = False
    created_at: Optional[dt.datetime] = None
