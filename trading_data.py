"""
Trading Journal - Per-User Data Layer
=====================================

TradingDataService holds one user's journal state (trades, portfolio,
goals, assets, preferences), maps it to and from database rows and
publishes change events after every reload.

Flow for every mutation:
1. Write the row(s) for the signed-in user only
2. Reload the affected collection from the database
3. Publish the fresh collection on the event bus

Closing a trade moves the portfolio balance by its net P&L.

Author: Trading Journal Team
"""

import datetime as dt
import json
import logging
from typing import Any, Dict, List, Optional, Type, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel
from pydantic.alias_generators import to_snake
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import journal_models as models
import journal_schemas as schemas
from calculations import (
    calculate_pnl, net_pnl, check_daily_loss, goal_progress, format_currency,
)
from config import DEFAULT_PORTFOLIO_SETTINGS, DEFAULT_USER_SETTINGS, utc_now
from event_bus import (
    EventBus, TRADES_UPDATED, PORTFOLIO_UPDATED, GOALS_UPDATED, ASSETS_UPDATED,
)

logger = logging.getLogger(__name__)

NESTED_SETTINGS = ('notifications', 'risk_management', 'trading_hours')


class NotFoundError(Exception):
    """Row does not exist or belongs to another user"""


def default_portfolio() -> schemas.PortfolioSettings:
    return schemas.PortfolioSettings(**DEFAULT_PORTFOLIO_SETTINGS)


def default_user_settings() -> schemas.UserSettings:
    return schemas.UserSettings.model_validate(DEFAULT_USER_SETTINGS)


def _changes(model_cls: Type[BaseModel], updates: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Validated field-level changes, keyed by column name."""
    if not isinstance(updates, model_cls):
        updates = model_cls.model_validate(updates)
    return updates.model_dump(exclude_unset=True)


def _backup_section(data: Dict[str, Any], key: str, kind: type):
    """A backup section of the expected JSON type; missing or null is empty."""
    value = data.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        expected = "a list" if kind is list else "an object"
        raise ValueError(f"Invalid backup file: '{key}' must be {expected}")
    return value


class TradingDataService:
    """
    One user's journal state backed by the database.

    With no user every mutation is a no-op and load_all_data() resets the
    state to defaults (signed-out view).
    """

    def __init__(self, db: Session, user: Optional[models.User], events: Optional[EventBus] = None):
        self.db = db
        self.user = user
        self.events = events or EventBus()

        self.trades: List[schemas.Trade] = []
        self.portfolio = default_portfolio()
        self.goals: List[schemas.Goal] = []
        self.assets: List[schemas.Asset] = []
        self.user_settings = default_user_settings()
        self.loading = True
        self.alerts: List[str] = []

        self._loaded = set()

        self.events.subscribe(TRADES_UPDATED, self._check_daily_loss)
        self.events.subscribe(GOALS_UPDATED, self._check_goal_progress)

    # ==================== HELPERS ====================

    def _signed_in(self, action: str) -> bool:
        if self.user is None:
            logger.warning(f"⚠️ {action} skipped - no signed-in user")
            return False
        return True

    def _commit(self, action: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error {action}: {e}")
            raise

    def _owned(self, row_cls, row_id: str):
        row = self.db.query(row_cls).filter(
            row_cls.id == row_id,
            row_cls.user_id == self.user.id,
        ).first()
        if row is None:
            raise NotFoundError(f"{row_cls.__name__} {row_id} not found")
        return row

    def _rows(self, row_cls):
        return self.db.query(row_cls).filter(
            row_cls.user_id == self.user.id
        ).order_by(row_cls.created_at.desc()).all()

    def today(self) -> dt.date:
        """Current date in the portfolio's timezone"""
        try:
            tz = ZoneInfo(self.portfolio.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            tz = dt.timezone.utc
        return dt.datetime.now(tz).date()

    async def ensure_loaded(self, *parts: str):
        """Load the named collections unless this service already has them"""
        loaders = {
            'user_settings': self.load_user_settings,
            'portfolio': self.load_portfolio,
            'trades': self.load_trades,
            'goals': self.load_goals,
            'assets': self.load_assets,
        }
        for part in parts:
            if part not in self._loaded:
                await loaders[part]()

    # ==================== LOADING ====================

    def clear(self):
        """Reset to the signed-out state"""
        self.trades = []
        self.portfolio = default_portfolio()
        self.goals = []
        self.assets = []
        self.user_settings = default_user_settings()
        self.alerts = []
        self.loading = False
        self._loaded = set()

    async def load_all_data(self):
        if self.user is None:
            self.clear()
            return

        self.loading = True
        try:
            # Settings first so the alert checks see the user's limits
            await self.load_user_settings()
            await self.load_portfolio()
            await self.load_trades()
            await self.load_goals()
            await self.load_assets()
        except Exception as e:
            logger.error(f"❌ Error loading data: {e}")
            raise
        finally:
            self.loading = False

    async def load_trades(self):
        if not self._signed_in("load trades"):
            return

        try:
            rows = self._rows(models.Trade)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading trades: {e}")
            raise

        self.trades = [schemas.Trade.model_validate(row) for row in rows]
        self._loaded.add('trades')
        await self.events.publish(TRADES_UPDATED, self.trades)

    async def load_portfolio(self):
        if not self._signed_in("load portfolio"):
            return

        try:
            row = self.db.query(models.PortfolioSettings).filter(
                models.PortfolioSettings.user_id == self.user.id
            ).first()
            transactions = self._rows(models.Transaction)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading portfolio: {e}")
            raise

        deposits = [schemas.Transaction.model_validate(t) for t in transactions if t.type == 'deposit']
        withdrawals = [schemas.Transaction.model_validate(t) for t in transactions if t.type == 'withdrawal']

        if row is not None:
            settings = {key: getattr(row, key) for key in DEFAULT_PORTFOLIO_SETTINGS}
        else:
            settings = dict(DEFAULT_PORTFOLIO_SETTINGS)

        self.portfolio = schemas.PortfolioSettings(**settings, deposits=deposits, withdrawals=withdrawals)
        self._loaded.add('portfolio')
        await self.events.publish(PORTFOLIO_UPDATED, self.portfolio)

    async def load_goals(self):
        if not self._signed_in("load goals"):
            return

        try:
            rows = self._rows(models.Goal)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading goals: {e}")
            raise

        self.goals = [schemas.Goal.model_validate(row) for row in rows]
        self._loaded.add('goals')
        await self.events.publish(GOALS_UPDATED, self.goals)

    async def load_assets(self):
        if not self._signed_in("load assets"):
            return

        try:
            rows = self._rows(models.Asset)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading assets: {e}")
            raise

        self.assets = [schemas.Asset.model_validate(row) for row in rows]
        self._loaded.add('assets')
        await self.events.publish(ASSETS_UPDATED, self.assets)

    async def load_user_settings(self):
        if not self._signed_in("load user settings"):
            return

        try:
            row = self.db.query(models.UserSettings).filter(
                models.UserSettings.user_id == self.user.id
            ).first()
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading user settings: {e}")
            raise

        if row is None:
            self.user_settings = default_user_settings()
        else:
            self.user_settings = schemas.UserSettings.model_validate({
                'theme': row.theme,
                'currency': row.currency,
                'timezone': row.timezone,
                'date_format': row.date_format,
                'notifications': row.notifications,
                'risk_management': row.risk_management,
                'trading_hours': row.trading_hours,
            })
        self._loaded.add('user_settings')

    # ==================== TRADES ====================

    async def add_trade(self, trade: Union[schemas.TradeCreate, Dict[str, Any]]) -> Optional[schemas.Trade]:
        if not self._signed_in("add trade"):
            return None

        if not isinstance(trade, schemas.TradeCreate):
            trade = schemas.TradeCreate.model_validate(trade)

        values = trade.model_dump()
        if not trade.is_open and trade.pnl is None:
            values['pnl'] = calculate_pnl(trade.direction, trade.entry_price, trade.exit_price, trade.position_size)

        row = models.Trade(user_id=self.user.id, **values)
        self.db.add(row)
        self._commit("adding trade")
        logger.info(f"✅ Trade added: {row.direction} {row.asset} for user {self.user.id}")

        await self.ensure_loaded('user_settings', 'portfolio')
        await self.load_trades()

        if not row.is_open and row.pnl is not None:
            await self.update_portfolio_balance(net_pnl(row.pnl, row.fees))

        return schemas.Trade.model_validate(row)

    async def update_trade(self, trade_id: str,
                           updates: Union[schemas.TradeUpdate, Dict[str, Any]]) -> Optional[schemas.Trade]:
        if not self._signed_in("update trade"):
            return None

        changes = _changes(schemas.TradeUpdate, updates)
        row = self._owned(models.Trade, trade_id)
        was_open = row.is_open

        for key, value in changes.items():
            setattr(row, key, value)

        closing = was_open and changes.get('is_open') is False
        if closing and row.pnl is None:
            row.pnl = calculate_pnl(row.direction, row.entry_price, row.exit_price, row.position_size)

        self._commit("updating trade")

        await self.ensure_loaded('user_settings', 'portfolio')
        await self.load_trades()

        if closing and row.pnl is not None:
            await self.update_portfolio_balance(net_pnl(row.pnl, row.fees))

        return schemas.Trade.model_validate(row)

    async def delete_trade(self, trade_id: str):
        if not self._signed_in("delete trade"):
            return

        row = self._owned(models.Trade, trade_id)
        self.db.delete(row)
        self._commit("deleting trade")

        await self.ensure_loaded('user_settings', 'portfolio')
        await self.load_trades()

    # ==================== PORTFOLIO ====================

    async def set_portfolio(self, updates: Union[schemas.PortfolioSettingsUpdate, Dict[str, Any]]):
        """
        Merge updates into the portfolio settings and save them.

        Passing ``deposits`` or ``withdrawals`` keys reloads the
        transaction history afterwards.
        """
        if not self._signed_in("set portfolio"):
            return

        reload_transactions = isinstance(updates, dict) and (
            'deposits' in updates or 'withdrawals' in updates
        )
        changes = _changes(schemas.PortfolioSettingsUpdate, updates)

        await self.ensure_loaded('portfolio')
        updated = self.portfolio.model_copy(update=changes)
        self._stage_portfolio(updated)

        self._commit("updating portfolio")
        self.portfolio = updated

        if reload_transactions:
            await self.load_portfolio()
        else:
            await self.events.publish(PORTFOLIO_UPDATED, self.portfolio)

    def _stage_portfolio(self, updated: schemas.PortfolioSettings):
        """Write settings to the user's portfolio row without committing"""
        row = self.db.query(models.PortfolioSettings).filter(
            models.PortfolioSettings.user_id == self.user.id
        ).first()
        if row is None:
            row = models.PortfolioSettings(user_id=self.user.id)
            self.db.add(row)

        for key in DEFAULT_PORTFOLIO_SETTINGS:
            setattr(row, key, getattr(updated, key))
        row.updated_at = utc_now()

    async def update_portfolio_balance(self, amount: float):
        await self.ensure_loaded('portfolio')
        new_balance = round(self.portfolio.current_balance + amount, 2)
        logger.info(f"💰 Balance {self.portfolio.current_balance:.2f} -> {new_balance:.2f} ({amount:+.2f})")
        await self.set_portfolio({'current_balance': new_balance})

    async def add_transaction(self, transaction: Union[schemas.TransactionCreate, Dict[str, Any]]):
        if not self._signed_in("add transaction"):
            return None

        if not isinstance(transaction, schemas.TransactionCreate):
            transaction = schemas.TransactionCreate.model_validate(transaction)

        row = models.Transaction(user_id=self.user.id, **transaction.model_dump())
        self.db.add(row)
        self._commit("adding transaction")

        await self.load_portfolio()
        return schemas.Transaction.model_validate(row)

    # ==================== GOALS & ASSETS ====================

    async def _add(self, row_cls, create_cls, data, action: str, reload):
        if not self._signed_in(action):
            return None

        if not isinstance(data, create_cls):
            data = create_cls.model_validate(data)

        row = row_cls(user_id=self.user.id, **data.model_dump())
        self.db.add(row)
        self._commit(action)

        await reload()
        return row

    async def _update(self, row_cls, update_cls, row_id: str, updates, action: str, reload):
        if not self._signed_in(action):
            return None

        changes = _changes(update_cls, updates)
        row = self._owned(row_cls, row_id)
        for key, value in changes.items():
            setattr(row, key, value)
        self._commit(action)

        await reload()
        return row

    async def _delete(self, row_cls, row_id: str, action: str, reload):
        if not self._signed_in(action):
            return

        row = self._owned(row_cls, row_id)
        self.db.delete(row)
        self._commit(action)

        await reload()

    async def add_goal(self, goal) -> Optional[schemas.Goal]:
        row = await self._add(models.Goal, schemas.GoalCreate, goal, "adding goal", self.load_goals)
        return schemas.Goal.model_validate(row) if row is not None else None

    async def update_goal(self, goal_id: str, updates) -> Optional[schemas.Goal]:
        row = await self._update(models.Goal, schemas.GoalUpdate, goal_id, updates, "updating goal", self.load_goals)
        return schemas.Goal.model_validate(row) if row is not None else None

    async def delete_goal(self, goal_id: str):
        await self._delete(models.Goal, goal_id, "deleting goal", self.load_goals)

    async def add_asset(self, asset) -> Optional[schemas.Asset]:
        row = await self._add(models.Asset, schemas.AssetCreate, asset, "adding asset", self.load_assets)
        return schemas.Asset.model_validate(row) if row is not None else None

    async def update_asset(self, asset_id: str, updates) -> Optional[schemas.Asset]:
        row = await self._update(models.Asset, schemas.AssetUpdate, asset_id, updates, "updating asset", self.load_assets)
        return schemas.Asset.model_validate(row) if row is not None else None

    async def delete_asset(self, asset_id: str):
        await self._delete(models.Asset, asset_id, "deleting asset", self.load_assets)

    # ==================== USER SETTINGS ====================

    async def set_user_settings(self, updates: Union[schemas.UserSettingsUpdate, Dict[str, Any]]):
        """
        Merge updates into the user's preferences and save them.

        Nested sections (notifications, risk_management, trading_hours) are
        merged key by key, so a partial section keeps its other values.
        """
        if not self._signed_in("set user settings"):
            return

        changes = _changes(schemas.UserSettingsUpdate, updates)
        await self.ensure_loaded('user_settings')
        updated = self._merge_user_settings(changes)
        self._stage_user_settings(updated)

        self._commit("updating user settings")
        self.user_settings = updated

    def _merge_user_settings(self, changes: Dict[str, Any]) -> schemas.UserSettings:
        merged = self.user_settings.model_dump()
        for key, value in changes.items():
            if value is None:
                continue
            if key in NESTED_SETTINGS:
                merged[key] = {**merged[key], **{to_snake(k): v for k, v in value.items()}}
            else:
                merged[key] = value

        return schemas.UserSettings.model_validate(merged)

    def _stage_user_settings(self, updated: schemas.UserSettings):
        row = self.db.query(models.UserSettings).filter(
            models.UserSettings.user_id == self.user.id
        ).first()
        if row is None:
            row = models.UserSettings(user_id=self.user.id)
            self.db.add(row)

        row.theme = updated.theme
        row.currency = updated.currency
        row.timezone = updated.timezone
        row.date_format = updated.date_format
        row.notifications = updated.notifications.model_dump(by_alias=True)
        row.risk_management = updated.risk_management.model_dump(by_alias=True)
        row.trading_hours = updated.trading_hours.model_dump(by_alias=True)
        row.updated_at = utc_now()

    # ==================== BACKUP ====================

    def export_data(self) -> str:
        """Serialise the loaded state as a JSON backup"""
        data = {
            'trades': [t.model_dump(mode='json', by_alias=True) for t in self.trades],
            'portfolio': self.portfolio.model_dump(mode='json', by_alias=True),
            'goals': [g.model_dump(mode='json', by_alias=True) for g in self.goals],
            'assets': [a.model_dump(mode='json', by_alias=True) for a in self.assets],
            'userSettings': self.user_settings.model_dump(mode='json', by_alias=True),
            'exportDate': utc_now().isoformat(),
        }
        return json.dumps(data, indent=2, ensure_ascii=False)

    async def import_data(self, json_data: str) -> Dict[str, int]:
        """
        Append a backup produced by export_data.

        Trades, goals and transactions are added as new rows; assets whose
        symbol is already on the watchlist are skipped. Portfolio and user
        settings are replaced.

        Every record is validated before the first write and everything is
        saved in a single commit, so a rejected backup leaves no rows behind.

        Raises:
            ValueError: invalid JSON, a malformed section or a record that
                fails validation
        """
        if not self._signed_in("import data"):
            return {}

        try:
            data = json.loads(json_data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid backup file: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Invalid backup file: expected a JSON object")

        portfolio = _backup_section(data, 'portfolio', dict)
        raw_settings = _backup_section(data, 'userSettings', dict)

        trades = [schemas.TradeCreate.model_validate(raw) for raw in _backup_section(data, 'trades', list)]
        goals = [schemas.GoalCreate.model_validate(raw) for raw in _backup_section(data, 'goals', list)]
        assets = [schemas.AssetCreate.model_validate(raw) for raw in _backup_section(data, 'assets', list)]
        transactions = [
            schemas.TransactionCreate.model_validate(raw)
            for raw in _backup_section(portfolio, 'deposits', list) + _backup_section(portfolio, 'withdrawals', list)
        ]

        settings = {k: v for k, v in portfolio.items() if k not in ('deposits', 'withdrawals')}
        portfolio_changes = _changes(schemas.PortfolioSettingsUpdate, settings)
        settings_changes = _changes(schemas.UserSettingsUpdate, raw_settings)

        await self.ensure_loaded('user_settings', 'portfolio')
        updated_portfolio = self.portfolio.model_copy(update=portfolio_changes) if portfolio_changes else None
        updated_settings = self._merge_user_settings(settings_changes) if settings_changes else None

        counts = {'trades': 0, 'goals': 0, 'assets': 0, 'transactions': 0}
        try:
            existing = {row.symbol for row in self._rows(models.Asset)}

            for trade in trades:
                self.db.add(models.Trade(user_id=self.user.id, **trade.model_dump()))
                counts['trades'] += 1

            for goal in goals:
                self.db.add(models.Goal(user_id=self.user.id, **goal.model_dump()))
                counts['goals'] += 1

            for asset in assets:
                if asset.symbol in existing:
                    continue
                existing.add(asset.symbol)
                self.db.add(models.Asset(user_id=self.user.id, **asset.model_dump()))
                counts['assets'] += 1

            for transaction in transactions:
                self.db.add(models.Transaction(user_id=self.user.id, **transaction.model_dump()))
                counts['transactions'] += 1

            if updated_portfolio is not None:
                self._stage_portfolio(updated_portfolio)
            if updated_settings is not None:
                self._stage_user_settings(updated_settings)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error importing data: {e}")
            raise

        self._commit("importing data")

        await self.load_all_data()
        logger.info(f"✅ Imported backup for user {self.user.id}: {counts}")
        return counts

    # ==================== ALERTS ====================

    def _check_daily_loss(self, trades: List[schemas.Trade]):
        if not self.user_settings.notifications.daily_loss_limit:
            return

        status = check_daily_loss(trades, self.portfolio, self.today())
        if not status['limit_reached']:
            return

        message = (
            f"Daily loss limit reached: {format_currency(status['pnl'], self.portfolio.currency)} "
            f"today (limit {format_currency(status['limit'], self.portfolio.currency)})"
        )
        if message not in self.alerts:
            self.alerts.append(message)
            logger.warning(f"⚠️ {message} - user {self.user.id if self.user else '?'}")

    def _check_goal_progress(self, goals: List[schemas.Goal]):
        if not self.user_settings.notifications.goal_progress:
            return

        today = self.today()
        for goal in goals:
            if not goal.is_active:
                continue
            if goal_progress(goal, today)['achieved']:
                message = f"Goal achieved: {goal.description or goal.type}"
                if message not in self.alerts:
                    self.alerts.append(message)
