"""
Trading Journal - API Endpoints
===============================

FastAPI endpoints for the signed-in user's journal. Every route except
the reference lists needs ``Authorization: Bearer <token>``.

Endpoints:
- GET/POST /api/trades, PATCH/DELETE /api/trades/{id} - Trade log
- GET/POST /api/goals, PATCH/DELETE /api/goals/{id} - Goals with progress
- GET/POST /api/assets, PATCH/DELETE /api/assets/{id} - Watchlist
- GET/PATCH /api/portfolio - Capital and risk limits
- POST /api/portfolio/transactions - Record a deposit or withdrawal
- GET/PATCH /api/settings - Preferences
- PUT /api/settings/capital|risk|notifications|trading-hours - Settings forms
- GET /api/dashboard - Performance summary for a period
- GET /api/export, POST /api/import - JSON backup
- GET /api/export/trades.csv - Trade log as CSV
- GET /api/reference/currencies|timezones - Selectable values

Author: Trading Journal Team
"""

import logging
import traceback
from typing import Any, Awaitable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth_endpoints import get_current_user, get_db
from calculations import (
    PERIOD_LABELS, check_daily_loss, check_position_size, daily_loss_limit, goal_progress,
    parse_float, period_start, portfolio_summary, position_size_limit, trade_statistics,
)
from config import CURRENCIES, TIMEZONES
from db_utils import log_error_async
from journal_models import User
from journal_reports import backup_filename, generate_trades_csv, get_monthly_pnl, trades_csv_filename
from journal_schemas import (
    AssetCreate, AssetUpdate, CapitalSettingsForm, GoalCreate, GoalUpdate,
    NotificationSettings, PortfolioSettingsUpdate, RiskSettingsForm, TradeCreate,
    TradeUpdate, TradingHours, TransactionCreate, UserSettingsUpdate,
)
from trading_data import NotFoundError, TradingDataService

logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()

# Settings form fallbacks for blank risk fields
RISK_FORM_FALLBACKS = {
    'max_daily_loss': 0.0,
    'max_daily_loss_percentage': 0.0,
    'max_position_size': 1000.0,
    'max_position_size_percentage': 10.0,
    'risk_reward_ratio': 2.0,
}


# ==================== DEPENDENCY INJECTION ====================

async def get_trading_data(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> TradingDataService:
    """Journal state for the signed-in user"""
    return TradingDataService(db, user)


# ==================== HELPERS ====================

def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _validation_detail(exc: ValidationError) -> list:
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


async def _run(data: TradingDataService, action: Awaitable, error_type: str,
               endpoint: str, user_message: str) -> Any:
    """
    Await a data-layer call and map its failures to HTTP errors.

    Database failures are logged to error_logs and reported with a
    user-facing message; the details stay in the logs.
    """
    try:
        return await action
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError as e:
        await log_error_async(
            data.user.id if data.user else None,
            error_type,
            str(e),
            {"endpoint": endpoint, "traceback": traceback.format_exc()[:500]}
        )
        raise HTTPException(status_code=500, detail=user_message)


def _goal_with_progress(goal, today) -> dict:
    return {**_dump(goal), "progress": goal_progress(goal, today)}


# ==================== TRADE ENDPOINTS ====================

@router.get("/api/trades")
async def list_trades(
    status: Optional[str] = Query(None, pattern="^(open|closed)$"),
    asset: Optional[str] = None,
    data: TradingDataService = Depends(get_trading_data)
):
    """
    Trade log, newest first

    Query params:
        status: open or closed
        asset: Filter by symbol
    """
    await _run(data, data.ensure_loaded('user_settings', 'portfolio', 'trades'),
               "LOAD_TRADES_ERROR", "/api/trades", "Error loading trades. Please refresh.")

    trades = data.trades
    if status:
        trades = [t for t in trades if t.is_open == (status == 'open')]
    if asset:
        trades = [t for t in trades if t.asset == asset.strip().upper()]

    return {
        "trades": [_dump(t) for t in trades],
        "count": len(trades),
        "alerts": data.alerts,
    }


@router.post("/api/trades", status_code=201)
async def create_trade(trade: TradeCreate, data: TradingDataService = Depends(get_trading_data)):
    """
    Log a trade

    A trade saved as closed moves the portfolio balance by its net P&L.
    The response carries the position size check against the portfolio.
    """
    created = await _run(data, data.add_trade(trade), "ADD_TRADE_ERROR", "/api/trades",
                         "Error saving trade. Please try again.")

    return {
        "status": "success",
        "message": "Trade saved successfully!",
        "trade": _dump(created),
        "risk_check": check_position_size(created, data.portfolio),
        "portfolio": _dump(data.portfolio),
        "alerts": data.alerts,
    }


@router.patch("/api/trades/{trade_id}")
async def edit_trade(trade_id: str, updates: TradeUpdate,
                     data: TradingDataService = Depends(get_trading_data)):
    updated = await _run(data, data.update_trade(trade_id, updates), "UPDATE_TRADE_ERROR",
                         f"/api/trades/{trade_id}", "Error updating trade. Please try again.")

    return {
        "status": "success",
        "message": "Trade updated successfully!",
        "trade": _dump(updated),
        "portfolio": _dump(data.portfolio),
        "alerts": data.alerts,
    }


@router.delete("/api/trades/{trade_id}")
async def remove_trade(trade_id: str, data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.delete_trade(trade_id), "DELETE_TRADE_ERROR",
               f"/api/trades/{trade_id}", "Error deleting trade. Please try again.")
    return {"status": "success", "message": "Trade deleted"}


# ==================== GOAL ENDPOINTS ====================

@router.get("/api/goals")
async def list_goals(data: TradingDataService = Depends(get_trading_data)):
    """Goals with progress computed for today"""
    await _run(data, data.ensure_loaded('user_settings', 'portfolio', 'goals'),
               "LOAD_GOALS_ERROR", "/api/goals", "Error loading goals. Please refresh.")

    today = data.today()
    return {
        "goals": [_goal_with_progress(g, today) for g in data.goals],
        "count": len(data.goals),
        "alerts": data.alerts,
    }


@router.post("/api/goals", status_code=201)
async def create_goal(goal: GoalCreate, data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.ensure_loaded('user_settings', 'portfolio'),
               "LOAD_SETTINGS_ERROR", "/api/goals", "Error saving goal. Please try again.")
    created = await _run(data, data.add_goal(goal), "ADD_GOAL_ERROR", "/api/goals",
                         "Error saving goal. Please try again.")

    return {
        "status": "success",
        "message": "Goal added successfully!",
        "goal": _goal_with_progress(created, data.today()),
        "alerts": data.alerts,
    }


@router.patch("/api/goals/{goal_id}")
async def edit_goal(goal_id: str, updates: GoalUpdate,
                    data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.ensure_loaded('user_settings', 'portfolio'),
               "LOAD_SETTINGS_ERROR", f"/api/goals/{goal_id}", "Error updating goal. Please try again.")
    updated = await _run(data, data.update_goal(goal_id, updates), "UPDATE_GOAL_ERROR",
                         f"/api/goals/{goal_id}", "Error updating goal. Please try again.")

    return {
        "status": "success",
        "message": "Goal updated successfully!",
        "goal": _goal_with_progress(updated, data.today()),
        "alerts": data.alerts,
    }


@router.delete("/api/goals/{goal_id}")
async def remove_goal(goal_id: str, data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.delete_goal(goal_id), "DELETE_GOAL_ERROR",
               f"/api/goals/{goal_id}", "Error deleting goal. Please try again.")
    return {"status": "success", "message": "Goal deleted"}


# ==================== ASSET ENDPOINTS ====================

@router.get("/api/assets")
async def list_assets(
    active_only: bool = False,
    data: TradingDataService = Depends(get_trading_data)
):
    await _run(data, data.load_assets(), "LOAD_ASSETS_ERROR", "/api/assets",
               "Error loading assets. Please refresh.")

    assets = [a for a in data.assets if a.is_active] if active_only else data.assets
    return {"assets": [_dump(a) for a in assets], "count": len(assets)}


@router.post("/api/assets", status_code=201)
async def create_asset(asset: AssetCreate, data: TradingDataService = Depends(get_trading_data)):
    created = await _run(data, data.add_asset(asset), "ADD_ASSET_ERROR", "/api/assets",
                         "Error saving asset. Please try again.")
    return {"status": "success", "message": "Asset added successfully!", "asset": _dump(created)}


@router.patch("/api/assets/{asset_id}")
async def edit_asset(asset_id: str, updates: AssetUpdate,
                     data: TradingDataService = Depends(get_trading_data)):
    updated = await _run(data, data.update_asset(asset_id, updates), "UPDATE_ASSET_ERROR",
                         f"/api/assets/{asset_id}", "Error updating asset. Please try again.")
    return {"status": "success", "message": "Asset updated successfully!", "asset": _dump(updated)}


@router.delete("/api/assets/{asset_id}")
async def remove_asset(asset_id: str, data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.delete_asset(asset_id), "DELETE_ASSET_ERROR",
               f"/api/assets/{asset_id}", "Error deleting asset. Please try again.")
    return {"status": "success", "message": "Asset deleted"}


# ==================== PORTFOLIO ENDPOINTS ====================

def _portfolio_payload(data: TradingDataService) -> dict:
    return {
        "portfolio": _dump(data.portfolio),
        "summary": portfolio_summary(data.portfolio),
        "limits": {
            "daily_loss": daily_loss_limit(data.portfolio),
            "position_size": position_size_limit(data.portfolio),
        },
    }


@router.get("/api/portfolio")
async def get_portfolio(data: TradingDataService = Depends(get_trading_data)):
    """Portfolio settings, capital summary and effective risk limits"""
    await _run(data, data.load_portfolio(), "LOAD_PORTFOLIO_ERROR", "/api/portfolio",
               "Error loading portfolio. Please refresh.")
    return _portfolio_payload(data)


@router.patch("/api/portfolio")
async def update_portfolio(updates: PortfolioSettingsUpdate,
                           data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.set_portfolio(updates), "SET_PORTFOLIO_ERROR", "/api/portfolio",
               "Error saving settings. Please try again.")
    return {"status": "success", "message": "Portfolio updated successfully!", **_portfolio_payload(data)}


@router.post("/api/portfolio/transactions", status_code=201)
async def create_transaction(transaction: TransactionCreate,
                             data: TradingDataService = Depends(get_trading_data)):
    """
    Record a deposit or withdrawal

    Transactions count toward total capital; the current balance is not
    changed.
    """
    created = await _run(data, data.add_transaction(transaction), "ADD_TRANSACTION_ERROR",
                         "/api/portfolio/transactions", "Error saving transaction. Please try again.")

    label = "Deposit" if created.type == 'deposit' else "Withdrawal"
    return {
        "status": "success",
        "message": f"{label} recorded successfully!",
        "transaction": _dump(created),
        **_portfolio_payload(data),
    }


# ==================== SETTINGS ENDPOINTS ====================

@router.get("/api/settings")
async def get_settings(data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.load_user_settings(), "LOAD_SETTINGS_ERROR", "/api/settings",
               "Error loading settings. Please refresh.")
    return {"settings": _dump(data.user_settings)}


@router.patch("/api/settings")
async def update_settings(updates: UserSettingsUpdate,
                          data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.set_user_settings(updates), "SET_SETTINGS_ERROR", "/api/settings",
               "Error saving settings. Please try again.")
    return {"status": "success", "message": "Settings saved successfully!", "settings": _dump(data.user_settings)}


@router.put("/api/settings/capital")
async def save_capital_settings(form: CapitalSettingsForm,
                                data: TradingDataService = Depends(get_trading_data)):
    """
    Capital form: blank or invalid amounts keep the current values
    """
    await _run(data, data.load_portfolio(), "LOAD_PORTFOLIO_ERROR", "/api/settings/capital",
               "Error saving settings. Please try again.")

    updates = {
        'initial_capital': parse_float(form.initial_capital, data.portfolio.initial_capital),
        'current_balance': parse_float(form.current_balance, data.portfolio.current_balance),
        'currency': form.currency or data.portfolio.currency,
    }
    await _run(data, data.set_portfolio(updates), "SET_PORTFOLIO_ERROR", "/api/settings/capital",
               "Error saving settings. Please try again.")

    return {
        "status": "success",
        "message": "Capital settings saved successfully!",
        "portfolio": _dump(data.portfolio),
    }


@router.put("/api/settings/risk")
async def save_risk_settings(form: RiskSettingsForm,
                             data: TradingDataService = Depends(get_trading_data)):
    """
    Risk form: limits go to the portfolio, the full form (with the
    stop loss / take profit switches) to the risk management preferences
    """
    limits = {
        key: parse_float(getattr(form, key), fallback)
        for key, fallback in RISK_FORM_FALLBACKS.items()
    }

    await _run(data, data.set_portfolio(limits), "SET_PORTFOLIO_ERROR", "/api/settings/risk",
               "Error saving settings. Please try again.")
    await _run(
        data,
        data.set_user_settings({'risk_management': {
            **limits,
            'stop_loss_required': form.stop_loss_required,
            'take_profit_required': form.take_profit_required,
        }}),
        "SET_SETTINGS_ERROR", "/api/settings/risk", "Error saving settings. Please try again."
    )

    return {
        "status": "success",
        "message": "Risk management settings saved successfully!",
        "portfolio": _dump(data.portfolio),
        "settings": _dump(data.user_settings),
    }


@router.put("/api/settings/notifications")
async def save_notification_settings(notifications: NotificationSettings,
                                     data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.set_user_settings({'notifications': notifications.model_dump()}),
               "SET_SETTINGS_ERROR", "/api/settings/notifications",
               "Error saving settings. Please try again.")
    return {
        "status": "success",
        "message": "Notification settings saved successfully!",
        "settings": _dump(data.user_settings),
    }


@router.put("/api/settings/trading-hours")
async def save_trading_hours(hours: TradingHours,
                             data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.set_user_settings({'trading_hours': hours.model_dump()}),
               "SET_SETTINGS_ERROR", "/api/settings/trading-hours",
               "Error saving settings. Please try again.")
    return {
        "status": "success",
        "message": "Trading hours saved successfully!",
        "settings": _dump(data.user_settings),
    }


# ==================== DASHBOARD ====================

@router.get("/api/dashboard")
async def dashboard(
    period: str = Query('30d', pattern="^(7d|30d|90d|1y|all)$"),
    data: TradingDataService = Depends(get_trading_data)
):
    """
    Performance summary for a period

    Query params:
        period: 7d, 30d, 90d, 1y or all
    """
    await _run(data, data.load_all_data(), "LOAD_DATA_ERROR", "/api/dashboard",
               "Error loading data. Please refresh.")

    today = data.today()
    start = period_start(period, today)
    trades = [t for t in data.trades if start is None or t.date >= start]
    active_goals = [g for g in data.goals if g.is_active]

    return {
        "period": period,
        "period_label": PERIOD_LABELS[period],
        "stats": trade_statistics(trades),
        "monthly": get_monthly_pnl(trades),
        "daily_loss": check_daily_loss(data.trades, data.portfolio, today),
        "portfolio": portfolio_summary(data.portfolio),
        "goals": [_goal_with_progress(g, today) for g in active_goals],
        "watchlist_count": len([a for a in data.assets if a.is_active]),
        "alerts": data.alerts,
    }


# ==================== BACKUP ====================

@router.get("/api/export")
async def export_backup(data: TradingDataService = Depends(get_trading_data)):
    """Download every journal record as a JSON backup file"""
    await _run(data, data.load_all_data(), "LOAD_DATA_ERROR", "/api/export",
               "Error exporting data. Please try again.")

    return Response(
        content=data.export_data(),
        media_type="application/json",
        headers={
            "Content-Disposition": f"attachment; filename={backup_filename(data.today())}"
        }
    )


@router.post("/api/import")
async def import_backup(request: Request, data: TradingDataService = Depends(get_trading_data)):
    """
    Restore a JSON backup produced by /api/export

    Records are appended; watchlist symbols already present are skipped.
    """
    body = (await request.body()).decode("utf-8", errors="replace")
    counts = await _run(data, data.import_data(body), "IMPORT_DATA_ERROR", "/api/import",
                        "Error importing data. Please try again.")

    return {"status": "success", "message": "Data imported successfully!", "imported": counts}


@router.get("/api/export/trades.csv")
async def export_trades_csv(data: TradingDataService = Depends(get_trading_data)):
    await _run(data, data.ensure_loaded('user_settings', 'portfolio', 'trades'),
               "LOAD_TRADES_ERROR", "/api/export/trades.csv", "Error exporting trades. Please try again.")

    return Response(
        content=generate_trades_csv(data.trades, data.portfolio.currency),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={trades_csv_filename(data.today())}"
        }
    )


# ==================== REFERENCE DATA ====================

@router.get("/api/reference/currencies")
async def list_currencies():
    return {
        "currencies": [
            {"code": code, "symbol": info['symbol'], "name": info['name']}
            for code, info in CURRENCIES.items()
        ]
    }


@router.get("/api/reference/timezones")
async def list_timezones():
    return {"timezones": TIMEZONES}
