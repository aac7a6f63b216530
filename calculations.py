"""
Trading Journal - Derived Metrics
=================================

P&L, risk thresholds, goal progress and performance statistics computed
from stored fields. Pure functions: nothing here touches the database.

═══════════════════════════════════════════════════════════════
FORMULA DOCUMENTATION:
═══════════════════════════════════════════════════════════════

1. GROSS P&L:
   long:  (exit_price - entry_price) × position_size
   short: (entry_price - exit_price) × position_size

2. NET P&L: gross_pnl - fees

3. DAILY LOSS LIMIT:
   min(max_daily_loss, current_balance × max_daily_loss_percentage / 100)

4. POSITION SIZE LIMIT:
   min(max_position_size, current_balance × max_position_size_percentage / 100)

5. TOTAL CAPITAL: initial_capital + deposits - withdrawals

6. WIN RATE: (winning_trades / closed_trades) × 100

7. PROFIT FACTOR: SUM(winning net P&L) / ABS(SUM(losing net P&L))

8. MAX DRAWDOWN: largest peak-to-trough drop of the cumulative net P&L curve
═══════════════════════════════════════════════════════════════
"""

import datetime as dt
import math
from typing import Any, Dict, Iterable, List, Optional

from config import ZERO_DECIMAL_CURRENCIES, get_currency_symbol


def calculate_pnl(direction: str, entry_price: float, exit_price: Optional[float],
                  position_size: float) -> Optional[float]:
    """
    Gross P&L of a trade.

    Args:
        direction: 'long' or 'short'
        entry_price: Fill price on entry
        exit_price: Fill price on exit, None while the trade is open
        position_size: Units traded

    Returns:
        Gross P&L, or None when there is no exit price yet
    """
    if exit_price is None:
        return None

    if direction == 'long':
        pnl = (exit_price - entry_price) * position_size
    elif direction == 'short':
        pnl = (entry_price - exit_price) * position_size
    else:
        raise ValueError(f"Unknown trade direction: {direction!r}")

    return round(pnl, 8)


def net_pnl(pnl: Optional[float], fees: Optional[float] = None) -> float:
    """P&L after fees. Missing values count as zero."""
    return (pnl or 0.0) - (fees or 0.0)


def trade_net_pnl(trade) -> float:
    return net_pnl(trade.pnl, trade.fees)


def format_currency(amount: Optional[float], currency: str = 'USD') -> str:
    """
    Format an amount for display, e.g. ``-$1,234.50`` or ``¥12,000``.
    """
    amount = amount or 0.0
    symbol = get_currency_symbol(currency)
    decimals = 0 if currency in ZERO_DECIMAL_CURRENCIES else 2
    sign = '-' if amount < 0 else ''
    return f"{sign}{symbol}{abs(amount):,.{decimals}f}"


def parse_float(value: Any, fallback: float) -> float:
    """
    Parse a form value the way the settings forms do: blank, non-numeric,
    NaN and zero all fall back.
    """
    if value is None or isinstance(value, bool):
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if math.isnan(parsed) or parsed == 0:
        return fallback
    return parsed


# ==================== RISK THRESHOLDS ====================

def daily_loss_limit(portfolio) -> float:
    """Stricter of the absolute and percentage daily loss caps."""
    by_percentage = portfolio.current_balance * portfolio.max_daily_loss_percentage / 100
    limits = [v for v in (portfolio.max_daily_loss, by_percentage) if v > 0]
    return round(min(limits), 2) if limits else 0.0


def position_size_limit(portfolio) -> float:
    """Stricter of the absolute and percentage position size caps."""
    by_percentage = portfolio.current_balance * portfolio.max_position_size_percentage / 100
    limits = [v for v in (portfolio.max_position_size, by_percentage) if v > 0]
    return round(min(limits), 2) if limits else 0.0


def check_position_size(trade, portfolio) -> Dict[str, Any]:
    """
    Compare a trade's position value against the portfolio's position cap.

    Returns:
        Dict with position_value, limit, within_limit and
        percentage_of_balance
    """
    position_value = trade.entry_price * trade.position_size
    limit = position_size_limit(portfolio)
    balance = portfolio.current_balance

    return {
        'position_value': round(position_value, 2),
        'limit': limit,
        'within_limit': limit <= 0 or position_value <= limit,
        'percentage_of_balance': round(position_value / balance * 100, 2) if balance > 0 else None,
    }


def daily_pnl(trades: Iterable, day: dt.date) -> float:
    """Net P&L of closed trades dated ``day``"""
    return round(sum(trade_net_pnl(t) for t in trades if not t.is_open and t.date == day), 2)


def check_daily_loss(trades: Iterable, portfolio, day: dt.date) -> Dict[str, Any]:
    """
    Today's realised result against the daily loss limit.

    limit_reached is True once the day's net loss reaches the limit.
    """
    pnl_today = daily_pnl(trades, day)
    limit = daily_loss_limit(portfolio)
    loss_today = max(0.0, -pnl_today)

    return {
        'date': day.isoformat(),
        'pnl': pnl_today,
        'limit': limit,
        'remaining': round(max(0.0, limit - loss_today), 2),
        'used_percentage': round(loss_today / limit * 100, 2) if limit > 0 else 0.0,
        'limit_reached': limit > 0 and loss_today >= limit,
    }


# ==================== GOALS ====================

def goal_progress(goal, today: Optional[dt.date] = None) -> Dict[str, Any]:
    today = today or dt.date.today()

    if goal.target:
        percentage = goal.current / goal.target * 100
    else:
        percentage = 100.0 if goal.current >= 0 else 0.0
    percentage = max(0.0, min(100.0, percentage))

    achieved = percentage >= 100
    days_left = (goal.deadline - today).days

    return {
        'percentage': round(percentage, 2),
        'remaining': round(max(0.0, goal.target - goal.current), 2),
        'days_left': days_left,
        'achieved': achieved,
        'overdue': days_left < 0 and not achieved,
    }


# ==================== PORTFOLIO ====================

def portfolio_summary(portfolio) -> Dict[str, Any]:
    """Capital totals including deposits and withdrawals"""
    total_deposits = sum(d.amount for d in portfolio.deposits)
    total_withdrawals = sum(w.amount for w in portfolio.withdrawals)
    net_deposits = total_deposits - total_withdrawals
    total_capital = portfolio.initial_capital + net_deposits

    growth = portfolio.current_balance - total_capital
    growth_percentage = (growth / total_capital * 100) if total_capital > 0 else 0.0

    return {
        'total_deposits': round(total_deposits, 2),
        'total_withdrawals': round(total_withdrawals, 2),
        'net_deposits': round(net_deposits, 2),
        'total_capital': round(total_capital, 2),
        'current_balance': round(portfolio.current_balance, 2),
        'growth': round(growth, 2),
        'growth_percentage': round(growth_percentage, 2),
        'currency': portfolio.currency,
    }


def max_drawdown(pnl_values: List[float]) -> float:
    """
    Largest peak-to-trough drop of the cumulative P&L curve, in currency.

    Values must be in chronological order.
    """
    peak = 0.0
    equity = 0.0
    worst = 0.0
    for value in pnl_values:
        equity += value
        peak = max(peak, equity)
        worst = max(worst, peak - equity)
    return round(worst, 2)


def trade_statistics(trades: Iterable) -> Dict[str, Any]:
    """
    Performance statistics over closed trades.

    Profit factor is None when there are winners but no losers (infinite)
    and 0 when there are neither.
    """
    trades = list(trades)
    closed = sorted(
        (t for t in trades if not t.is_open),
        key=lambda t: (t.date, t.time),
    )
    open_count = len(trades) - len(closed)

    if not closed:
        return {
            'total_trades': 0,
            'open_trades': open_count,
            'winning_trades': 0,
            'losing_trades': 0,
            'win_rate': 0,
            'total_pnl': 0,
            'total_fees': 0,
            'gross_wins': 0,
            'gross_losses': 0,
            'profit_factor': None,
            'best_trade': 0,
            'worst_trade': 0,
            'avg_trade': 0,
            'avg_win': 0,
            'avg_loss': 0,
            'max_drawdown': 0,
        }

    pnl_values = [trade_net_pnl(t) for t in closed]
    winning_pnl = [p for p in pnl_values if p > 0]
    losing_pnl = [p for p in pnl_values if p < 0]

    gross_wins = sum(winning_pnl)
    gross_losses = abs(sum(losing_pnl))

    if gross_losses == 0 and gross_wins > 0:
        profit_factor = None  # Infinite
    elif gross_losses == 0:
        profit_factor = 0
    else:
        profit_factor = round(gross_wins / gross_losses, 2)

    return {
        'total_trades': len(closed),
        'open_trades': open_count,
        'winning_trades': len(winning_pnl),
        'losing_trades': len(losing_pnl),
        'win_rate': round(len(winning_pnl) / len(closed) * 100, 2),
        'total_pnl': round(sum(pnl_values), 2),
        'total_fees': round(sum(t.fees or 0 for t in closed), 2),
        'gross_wins': round(gross_wins, 2),
        'gross_losses': round(gross_losses, 2),
        'profit_factor': profit_factor,
        'best_trade': round(max(pnl_values), 2),
        'worst_trade': round(min(pnl_values), 2),
        'avg_trade': round(sum(pnl_values) / len(pnl_values), 2),
        'avg_win': round(gross_wins / len(winning_pnl), 2) if winning_pnl else 0,
        'avg_loss': round(-gross_losses / len(losing_pnl), 2) if losing_pnl else 0,
        'max_drawdown': max_drawdown(pnl_values),
    }


def period_start(period: str, today: dt.date) -> Optional[dt.date]:
    """
    First day included in a dashboard period. None means all time.
    """
    days = {'7d': 7, '30d': 30, '90d': 90, '1y': 365}.get(period)
    if days is None:
        return None
    return today - dt.timedelta(days=days)


PERIOD_LABELS = {
    '7d': 'Last 7 Days',
    '30d': 'Last 30 Days',
    '90d': 'Last 90 Days',
    '1y': 'Last 1 Year',
    'all': 'All Time',
}
