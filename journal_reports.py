"""
Trading Journal - Reports & Exports
===================================
CSV exports and period breakdowns built from loaded journal state.

Features:
- Monthly P&L breakdown (closed trades only)
- Trade log CSV export (spreadsheet-compatible)
- Backup file naming

Author: Trading Journal Team
"""

import csv
import io
from datetime import date
from typing import Dict, Iterable, List

from calculations import format_currency, trade_net_pnl

TRADE_CSV_COLUMNS = [
    'Date',
    'Time',
    'Asset',
    'Direction',
    'Entry Price',
    'Exit Price',
    'Position Size',
    'Status',
    'P&L',
    'Fees',
    'Net P&L',
    'Strategy',
    'Tags',
    'Emotional State',
]


def backup_filename(day: date) -> str:
    return f"trading-journal-backup-{day.isoformat()}.json"


def trades_csv_filename(day: date) -> str:
    return f"trading-journal-trades-{day.isoformat()}.csv"


def get_monthly_pnl(trades: Iterable) -> List[Dict]:
    """
    Net P&L per calendar month over closed trades, oldest month first
    """
    months: Dict[str, Dict] = {}
    for trade in trades:
        if trade.is_open:
            continue
        key = trade.date.strftime('%Y-%m')
        month = months.setdefault(key, {
            'month': key,
            'month_name': trade.date.strftime('%B %Y'),
            'trades': 0,
            'wins': 0,
            'pnl': 0.0,
            'fees': 0.0,
        })
        pnl = trade_net_pnl(trade)
        month['trades'] += 1
        month['wins'] += 1 if pnl > 0 else 0
        month['pnl'] += pnl
        month['fees'] += trade.fees or 0.0

    breakdown = []
    for key in sorted(months):
        month = months[key]
        month['pnl'] = round(month['pnl'], 2)
        month['fees'] = round(month['fees'], 2)
        month['win_rate'] = round(month['wins'] / month['trades'] * 100, 2)
        breakdown.append(month)
    return breakdown


def _number(value) -> str:
    return '' if value is None else f"{value:g}"


def generate_trades_csv(trades: Iterable, currency: str = 'USD') -> str:
    """Generate CSV of the trade log, oldest trade first, with a summary row"""
    trades = sorted(trades, key=lambda t: (t.date, t.time))

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(TRADE_CSV_COLUMNS)

    total = 0.0
    closed = 0
    for trade in trades:
        net = None if trade.is_open else trade_net_pnl(trade)
        if net is not None:
            total += net
            closed += 1
        writer.writerow([
            trade.date.isoformat(),
            trade.time,
            trade.asset,
            trade.direction,
            _number(trade.entry_price),
            _number(trade.exit_price),
            _number(trade.position_size),
            'open' if trade.is_open else 'closed',
            '' if trade.pnl is None else f"{trade.pnl:.2f}",
            '' if trade.fees is None else f"{trade.fees:.2f}",
            '' if net is None else f"{net:.2f}",
            trade.strategy,
            ';'.join(trade.tags or []),
            trade.emotional_state or '',
        ])

    # Summary
    writer.writerow([])
    writer.writerow([
        'TOTAL',
        '',
        f"{len(trades)} trades, {closed} closed",
        '', '', '', '', '', '', '',
        f"{total:.2f}",
        format_currency(total, currency),
        '',
        '',
    ])

    return output.getvalue()
