"""
Derived Metric Tests
====================

P&L, risk limits, goal progress and statistics.
"""
import datetime as dt
from types import SimpleNamespace

import pytest

from calculations import (
    calculate_pnl, check_daily_loss, check_position_size, daily_loss_limit, format_currency,
    goal_progress, max_drawdown, net_pnl, parse_float, period_start, portfolio_summary,
    position_size_limit, trade_statistics,
)
from journal_schemas import PortfolioSettings, Transaction
from trading_data import default_portfolio

DAY = dt.date(2026, 3, 2)


def trade(pnl=None, fees=None, is_open=False, day=DAY, time="10:00", entry=100.0, size=1.0):
    return SimpleNamespace(
        pnl=pnl, fees=fees, is_open=is_open, date=day, time=time,
        entry_price=entry, position_size=size,
    )


class TestPnl:

    def test_long_profit(self):
        assert calculate_pnl('long', 100.0, 110.0, 10) == 100.0

    def test_short_profit(self):
        assert calculate_pnl('short', 100.0, 90.0, 5) == 50.0

    def test_short_loss(self):
        assert calculate_pnl('short', 100.0, 104.0, 5) == -20.0

    def test_open_trade_has_no_pnl(self):
        assert calculate_pnl('long', 100.0, None, 10) is None

    def test_unknown_direction(self):
        with pytest.raises(ValueError):
            calculate_pnl('sideways', 100.0, 110.0, 1)

    def test_net_pnl_subtracts_fees(self):
        assert net_pnl(100.0, 2.5) == 97.5
        assert net_pnl(None, 3.0) == -3.0
        assert net_pnl(50.0) == 50.0


class TestFormatting:

    def test_usd(self):
        assert format_currency(1234.5) == "$1,234.50"

    def test_negative(self):
        assert format_currency(-42, 'EUR') == "-€42.00"

    def test_yen_has_no_decimals(self):
        assert format_currency(12000, 'JPY') == "¥12,000"

    def test_none_is_zero(self):
        assert format_currency(None) == "$0.00"

    @pytest.mark.parametrize("value,expected", [
        ("12.5", 12.5),
        (7, 7.0),
        ("", 3.0),
        (None, 3.0),
        ("abc", 3.0),
        ("0", 3.0),
        ("nan", 3.0),
    ])
    def test_parse_float(self, value, expected):
        assert parse_float(value, 3.0) == expected


class TestRiskLimits:

    def test_daily_loss_limit_takes_stricter_cap(self):
        portfolio = default_portfolio().model_copy(update={'current_balance': 4000.0})
        # 5% of 4000 = 200 < 500
        assert daily_loss_limit(portfolio) == 200.0

    def test_zero_caps_are_ignored(self):
        portfolio = default_portfolio().model_copy(update={'max_daily_loss': 0.0})
        assert daily_loss_limit(portfolio) == 500.0

        portfolio = portfolio.model_copy(update={'max_daily_loss_percentage': 0.0})
        assert daily_loss_limit(portfolio) == 0.0

    def test_position_size_limit(self):
        portfolio = default_portfolio().model_copy(update={'current_balance': 5000.0})
        # min(1000, 10% of 5000)
        assert position_size_limit(portfolio) == 500.0

    def test_check_position_size(self):
        portfolio = default_portfolio()
        status = check_position_size(trade(entry=50.0, size=30), portfolio)

        assert status['position_value'] == 1500.0
        assert status['limit'] == 1000.0
        assert status['within_limit'] is False
        assert status['percentage_of_balance'] == 15.0

    def test_daily_loss_counts_only_closed_trades_of_the_day(self):
        portfolio = default_portfolio()
        trades = [
            trade(pnl=-300.0, fees=10.0),
            trade(pnl=-250.0),
            trade(pnl=-1000.0, is_open=True),
            trade(pnl=-1000.0, day=DAY - dt.timedelta(days=1)),
        ]
        status = check_daily_loss(trades, portfolio, DAY)

        assert status['pnl'] == -560.0
        assert status['limit'] == 500.0
        assert status['remaining'] == 0.0
        assert status['limit_reached'] is True

    def test_daily_loss_under_limit(self):
        status = check_daily_loss([trade(pnl=-100.0)], default_portfolio(), DAY)

        assert status['limit_reached'] is False
        assert status['remaining'] == 400.0
        assert status['used_percentage'] == 20.0


class TestGoals:

    def goal(self, target, current, deadline):
        return SimpleNamespace(target=target, current=current, deadline=deadline)

    def test_progress_is_capped(self):
        progress = goal_progress(self.goal(1000, 1500, DAY), DAY)
        assert progress['percentage'] == 100.0
        assert progress['achieved'] is True
        assert progress['remaining'] == 0.0

    def test_partial_progress(self):
        progress = goal_progress(self.goal(1000, 250, DAY + dt.timedelta(days=10)), DAY)
        assert progress['percentage'] == 25.0
        assert progress['days_left'] == 10
        assert progress['overdue'] is False

    def test_overdue(self):
        progress = goal_progress(self.goal(1000, 250, DAY - dt.timedelta(days=1)), DAY)
        assert progress['overdue'] is True

    def test_negative_progress_floors_at_zero(self):
        assert goal_progress(self.goal(1000, -200, DAY), DAY)['percentage'] == 0.0


class TestPortfolioSummary:

    def test_totals_include_transactions(self):
        portfolio = PortfolioSettings(
            **{**default_portfolio().model_dump(exclude={'deposits', 'withdrawals'}),
               'current_balance': 12000.0},
            deposits=[Transaction(id='d1', date=DAY, amount=2000.0, type='deposit')],
            withdrawals=[Transaction(id='w1', date=DAY, amount=500.0, type='withdrawal')],
        )
        summary = portfolio_summary(portfolio)

        assert summary['total_deposits'] == 2000.0
        assert summary['total_withdrawals'] == 500.0
        assert summary['total_capital'] == 11500.0
        assert summary['growth'] == 500.0
        assert summary['growth_percentage'] == pytest.approx(4.35, abs=0.01)


class TestStatistics:

    def test_empty(self):
        stats = trade_statistics([trade(is_open=True)])
        assert stats['total_trades'] == 0
        assert stats['open_trades'] == 1
        assert stats['profit_factor'] is None

    def test_mixed_results(self):
        trades = [
            trade(pnl=200.0, fees=10.0, time="09:00"),
            trade(pnl=-100.0, time="10:00"),
            trade(pnl=50.0, time="11:00"),
            trade(pnl=None, is_open=True),
        ]
        stats = trade_statistics(trades)

        assert stats['total_trades'] == 3
        assert stats['open_trades'] == 1
        assert stats['winning_trades'] == 2
        assert stats['losing_trades'] == 1
        assert stats['win_rate'] == pytest.approx(66.67)
        assert stats['total_pnl'] == 140.0
        assert stats['total_fees'] == 10.0
        assert stats['profit_factor'] == 2.4
        assert stats['best_trade'] == 190.0
        assert stats['worst_trade'] == -100.0
        assert stats['max_drawdown'] == 100.0

    def test_only_winners_has_infinite_profit_factor(self):
        assert trade_statistics([trade(pnl=10.0)])['profit_factor'] is None

    def test_only_scratch_trades(self):
        assert trade_statistics([trade(pnl=0.0)])['profit_factor'] == 0

    def test_max_drawdown(self):
        assert max_drawdown([100, -50, -80, 200, -30]) == 130.0
        assert max_drawdown([]) == 0.0


class TestPeriods:

    def test_period_start(self):
        assert period_start('7d', DAY) == DAY - dt.timedelta(days=7)
        assert period_start('1y', DAY) == DAY - dt.timedelta(days=365)
        assert period_start('all', DAY) is None
