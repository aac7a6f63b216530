"""
Data Layer Tests
================

TradingDataService against in-memory SQLite: row mapping, ownership,
balance updates on closed trades, change events and backups.
"""
import asyncio
import json

import pytest

from event_bus import PORTFOLIO_UPDATED, TRADES_UPDATED
from tests.conftest import make_user
from trading_data import NotFoundError, TradingDataService


def run(coro):
    return asyncio.run(coro)


def trade_data(**overrides):
    data = {
        "date": "2026-01-15",
        "time": "09:45",
        "asset": "aapl",
        "direction": "long",
        "entryPrice": 100.0,
        "positionSize": 10,
        "strategy": "Breakout",
    }
    data.update(overrides)
    return data


class TestLoading:

    def test_signed_out_state_is_defaults(self, db):
        service = TradingDataService(db, None)
        run(service.load_all_data())

        assert service.loading is False
        assert service.trades == []
        assert service.portfolio.current_balance == 10000.0
        assert service.user_settings.theme == 'light'

    def test_mutations_without_user_do_nothing(self, db):
        service = TradingDataService(db, None)
        assert run(service.add_trade(trade_data())) is None
        assert run(service.add_goal({"type": "profit", "target": 1, "deadline": "2026-12-31"})) is None

    def test_load_all_publishes_events(self, service):
        received = []
        service.events.subscribe(TRADES_UPDATED, lambda trades: received.append(('trades', len(trades))))
        service.events.subscribe(PORTFOLIO_UPDATED, lambda p: received.append(('portfolio', p.currency)))

        run(service.load_all_data())

        assert ('trades', 0) in received
        assert ('portfolio', 'USD') in received
        assert service.loading is False


class TestTrades:

    def test_add_open_trade(self, service):
        created = run(service.add_trade(trade_data()))

        assert created.asset == "AAPL"
        assert created.is_open is True
        assert created.pnl is None
        assert [t.id for t in service.trades] == [created.id]
        assert service.portfolio.current_balance == 10000.0

    def test_closed_trade_moves_balance(self, service):
        created = run(service.add_trade(trade_data(exitPrice=110.0, isOpen=False, fees=5.0)))

        assert created.pnl == 100.0
        assert service.portfolio.current_balance == 10095.0

        # Persisted for the next request
        fresh = TradingDataService(service.db, service.user)
        run(fresh.load_portfolio())
        assert fresh.portfolio.current_balance == 10095.0

    def test_closing_an_open_trade(self, service):
        created = run(service.add_trade(trade_data()))
        updated = run(service.update_trade(created.id, {"exitPrice": 95.0, "isOpen": False}))

        assert updated.pnl == -50.0
        assert updated.is_open is False
        assert service.portfolio.current_balance == 9950.0

    def test_editing_a_closed_trade_keeps_balance(self, service):
        created = run(service.add_trade(trade_data(exitPrice=110.0, isOpen=False)))
        run(service.update_trade(created.id, {"strategy": "Pullback"}))

        assert service.trades[0].strategy == "Pullback"
        assert service.portfolio.current_balance == 10100.0

    def test_delete_trade(self, service):
        created = run(service.add_trade(trade_data()))
        run(service.delete_trade(created.id))
        assert service.trades == []

    def test_missing_trade(self, service):
        with pytest.raises(NotFoundError):
            run(service.update_trade("missing", {"strategy": "x"}))
        with pytest.raises(NotFoundError):
            run(service.delete_trade("missing"))

    def test_other_users_trades_are_invisible(self, db, service):
        created = run(service.add_trade(trade_data()))

        other = TradingDataService(db, make_user(db, email="other@example.com"))
        run(other.load_trades())

        assert other.trades == []
        with pytest.raises(NotFoundError):
            run(other.delete_trade(created.id))

    def test_daily_loss_alert(self, service):
        today = service.today().isoformat()
        run(service.add_trade(trade_data(date=today, exitPrice=40.0, isOpen=False)))

        assert any(a.startswith("Daily loss limit reached") for a in service.alerts)

    def test_daily_loss_alert_respects_notifications(self, service):
        run(service.set_user_settings({"notifications": {"dailyLossLimit": False}}))
        today = service.today().isoformat()
        run(service.add_trade(trade_data(date=today, exitPrice=40.0, isOpen=False)))

        assert service.alerts == []


class TestPortfolio:

    def test_set_portfolio_publishes(self, service):
        received = []
        service.events.subscribe(PORTFOLIO_UPDATED, received.append)

        run(service.set_portfolio({"currency": "eur", "maxDailyLoss": 250}))

        assert service.portfolio.currency == "EUR"
        assert service.portfolio.max_daily_loss == 250.0
        assert received[-1].currency == "EUR"

    def test_invalid_currency(self, service):
        with pytest.raises(ValueError):
            run(service.set_portfolio({"currency": "XYZ"}))

    def test_transactions_do_not_change_balance(self, service):
        run(service.add_transaction({"date": "2026-01-02", "amount": 500, "type": "deposit"}))
        run(service.add_transaction({"date": "2026-01-03", "amount": 200, "type": "withdrawal"}))

        assert len(service.portfolio.deposits) == 1
        assert len(service.portfolio.withdrawals) == 1
        assert service.portfolio.current_balance == 10000.0


class TestGoalsAndAssets:

    def test_goal_lifecycle(self, service):
        goal = run(service.add_goal({"type": "profit", "target": 1000, "deadline": "2026-12-31",
                                     "description": "First 1k"}))
        assert service.goals[0].id == goal.id
        assert service.alerts == []

        run(service.update_goal(goal.id, {"current": 1000}))
        assert service.goals[0].current == 1000.0
        assert "Goal achieved: First 1k" in service.alerts

        run(service.delete_goal(goal.id))
        assert service.goals == []

    def test_asset_lifecycle(self, service):
        asset = run(service.add_asset({"symbol": "btc-usd", "name": "Bitcoin", "category": "crypto"}))
        assert asset.symbol == "BTC-USD"

        run(service.update_asset(asset.id, {"isActive": False}))
        assert service.assets[0].is_active is False

        run(service.delete_asset(asset.id))
        assert service.assets == []


class TestUserSettings:

    def test_nested_sections_merge(self, service):
        run(service.set_user_settings({"theme": "dark", "notifications": {"tradeReminders": True}}))

        fresh = TradingDataService(service.db, service.user)
        run(fresh.load_user_settings())

        assert fresh.user_settings.theme == "dark"
        assert fresh.user_settings.notifications.trade_reminders is True
        assert fresh.user_settings.notifications.daily_loss_limit is True

    def test_invalid_theme(self, service):
        with pytest.raises(ValueError):
            run(service.set_user_settings({"theme": "neon"}))


class TestBackup:

    def test_export_then_import_into_another_account(self, db, service):
        run(service.add_trade(trade_data(exitPrice=110.0, isOpen=False)))
        run(service.add_goal({"type": "profit", "target": 500, "deadline": "2026-12-31"}))
        run(service.add_asset({"symbol": "AAPL", "name": "Apple", "category": "stocks"}))
        run(service.add_transaction({"date": "2026-01-02", "amount": 500, "type": "deposit"}))
        run(service.set_user_settings({"theme": "dark"}))
        run(service.load_all_data())

        backup = service.export_data()
        payload = json.loads(backup)
        assert payload["portfolio"]["currentBalance"] == 10100.0
        assert "exportDate" in payload

        other = TradingDataService(db, make_user(db, email="other@example.com"))
        counts = run(other.import_data(backup))

        assert counts == {"trades": 1, "goals": 1, "assets": 1, "transactions": 1}
        assert len(other.trades) == 1
        assert other.portfolio.current_balance == 10100.0
        assert other.user_settings.theme == "dark"

        # Watchlist symbols already present are skipped
        assert run(other.import_data(backup))["assets"] == 0

    def test_invalid_json(self, service):
        with pytest.raises(ValueError):
            run(service.import_data("not json"))
        with pytest.raises(ValueError):
            run(service.import_data("[]"))

    def test_invalid_record_rolls_back(self, service):
        bad = json.dumps({"trades": [trade_data(), trade_data(entryPrice=-1)]})
        with pytest.raises(ValueError):
            run(service.import_data(bad))

        run(service.load_trades())
        assert service.trades == []

    def test_invalid_settings_write_nothing(self, service):
        run(service.load_all_data())

        bad_currency = json.dumps({"trades": [trade_data()], "portfolio": {"currency": "XYZ"}})
        with pytest.raises(ValueError):
            run(service.import_data(bad_currency))

        bad_theme = json.dumps({
            "trades": [trade_data()],
            "portfolio": {"currentBalance": 5},
            "userSettings": {"theme": "neon"},
        })
        with pytest.raises(ValueError):
            run(service.import_data(bad_theme))

        run(service.load_all_data())
        assert service.trades == []
        assert service.portfolio.current_balance == 10000.0
        assert service.portfolio.currency == "USD"

    @pytest.mark.parametrize("backup", [
        {"portfolio": [1]},
        {"trades": {"asset": "AAPL"}},
        {"goals": "none"},
        {"assets": 3},
        {"userSettings": ["dark"]},
        {"portfolio": {"deposits": {"amount": 5}}},
        {"portfolio": {"withdrawals": "all"}},
    ])
    def test_malformed_sections(self, service, backup):
        with pytest.raises(ValueError, match="Invalid backup file"):
            run(service.import_data(json.dumps(backup)))
