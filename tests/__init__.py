"""
Trading Journal Test Suite
==========================

Run all tests:
    pytest tests/ -v

Run specific test file:
    pytest tests/test_trading_data.py -v

Run specific test:
    pytest tests/test_trading_data.py::TestTrades::test_closed_trade_moves_balance -v

Tests run against in-memory SQLite; no external services are contacted.
"""
