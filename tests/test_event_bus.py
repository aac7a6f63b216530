"""Event bus delivery tests."""
import asyncio

from event_bus import EventBus, TRADES_UPDATED, GOALS_UPDATED


class TestEventBus:

    def test_sync_and_async_handlers_run_in_order(self):
        bus = EventBus()
        received = []

        def first(payload):
            received.append(("sync", payload))

        async def second(payload):
            received.append(("async", payload))

        bus.subscribe(TRADES_UPDATED, first)
        bus.subscribe(TRADES_UPDATED, second)

        delivered = asyncio.run(bus.publish(TRADES_UPDATED, [1, 2]))

        assert delivered == 2
        assert received == [("sync", [1, 2]), ("async", [1, 2])]

    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe(GOALS_UPDATED, broken)
        bus.subscribe(GOALS_UPDATED, received.append)

        delivered = asyncio.run(bus.publish(GOALS_UPDATED, "goals"))

        assert delivered == 1
        assert received == ["goals"]

    def test_topics_are_independent(self):
        bus = EventBus()
        received = []
        bus.subscribe(GOALS_UPDATED, received.append)

        assert asyncio.run(bus.publish(TRADES_UPDATED, "trades")) == 0
        assert received == []

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe(TRADES_UPDATED, received.append)
        bus.unsubscribe(TRADES_UPDATED, received.append)
        # Unknown handler is ignored
        bus.unsubscribe(TRADES_UPDATED, print)

        asyncio.run(bus.publish(TRADES_UPDATED, "trades"))

        assert received == []
        assert bus.handlers(TRADES_UPDATED) == []
