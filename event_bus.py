"""
Change notifications for journal data.

A small pub/sub: the data layer publishes the fresh collection after every
reload and subscribers (alert checks, loggers, pushers) react to it.
Handlers may be plain functions or coroutines; they run in subscription
order and a failing handler never stops the others.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Union

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[Awaitable[None], None]]

TRADES_UPDATED = "trades_updated"
PORTFOLIO_UPDATED = "portfolio_updated"
GOALS_UPDATED = "goals_updated"
ASSETS_UPDATED = "assets_updated"


class EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, fn: Handler) -> None:
        self._subs[topic].append(fn)

    def unsubscribe(self, topic: str, fn: Handler) -> None:
        if fn in self._subs.get(topic, []):
            self._subs[topic].remove(fn)

    def handlers(self, topic: str) -> List[Handler]:
        return list(self._subs.get(topic, []))

    async def publish(self, topic: str, payload: Any) -> int:
        """
        Deliver payload to every handler of topic.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for fn in self.handlers(topic):
            try:
                res = fn(payload)
                if asyncio.iscoroutine(res):
                    await res
                delivered += 1
            except Exception as exc:
                logger.error(f"❌ Event handler {getattr(fn, '__name__', fn)!r} failed on {topic}: {exc}")
        return delivered
