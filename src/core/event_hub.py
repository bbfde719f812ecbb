import asyncio
import logging
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Topics published by the sensor engine
READING_CREATED = "reading_created"
DEVICE_CHANGED = "device_changed"
STATE_CHANGED = "state_changed"
FAULT_RAISED = "fault_raised"


class EventHub:
    """
    Topic based publish/subscribe.
    Once bound to a loop, handlers run on that loop after the publisher returns.
    Without a loop, synchronous handlers run inline, or when the outermost
    ``batch()`` exits if one is open.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._batch_depth = 0
        self._pending: Deque[Tuple[str, Any]] = deque()

    def init(self, loop: Optional[asyncio.AbstractEventLoop]):
        self._loop = loop

    def subscribe(self, topic: str, handler: Callable):
        handlers = self._subscribers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)
        logger.debug(f"Subscribed to {topic}")

    def unsubscribe(self, topic: str, handler: Callable):
        if handler in self._subscribers.get(topic, []):
            self._subscribers[topic].remove(handler)
            logger.debug(f"Unsubscribed from {topic}")

    def unsubscribe_all(self):
        self._subscribers.clear()

    @contextmanager
    def batch(self):
        """Hold every publication until the outermost batch exits, then deliver them in order."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                while self._pending:
                    self._deliver(*self._pending.popleft())

    def publish(self, topic: str, message: Any):
        if self._batch_depth:
            self._pending.append((topic, message))
            return
        self._deliver(topic, message)

    def _deliver(self, topic: str, message: Any):
        # Copy so handlers may unsubscribe while we iterate
        for handler in self._subscribers.get(topic, [])[:]:
            try:
                self._dispatch(handler, topic, message)
            except Exception as e:
                logger.error(f"Error handling message on topic {topic}: {e}")

    def _dispatch(self, handler: Callable, topic: str, message: Any):
        is_async = asyncio.iscoroutinefunction(handler)
        if self._loop is None or self._loop.is_closed():
            if is_async:
                logger.warning(f"EventHub loop not initialized. Cannot dispatch async handler for {topic}")
            else:
                handler(topic, message)
            return

        try:
            current_loop = asyncio.get_running_loop()
        except RuntimeError:
            current_loop = None

        if current_loop is self._loop:
            if is_async:
                self._loop.create_task(handler(topic, message))
            else:
                self._loop.call_soon(handler, topic, message)
        elif is_async:
            asyncio.run_coroutine_threadsafe(handler(topic, message), self._loop)
        else:
            self._loop.call_soon_threadsafe(handler, topic, message)
