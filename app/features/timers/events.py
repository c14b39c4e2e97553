"""Completion event channel shared by countdowns and alert consumers"""

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Union

from app.features.timers.domain import Timer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimerCompleted:
    """Published once when a countdown reaches zero"""
    timer: Timer


TimerCompletedHandler = Callable[[TimerCompleted], Union[None, Awaitable[None]]]


class TimerEventChannel:
    """
    In-process publish/subscribe channel for timer completion.

    Created once per application (or per test) and passed to every producer
    and consumer explicitly. Handlers may be plain functions or coroutines;
    a failing handler is logged and does not stop the others.
    """

    def __init__(self):
        self._handlers: List[TimerCompletedHandler] = []

    def subscribe(self, handler: TimerCompletedHandler) -> Callable[[], None]:
        """Register a handler and return a function that removes it"""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, event: TimerCompleted) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Timer completion handler failed for timer {event.timer.id}: {e}")
