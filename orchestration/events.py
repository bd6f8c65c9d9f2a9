import inspect
import logging
from typing import Any, Callable, List

from strategy.alerts import Alert


logger = logging.getLogger(__name__)

Subscriber = Callable[[Alert], Any]


class AlertUpdatePublisher:
    """Fan-out of alert changes to UI-facing subscribers (websocket, webhook)."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def publish(self, alert: Alert) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(alert.copy())
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Alert update subscriber failed for %s", alert.id)
