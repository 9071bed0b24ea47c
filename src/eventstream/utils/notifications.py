"""
Notification system for the event stream client.

This module provides a small publish/subscribe registry with:
- Listeners keyed by notification name, fanned out in registration order
- Sync and async handlers
- One-shot subscriptions
- Safe emission that keeps listener failures away from the caller
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
import inspect

from .logging import get_logger
from .errors import ListenerError


logger = get_logger("eventstream.notifications")

ERROR_EVENT = "error"


@dataclass(eq=False)
class Subscription:
    """A registered listener."""
    handler: Callable[..., Any]
    once: bool = False


class EventEmitter:
    """Listener registry with ordered fan-out."""

    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._delivering_error = False

    def on(self, event: str, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Register a handler for a notification name."""
        self._subscriptions.setdefault(event, []).append(Subscription(handler))
        return handler

    def once(self, event: str, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Register a handler that is removed after its first call."""
        self._subscriptions.setdefault(event, []).append(Subscription(handler, once=True))
        return handler

    def off(self, event: str, handler: Callable[..., Any]) -> bool:
        """
        Remove the first registration of a handler.

        Returns:
            True if removed, False if not found
        """
        subscriptions = self._subscriptions.get(event, [])
        for i, subscription in enumerate(subscriptions):
            if subscription.handler == handler:
                del subscriptions[i]
                if not subscriptions:
                    del self._subscriptions[event]
                return True
        return False

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        """Remove every handler, or every handler of one notification."""
        if event is None:
            self._subscriptions.clear()
        else:
            self._subscriptions.pop(event, None)

    def listeners(self, event: str) -> List[Callable[..., Any]]:
        return [s.handler for s in self._subscriptions.get(event, [])]

    def listener_count(self, event: str) -> int:
        return len(self._subscriptions.get(event, []))

    async def emit(self, event: str, *args: Any) -> bool:
        """
        Call every handler of a notification in registration order.

        Coroutine handlers are awaited before the next handler runs. The
        first handler failure propagates to the caller.

        Returns:
            True if the notification had listeners
        """
        # Snapshot: handlers may subscribe, unsubscribe or abort mid-delivery
        subscriptions = list(self._subscriptions.get(event, []))

        for subscription in subscriptions:
            if subscription.once:
                self._discard(event, subscription)

            result = subscription.handler(*args)
            if inspect.isawaitable(result):
                await result

        return bool(subscriptions)

    async def emit_safe(self, event: str, *args: Any) -> None:
        """
        Deliver a notification without letting a handler failure escape.

        A failing handler is reported as an ``error`` notification carrying a
        ListenerError. Failures raised while an ``error`` notification is
        being delivered are dropped, so a broken error handler cannot loop.
        """
        is_error = event == ERROR_EVENT
        if is_error:
            previous, self._delivering_error = self._delivering_error, True

        try:
            await self.emit(event, *args)
        except Exception as e:
            if is_error or self._delivering_error:
                logger.warning(
                    "error_listener_failed",
                    notification=event,
                    error=str(e),
                    error_type=type(e).__name__
                )
                return

            logger.debug("listener_failed", notification=event, error_type=type(e).__name__)
            await self.emit_safe(ERROR_EVENT, ListenerError(event, e))
        finally:
            if is_error:
                self._delivering_error = previous

    def _discard(self, event: str, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(event)
        if subscriptions and subscription in subscriptions:
            subscriptions.remove(subscription)
            if not subscriptions:
                del self._subscriptions[event]


__all__ = [
    'EventEmitter',
    'Subscription',
    'ERROR_EVENT',
]
