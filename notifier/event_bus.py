"""
In-process stand-in for the database trigger framework.

In production, Cloud Functions watches the Realtime Database and invokes the
handler. Locally (tests, the emulator API) this bus plays that role: writes
are published as DatabaseEvents and delivered to handlers subscribed to a
matching reference.

Design decisions:
- Synchronous delivery, handlers called in registration order
- Reference-pattern subscriptions, same wildcard syntax as the trigger
- The host retry policy is an explicit collaborator (RetryPolicy), not
  something the handler knows about
- A failed invocation is logged and recorded, never hidden from the caller
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from notifier.events import DatabaseEvent, match_reference

logger = logging.getLogger("event_bus")

# Handlers receive the event and may return a result (e.g. an outcome)
EventHandler = Callable[[DatabaseEvent], Any]


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times the host runs a failing invocation.

    Cloud Functions retries background functions only when retry is enabled
    on deployment; the default here matches that (one attempt).
    """
    max_attempts: int = 1

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass
class Invocation:
    """Record of one handler run for one event."""
    event: DatabaseEvent
    handler_name: str
    attempts: int = 0
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class EventBus:
    """
    Simple in-memory trigger dispatcher.

    Example usage:
        bus = EventBus()
        bus.subscribe(PDF_PATH_REFERENCE, handle_pdf_path_created)
        bus.publish("/teams/t1/players/p1/pdfPath", "waivers/t1/p1.pdf")
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        self.retry_policy = retry_policy or RetryPolicy()
        # reference pattern -> handlers
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._event_log: list[DatabaseEvent] = []

    def subscribe(self, reference: str, handler: EventHandler) -> None:
        """Register a handler for value-created events under a reference pattern."""
        self._subscribers[reference].append(handler)
        logger.debug(f"Subscribed handler to '{reference}'")

    def unsubscribe(self, reference: str, handler: EventHandler) -> bool:
        """
        Remove a handler.

        Returns:
            True if the handler was found and removed, False otherwise
        """
        try:
            self._subscribers[reference].remove(handler)
            return True
        except ValueError:
            return False

    def publish(self, path: str, value: Any) -> list[Invocation]:
        """
        Deliver a value-created event to every matching handler.

        Args:
            path: Concrete database path that was created
            value: The new value

        Returns:
            One Invocation per handler called
        """
        invocations = []
        for reference, handlers in list(self._subscribers.items()):
            params = match_reference(reference, path)
            if params is None:
                continue
            for handler in list(handlers):
                event = DatabaseEvent(reference=reference, path=path, params=params, data=value)
                self._event_log.append(event)
                logger.info(f"Publishing: {event}")
                invocations.append(self._invoke(handler, event))

        if not invocations:
            logger.debug(f"No handlers for '{path}'")
        return invocations

    def _invoke(self, handler: EventHandler, event: DatabaseEvent) -> Invocation:
        invocation = Invocation(event=event, handler_name=getattr(handler, "__name__", repr(handler)))
        for attempt in range(1, self.retry_policy.max_attempts + 1):
            invocation.attempts = attempt
            try:
                invocation.result = handler(event)
                invocation.error = None
                return invocation
            except Exception as e:
                invocation.error = e
                logger.error(
                    f"Handler {invocation.handler_name} failed for {event} "
                    f"(attempt {attempt}/{self.retry_policy.max_attempts}): {e}"
                )
        return invocation

    def get_subscriber_count(self, reference: str) -> int:
        return len(self._subscribers.get(reference, []))

    def get_event_log(self) -> list[DatabaseEvent]:
        return self._event_log.copy()

    def clear_event_log(self) -> None:
        self._event_log.clear()
