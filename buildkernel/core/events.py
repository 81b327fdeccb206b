"""
Event bus for the buildkernel.

This module provides the in-process publish/subscribe channel over which the
orchestrator announces lifecycle facts to feature modules, including:
- Persistent and one-shot subscriptions tagged with their owning module
- Sequential delivery with per-subscriber fault isolation
- An append-only history of every emission
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Callable, Union, Deque
from collections.abc import Mapping
import inspect
import itertools
import logging
import time

from pydantic import ValidationError

from buildkernel.core.interfaces.events import EventName, EventPayload, EVENT_PAYLOAD_MODELS, to_event_name
from buildkernel.core.logging import logging_context

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Any]
ErrorCallback = Callable[[EventName, Exception, str], None]


class EventPayloadError(ValueError):
    """Exception raised when a payload does not match its event's schema."""

    def __init__(self, event_name: EventName, message: str):
        """Initialize the error.

        Args:
            event_name: The event the payload was emitted for
            message: A description of the mismatch
        """
        self.event_name = event_name
        super().__init__(f"Invalid payload for event '{event_name.value}': {message}")


@dataclass
class Subscription:
    """A handler subscribed to one event."""

    id: int
    event_name: EventName
    handler: EventHandler
    module_name: str
    once: bool = False
    active: bool = True


@dataclass(frozen=True)
class HistoryEntry:
    """Record of one emission."""

    event_name: EventName
    payload: Any
    subscriber_count: int
    timestamp: float = field(default_factory=time.time)


class EventBus:
    """Typed publish/subscribe event bus with history."""

    def __init__(
        self,
        enable_history: bool = True,
        max_history_size: Optional[int] = None,
        on_error: Optional[ErrorCallback] = None,
        validate_payloads: bool = True
    ):
        """Initialize the event bus.

        Args:
            enable_history: Whether to record emissions
            max_history_size: Maximum number of entries to keep, or None for no limit
            on_error: Callback invoked with (event_name, error, module_name) when a handler fails
            validate_payloads: Whether to validate mapping payloads against the event catalog
        """
        if max_history_size is not None and max_history_size < 1:
            raise ValueError("max_history_size must be a positive integer or None")

        self.enable_history = enable_history
        self.max_history_size = max_history_size
        self.on_error = on_error
        self.validate_payloads = validate_payloads

        self._subscriptions: Dict[EventName, List[Subscription]] = {}
        self._history: Deque[HistoryEntry] = deque(maxlen=max_history_size)
        self._ids = itertools.count(1)

    def on(
        self,
        event_name: Union[str, EventName],
        handler: EventHandler,
        module_name: str
    ) -> Callable[[], None]:
        """Subscribe a handler to an event.

        Args:
            event_name: The event to subscribe to
            handler: Function called with the payload; may be a coroutine function
            module_name: Name of the module that owns the subscription

        Returns:
            A function that removes this subscription when called
        """
        return self._subscribe(event_name, handler, module_name, once=False)

    def once(
        self,
        event_name: Union[str, EventName],
        handler: EventHandler,
        module_name: str
    ) -> Callable[[], None]:
        """Subscribe a handler to the next emission of an event only.

        Args:
            event_name: The event to subscribe to
            handler: Function called with the payload; may be a coroutine function
            module_name: Name of the module that owns the subscription

        Returns:
            A function that removes this subscription when called
        """
        return self._subscribe(event_name, handler, module_name, once=True)

    def _subscribe(
        self,
        event_name: Union[str, EventName],
        handler: EventHandler,
        module_name: str,
        once: bool
    ) -> Callable[[], None]:
        name = to_event_name(event_name)
        subscription = Subscription(
            id=next(self._ids),
            event_name=name,
            handler=handler,
            module_name=module_name,
            once=once
        )
        self._subscriptions.setdefault(name, []).append(subscription)

        logger.debug(f"Module '{module_name}' subscribed to {name.value} (once={once})")

        def unsubscribe() -> None:
            self._remove(subscription)

        return unsubscribe

    def _remove(self, subscription: Subscription) -> bool:
        if not subscription.active:
            return False

        subscription.active = False
        subscriptions = self._subscriptions.get(subscription.event_name, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            self._subscriptions.pop(subscription.event_name, None)
        return True

    def _check_payload(self, name: EventName, payload: Any) -> None:
        model = EVENT_PAYLOAD_MODELS[name]

        if isinstance(payload, EventPayload):
            if not isinstance(payload, model):
                raise EventPayloadError(
                    name, f"expected {model.__name__}, got {type(payload).__name__}"
                )
            return

        if not isinstance(payload, Mapping):
            raise EventPayloadError(
                name, f"expected {model.__name__} or a mapping, got {type(payload).__name__}"
            )

        try:
            model.model_validate(dict(payload))
        except ValidationError as e:
            raise EventPayloadError(name, str(e)) from e

    async def emit(self, event_name: Union[str, EventName], payload: Any) -> None:
        """Emit an event to every current subscriber.

        Subscribers are invoked one after the other in subscription order and
        each is awaited before the next. A failing subscriber is logged and
        does not stop delivery to the others.

        Args:
            event_name: The event to emit
            payload: The payload, delivered to subscribers unchanged

        Raises:
            ValueError: If the event is not in the catalog
            EventPayloadError: If payload validation is enabled and the payload does not match
        """
        name = to_event_name(event_name)

        if self.validate_payloads:
            self._check_payload(name, payload)

        subscribers = list(self._subscriptions.get(name, []))

        if self.enable_history:
            self._history.append(HistoryEntry(
                event_name=name,
                payload=payload,
                subscriber_count=len(subscribers)
            ))

        for subscription in subscribers:
            # Removed by an earlier subscriber during this emission
            if not subscription.active:
                continue

            if subscription.once:
                self._remove(subscription)

            await self._deliver(subscription, payload)

    async def _deliver(self, subscription: Subscription, payload: Any) -> None:
        name = subscription.event_name
        with logging_context(module_name=subscription.module_name, event=name.value):
            try:
                result = subscription.handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Error in handler of module '{subscription.module_name}' "
                    f"for event '{name.value}': {str(e)}",
                    exc_info=True
                )
                self._report_error(name, e, subscription.module_name)

    def _report_error(self, name: EventName, error: Exception, module_name: str) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(name, error, module_name)
        except Exception as e:
            logger.error(f"Error in event bus error callback: {str(e)}")

    def subscriber_count(self, event_name: Union[str, EventName]) -> int:
        """Get the number of active subscriptions for an event."""
        return len(self._subscriptions.get(to_event_name(event_name), []))

    def total_subscriber_count(self) -> int:
        """Get the number of active subscriptions across all events."""
        return sum(len(subscriptions) for subscriptions in self._subscriptions.values())

    def remove_all_for_module(self, module_name: str) -> int:
        """Remove every subscription owned by a module.

        Args:
            module_name: The owning module

        Returns:
            The number of subscriptions removed
        """
        owned = [
            subscription
            for subscriptions in self._subscriptions.values()
            for subscription in subscriptions
            if subscription.module_name == module_name
        ]
        for subscription in owned:
            self._remove(subscription)

        if owned:
            logger.debug(f"Removed {len(owned)} subscriptions of module '{module_name}'")
        return len(owned)

    def get_subscribed_modules(self) -> List[str]:
        """Get the names of modules with at least one active subscription."""
        modules: Dict[str, None] = {}
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                modules.setdefault(subscription.module_name, None)
        return list(modules)

    def get_active_event_names(self) -> List[EventName]:
        """Get the events that have at least one active subscription."""
        return [name for name, subscriptions in self._subscriptions.items() if subscriptions]

    def get_history(self, event_name: Optional[Union[str, EventName]] = None) -> List[HistoryEntry]:
        """Get the emission history in emission order.

        Args:
            event_name: Only return entries for this event if given

        Returns:
            The history entries
        """
        if event_name is None:
            return list(self._history)

        name = to_event_name(event_name)
        return [entry for entry in self._history if entry.event_name == name]

    def get_recent_events(self, count: int = 10) -> List[HistoryEntry]:
        """Get the most recent history entries, oldest first."""
        if count <= 0:
            return []
        return list(self._history)[-count:]

    def clear_history(self) -> None:
        """Remove all history entries."""
        self._history.clear()

    def clear(self) -> None:
        """Remove all subscriptions and history."""
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                subscription.active = False
        self._subscriptions.clear()
        self._history.clear()


# Global event bus, created on first use
_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the global event bus.

    Returns:
        The global event bus
    """
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Discard the global event bus so the next get_event_bus() builds a new one."""
    global _event_bus
    _event_bus = None


def set_event_bus(event_bus: EventBus) -> None:
    """Install an event bus as the global event bus."""
    global _event_bus
    _event_bus = event_bus
