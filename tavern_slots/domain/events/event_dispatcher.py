# tavern_slots/domain/events/event_dispatcher.py
import logging
from enum import Enum
from typing import Callable, Dict, List, Type

from .event_types import DomainEvent

EventHandler = Callable[[DomainEvent], None]


class EventDispatcher:
    """
    Dispatches domain events to registered handlers.

    Handler errors are logged and swallowed so one failing subscriber
    (renderer, audio, UI) can never break the publisher or the others.
    """
    def __init__(self):
        self.logger = logging.getLogger("domain.events.dispatcher")
        self.handlers: Dict[Enum, List[EventHandler]] = {}  # event_type -> list of handlers
        self.type_handlers: Dict[str, List[EventHandler]] = {}  # event class name -> list of handlers

    def register(self, event_type: Enum, handler: EventHandler):
        """
        Register a handler for a specific event type.

        Args:
            event_type: Type of event to handle
            handler: Function to call when event occurs
        """
        self.handlers.setdefault(event_type, []).append(handler)
        self.logger.debug(f"Registered handler for event type: {event_type.name}")

    def register_for_class(self, event_class: Type[DomainEvent], handler: EventHandler):
        """
        Register a handler for all events of a specific class.

        Args:
            event_class: Class of events to handle
            handler: Function to call when event occurs
        """
        class_name = event_class.__name__
        self.type_handlers.setdefault(class_name, []).append(handler)
        self.logger.debug(f"Registered handler for event class: {class_name}")

    def dispatch(self, event: DomainEvent):
        """
        Dispatch an event to all registered handlers, in registration order.

        Args:
            event: Event to dispatch
        """
        handlers = self.handlers.get(event.type, [])
        class_handlers = self.type_handlers.get(event.__class__.__name__, [])

        all_handlers = handlers + class_handlers

        if not all_handlers:
            self.logger.debug(f"No handlers registered for event: {event}")
            return

        self.logger.debug(f"Dispatching event {event} to {len(all_handlers)} handlers")

        for handler in all_handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Error in event handler for {event}: {str(e)}", exc_info=True)

    def unregister(self, event_type: Enum, handler: EventHandler) -> bool:
        """
        Unregister a handler for a specific event type.

        Returns:
            True if handler was removed, False if not found
        """
        if event_type in self.handlers and handler in self.handlers[event_type]:
            self.handlers[event_type].remove(handler)
            self.logger.debug(f"Unregistered handler for event type: {event_type.name}")
            return True
        return False

    def unregister_for_class(self, event_class: Type[DomainEvent], handler: EventHandler) -> bool:
        class_name = event_class.__name__
        if class_name in self.type_handlers and handler in self.type_handlers[class_name]:
            self.type_handlers[class_name].remove(handler)
            self.logger.debug(f"Unregistered handler for event class: {class_name}")
            return True
        return False
