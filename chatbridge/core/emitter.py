import threading
from typing import Callable
from loguru import logger

from .message import Message, MessagePosted, PresenceChanged, PresenceEvent, BridgeEvent

EventCallback = Callable[[object, BridgeEvent], None]


class EventEmitter:
    """
    Mixin that delivers normalized events to subscribers.
    Keeps the last posted message and presence notification so every event
    carries a snapshot of the value it supersedes.
    """

    def __init__(self):
        self._subscribers: list[EventCallback] = []
        self._last_posted: Message | None = None
        self._last_presence: PresenceEvent | None = None
        self._emit_lock = threading.Lock()

    def subscribe(self, callback: EventCallback) -> None:
        if not callable(callback):
            raise TypeError("Event callback must be a callable function.")
        self._subscribers.append(callback)
        logger.debug(f"{self.__class__.__name__}: Subscriber registered.")

    def _emit_message(self, message: Message) -> None:
        with self._emit_lock:
            previous = self._last_posted.copy() if self._last_posted else None
            self._last_posted = message
        self._emit(MessagePosted(message=message, previous=previous))

    def _emit_presence(self, description: str) -> None:
        presence = PresenceEvent(description=description)
        with self._emit_lock:
            previous = self._last_presence
            self._last_presence = presence
        self._emit(PresenceChanged(presence=presence, previous=previous))

    def _emit(self, event: BridgeEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self, event)
            except Exception:
                logger.exception(
                    f"{self.__class__.__name__}: Subscriber failed while handling {event.__class__.__name__}."
                )
