import queue
import threading
from loguru import logger

from .commands import CommandRouter, default_command_router, is_command
from .core.message import BridgeEvent, MessagePosted, PresenceChanged
from .endpoints.interfaces import INetworkEndpoint


def endpoint_thread_worker(endpoint: INetworkEndpoint, stop_event: threading.Event):
    """
    Entry point for each endpoint thread.
    It calls the endpoint's run method and keeps failures local to that endpoint.
    """
    try:
        endpoint.run(stop_event)
    except Exception:
        logger.exception(f"Unhandled exception in thread for {endpoint.name} endpoint")
    logger.info(f"{endpoint.name} endpoint thread has finished.")


class Bridge:
    """
    Relays messages between two chat networks. Each endpoint runs in its own
    thread; their events are queued and dispatched from the bridge's message loop.
    """

    def __init__(
        self,
        irc: INetworkEndpoint,
        slack: INetworkEndpoint,
        commands: CommandRouter | None = None,
    ):
        self._endpoints = (irc, slack)
        self._commands = commands or default_command_router()

        self._event_queue: queue.Queue = queue.Queue()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

        for endpoint in self._endpoints:
            endpoint.subscribe(self._handle_event)

    def _other(self, endpoint: INetworkEndpoint) -> INetworkEndpoint:
        first, second = self._endpoints
        if endpoint is first:
            return second
        if endpoint is second:
            return first
        raise ValueError(f"Endpoint {endpoint!r} is not part of this bridge.")

    def _handle_event(self, source: INetworkEndpoint, event: BridgeEvent):
        """Callback invoked by the endpoints; hands the event over to the message loop."""
        self._event_queue.put((source, event))

    def dispatch(self, source: INetworkEndpoint, event: BridgeEvent):
        """Relays, answers or drops a single event coming from `source`."""
        target = self._other(source)

        if isinstance(event, PresenceChanged):
            logger.info(
                f"Relaying presence from {source.name} to {target.name}: {event.presence.description}"
            )
            target.send_message(event.presence.as_message())
            return

        if not isinstance(event, MessagePosted):
            logger.warning(f"Unknown event type {event.__class__.__name__} from {source.name}. Ignoring.")
            return

        message = event.message
        if is_command(message.content):
            reply = self._commands.handle(message, source, target)
            if reply:
                source.send_message(reply)
            return

        logger.debug(f"Relaying message from {source.name} to {target.name}")
        target.send_message(message)

    def run(self):
        logger.info("Starting the Bridge...")

        for endpoint in self._endpoints:
            thread = threading.Thread(
                target=endpoint_thread_worker,
                args=(endpoint, self._stop_event),
                name=f"{endpoint.name}-endpoint",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
            logger.info(f"Started thread for endpoint: {endpoint.name}")

        logger.success("Bridge is running. All endpoint threads started.")

        try:
            self._message_loop()
        except KeyboardInterrupt:
            logger.info("Keyboard interruption detected. Shutting down...")
        finally:
            self.stop()

    def _message_loop(self):
        """Continuously fetches events from the queue and dispatches them."""
        while not self._stop_event.is_set():
            try:
                source, event = self._event_queue.get(timeout=1)
            except queue.Empty:
                if self._threads and not any(t.is_alive() for t in self._threads):
                    logger.critical("All endpoints have stopped. Nothing left to bridge.")
                    break
                continue

            try:
                self.dispatch(source, event)
            except Exception:
                logger.exception(f"An error occurred while dispatching an event from {source.name}.")

    def stop(self):
        logger.info("Shutting down the bridge...")
        self._stop_event.set()

        for endpoint in self._endpoints:
            try:
                endpoint.stop()
            except Exception as e:
                logger.warning(f"Exception while stopping {endpoint.name} endpoint: {e}")

        for thread in self._threads:
            if thread.is_alive():
                logger.debug(f"Waiting for thread {thread.name}...")
                thread.join(timeout=5)
                if thread.is_alive():
                    logger.warning(f"Thread {thread.name} did not terminate gracefully.")

        logger.success("Bridge shut down successfully.")
