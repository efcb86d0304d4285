"""
Dual-Native event sinks to observe and adjust the engine's behavior

Every component of the engine receives an ``EventSink`` during construction.
Notifications (``notify``) are fire-and-forget and report things that
happened, e.g. a resource update. Filters (``filter``) pass intermediate
values (exclude-key lists, computed identities, catalog entries, ...)
through the sink, which may return an adjusted value. Sinks that don't
care about a filter hook must return the value unchanged.
"""

import abc
import asyncio
import logging
import datetime
import threading
from queue import Empty, Queue
from typing import Any, ClassVar, Iterable, List, Optional

import aiohttp

from .. import schemas


EVENT_QUEUE_WAIT_TIME = 2
EVENT_QUEUE_BUFFER_TIME = 0.25


class EventSink(abc.ABC):
    """
    Interface of the observers of the engine
    """

    @abc.abstractmethod
    def notify(self, event: schemas.EventType, data: Optional[dict] = None) -> None:
        pass

    def filter(self, hook: schemas.FilterHook, value: Any, *args: Any) -> Any:
        return value


class NullEventSink(EventSink):
    """
    Event sink that ignores every notification and leaves every value as it is
    """

    def notify(self, event: schemas.EventType, data: Optional[dict] = None) -> None:
        pass


class LoggingEventSink(EventSink):
    """
    Event sink writing every notification to the log
    """

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self.logger = logger or logging.getLogger(__name__)
        self.level = level

    def notify(self, event: schemas.EventType, data: Optional[dict] = None) -> None:
        self.logger.log(self.level, f"Event {getattr(event, 'value', event)!r}: {data or {}}")


class CompositeEventSink(EventSink):
    """
    Event sink forwarding notifications to all of its sinks and chaining their filters in order
    """

    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks: List[EventSink] = list(sinks)

    def notify(self, event: schemas.EventType, data: Optional[dict] = None) -> None:
        for sink in self.sinks:
            sink.notify(event, data)

    def filter(self, hook: schemas.FilterHook, value: Any, *args: Any) -> Any:
        for sink in self.sinks:
            value = sink.filter(hook, value, *args)
        return value


class CallbackEventSink(EventSink):
    """
    Event sink to trigger push notifications (HTTP callbacks) for every event

    Events are queued and sent in batches by a background thread, so that
    notifying never blocks the request handling. Each configured URL gets
    a ``POST`` request with an ``EventsNotification`` as JSON body.
    """

    logger: ClassVar[logging.Logger] = logging.getLogger(__name__)

    def __init__(self, urls: Iterable[str], timeout: float = 2.0, shared_secret: Optional[str] = None):
        self.urls = [str(url) for url in urls]
        self.timeout = timeout
        self.shared_secret = shared_secret
        self.queue: "Queue[schemas.Event]" = Queue()
        self.shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._session: Optional[aiohttp.ClientSession] = None

    async def _publish_event(self, events: List[schemas.Event], url: str):
        events_notification = schemas.EventsNotification(events=events, number=len(events))
        try:
            response = await self._session.post(
                url,
                json=events_notification.model_dump(mode="json"),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self.shared_secret and {"Authorization": f"Bearer {self.shared_secret}"}
            )
            if response.status != 200:
                self.logger.warning(f"Callback for {url!r} failed with response code {response.status!r}")
        except aiohttp.ClientConnectionError as exc:
            self.logger.info(
                f"{type(exc).__name__} during callback to 'POST {url}' "
                f"with the following arguments: {', '.join(map(repr, exc.args))}"
            )
        except asyncio.TimeoutError:
            self.logger.warning(f"Timeout while trying 'POST {url}'")

    async def _run_worker(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()
        while not self.shutdown_event.is_set():
            try:
                events = [self.queue.get(block=True, timeout=EVENT_QUEUE_WAIT_TIME)]
            except Empty:
                continue
            while True:
                try:
                    events.append(self.queue.get(block=True, timeout=EVENT_QUEUE_BUFFER_TIME))
                except Empty:
                    break
            self.logger.debug(f"Handling {len(events)} events '{events}' for {len(self.urls)} callbacks ...")
            for url in self.urls:
                await self._publish_event(events, url)
        await self._session.close()
        self._session = None
        self.logger.info("Stopped event notifier thread")

    def _run_thread(self):
        if self._thread is None or not self._thread.is_alive():
            self.shutdown_event.clear()
            self._thread = threading.Thread(target=lambda: asyncio.run(self._run_worker()), daemon=True)
            self._thread.start()
            self.logger.debug(f"Enumerating threads: {threading.enumerate()}")

    def notify(self, event: schemas.EventType, data: Optional[dict] = None) -> None:
        if not self.urls:
            return
        self._run_thread()
        self.queue.put(schemas.Event(
            event=event,
            timestamp=int(datetime.datetime.now().timestamp()),
            data=data or {}
        ))

    def shutdown(self):
        self.shutdown_event.set()
