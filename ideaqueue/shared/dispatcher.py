"""Event dispatch: the only path by which jobs are triggered.

Every event name routes to exactly one job. Transports decide where the job
runs: inline in the caller's thread, on a local worker pool, or through one
Azure Storage queue per job type whose queue trigger feeds the harness.
"""
import threading
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple

from ideaqueue.specs.common.datetime_utils import new_id
from ideaqueue.specs.queue.message import EventMessage
from ideaqueue.shared.logging_utils import info as log_info, warning as log_warning
from ideaqueue.shared.queue_client import get_queue_client, queue_name_for

Handler = Callable[[str, EventMessage], Any]


class Transport(ABC):
    def __init__(self) -> None:
        self._handler: Optional[Handler] = None

    def bind(self, handler: Handler) -> None:
        self._handler = handler

    def _deliver(self, job_name: str, message: EventMessage) -> None:
        if self._handler is None:
            raise RuntimeError("transport has no handler bound")
        self._handler(job_name, message)

    @abstractmethod
    def send(self, job_name: str, message: EventMessage) -> None:
        ...

    def close(self) -> None:
        pass


class InlineTransport(Transport):
    """Runs jobs in the emitting thread, first in first out.

    Events emitted while a job runs are queued and delivered after it returns,
    the same ordering a real queue gives. With ``auto_drain=False`` delivery
    waits for an explicit ``drain()``.
    """

    def __init__(self, auto_drain: bool = True) -> None:
        super().__init__()
        self.auto_drain = auto_drain
        self._queue: Deque[Tuple[str, EventMessage]] = deque()
        self._draining = False
        self._lock = threading.RLock()
        self.sent: List[EventMessage] = []

    @property
    def pending(self) -> List[EventMessage]:
        return [m for _, m in self._queue]

    def send(self, job_name: str, message: EventMessage) -> None:
        with self._lock:
            self._queue.append((job_name, message))
            self.sent.append(message)
        if self.auto_drain:
            self.drain()

    def drain(self) -> int:
        delivered = 0
        with self._lock:
            if self._draining:
                return 0
            self._draining = True
        try:
            while True:
                with self._lock:
                    if not self._queue:
                        break
                    job_name, message = self._queue.popleft()
                self._deliver(job_name, message)
                delivered += 1
        finally:
            with self._lock:
                self._draining = False
        return delivered


class ThreadPoolTransport(Transport):
    def __init__(self, workers: int = 4) -> None:
        super().__init__()
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ideaqueue")
        self.in_flight: Set[Future] = set()

    def send(self, job_name: str, message: EventMessage) -> None:
        future = self._executor.submit(self._deliver, job_name, message)
        self.in_flight.add(future)
        future.add_done_callback(self.in_flight.discard)

    def close(self) -> None:
        self._executor.shutdown(wait=True)


class StorageQueueTransport(Transport):
    """One Azure Storage queue per job; queue triggers call the harness."""

    def __init__(self, connection_string: Optional[str], prefix: str) -> None:
        super().__init__()
        self._conn = connection_string
        self._prefix = prefix
        self._clients: Dict[str, Any] = {}

    def queue_name(self, job_name: str) -> str:
        return queue_name_for(self._prefix, job_name)

    def send(self, job_name: str, message: EventMessage) -> None:
        name = self.queue_name(job_name)
        if name not in self._clients:
            self._clients[name] = get_queue_client(name, self._conn)
        self._clients[name].send_message(message.model_dump_json())
        log_info(message.eventId, "queue:enqueued", queue=name, event=message.name)


class EventDispatcher:
    def __init__(self, transport: Transport) -> None:
        self.transport = transport
        self._routes: Dict[str, str] = {}

    def subscribe(self, event_name: str, job_name: str) -> None:
        existing = self._routes.get(event_name)
        if existing and existing != job_name:
            raise ValueError(f"event '{event_name}' already routed to job '{existing}'")
        self._routes[event_name] = job_name

    def job_for(self, event_name: str) -> Optional[str]:
        return self._routes.get(event_name)

    @property
    def routes(self) -> Dict[str, str]:
        return dict(self._routes)

    def emit(self, name: str, data: Optional[Dict[str, Any]] = None, event_id: Optional[str] = None) -> str:
        message = EventMessage(eventId=event_id or new_id(), name=name, data=dict(data or {}))
        job_name = self._routes.get(name)
        if job_name is None:
            log_warning(message.eventId, "dispatch:unrouted", event=name)
            return message.eventId
        log_info(message.eventId, "dispatch:emit", event=name, job=job_name)
        self.transport.send(job_name, message)
        return message.eventId
