import pytest

from ideaqueue.shared.dispatcher import EventDispatcher, InlineTransport, StorageQueueTransport, ThreadPoolTransport
from ideaqueue.shared.queue_client import queue_name_for


def _recording_dispatcher(auto_drain=True):
    transport = InlineTransport(auto_drain=auto_drain)
    delivered = []
    transport.bind(lambda job, message: delivered.append((job, message.name, message.data)))
    return EventDispatcher(transport), transport, delivered


def test_each_event_routes_to_one_job():
    dispatcher, _, _ = _recording_dispatcher()
    dispatcher.subscribe("design.created", "notify-stage")
    dispatcher.subscribe("design.created", "notify-stage")
    with pytest.raises(ValueError):
        dispatcher.subscribe("design.created", "other-job")
    assert dispatcher.job_for("design.created") == "notify-stage"


def test_unrouted_event_is_dropped():
    dispatcher, transport, delivered = _recording_dispatcher()
    event_id = dispatcher.emit("nobody.listens", {"x": 1})
    assert event_id
    assert delivered == []
    assert transport.sent == []


def test_explicit_event_id_is_kept():
    dispatcher, transport, _ = _recording_dispatcher()
    dispatcher.subscribe("job/create-design", "create-design")
    assert dispatcher.emit("job/create-design", {"ideaId": "i"}, event_id="evt-1") == "evt-1"
    assert transport.sent[0].eventId == "evt-1"


def test_events_emitted_while_delivering_run_afterwards():
    transport = InlineTransport()
    dispatcher = EventDispatcher(transport)
    dispatcher.subscribe("first", "a")
    dispatcher.subscribe("second", "b")
    order = []

    def handler(job, message):
        order.append(f"{job}:start")
        if job == "a":
            dispatcher.emit("second")
        order.append(f"{job}:end")

    transport.bind(handler)
    dispatcher.emit("first")
    assert order == ["a:start", "a:end", "b:start", "b:end"]


def test_manual_drain_is_fifo():
    dispatcher, transport, delivered = _recording_dispatcher(auto_drain=False)
    dispatcher.subscribe("e", "job")
    for n in range(3):
        dispatcher.emit("e", {"n": n})
    assert delivered == []
    assert len(transport.pending) == 3
    assert transport.drain() == 3
    assert [d[2]["n"] for d in delivered] == [0, 1, 2]


def test_unbound_transport_refuses_delivery():
    transport = InlineTransport()
    dispatcher = EventDispatcher(transport)
    dispatcher.subscribe("e", "job")
    with pytest.raises(RuntimeError):
        dispatcher.emit("e")


def test_queue_names_are_valid_storage_names():
    assert queue_name_for("IdeaQueue", "create-printful-product") == "ideaqueue-create-printful-product"
    assert len(queue_name_for("p" * 60, "generate-ideas")) == 63


class FakeQueueClient:
    def __init__(self):
        self.messages = []

    def send_message(self, body):
        self.messages.append(body)


def test_storage_queue_transport_sends_json(monkeypatch):
    clients = {}

    def fake_get_queue_client(name, conn):
        clients[name] = FakeQueueClient()
        return clients[name]

    monkeypatch.setattr("ideaqueue.shared.dispatcher.get_queue_client", fake_get_queue_client)
    transport = StorageQueueTransport("UseDevelopmentStorage=true", "iq")
    dispatcher = EventDispatcher(transport)
    dispatcher.subscribe("job/create-design", "create-design")

    dispatcher.emit("job/create-design", {"ideaId": "i"}, event_id="evt-9")
    dispatcher.emit("job/create-design", {"ideaId": "j"})

    client = clients["iq-create-design"]
    assert len(client.messages) == 2
    assert '"eventId":"evt-9"' in client.messages[0]


def test_thread_pool_forgets_finished_deliveries():
    transport = ThreadPoolTransport(workers=2)
    delivered = []
    transport.bind(lambda job, message: delivered.append(message.eventId))
    dispatcher = EventDispatcher(transport)
    dispatcher.subscribe("e", "job")

    for n in range(5):
        dispatcher.emit("e", {"n": n}, event_id=f"evt-{n}")
    transport.close()

    assert sorted(delivered) == [f"evt-{n}" for n in range(5)]
    assert transport.in_flight == set()
