from types import SimpleNamespace

import azure.functions as func

from conftest import build_test_pipeline

from ideaqueue.function_blueprints.queue_handlers import (
    build_queue_blueprint,
    build_timer_blueprint,
    handle_queue_message,
    handle_timer,
)
from ideaqueue.specs.queue.message import EventMessage


def test_queue_message_runs_the_job():
    pq = build_test_pipeline()
    pq.seed_idea()
    message = EventMessage(eventId="evt-q", name="idea.created", data={"ideaId": "idea-1"})

    handle_queue_message(pq.pipeline, "notify-stage", func.QueueMessage(id="m1", body=message.model_dump_json().encode()))

    assert pq.gateway.get_run("evt-q").status == "completed"
    assert len(pq.notifier.messages) == 1


def test_malformed_queue_message_is_dropped():
    pq = build_test_pipeline()
    handle_queue_message(pq.pipeline, "notify-stage", func.QueueMessage(id="m2", body=b"not json"))
    assert pq.gateway.runs() == []


def test_timer_emits_the_job_event():
    pq = build_test_pipeline()
    handle_timer(pq.pipeline, "analyze-categories", SimpleNamespace(past_due=True))
    runs = pq.gateway.runs("analyze-categories")
    assert len(runs) == 1
    assert runs[0].status == "completed"


def test_blueprints_register_without_errors():
    pq = build_test_pipeline()
    app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)
    app.register_functions(build_queue_blueprint(pq.pipeline))
    app.register_functions(build_timer_blueprint(pq.pipeline))
