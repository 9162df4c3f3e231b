"""Queue and timer triggers that feed the job harness.

With the storage-queue transport every job has its own queue; the trigger
decodes the event and hands it to the harness, which records the outcome on
the run instead of raising, so a failed run is not redelivered by the host.
"""
from typing import Callable

import azure.functions as func
from pydantic import ValidationError

from ideaqueue.jobs.harness import Job
from ideaqueue.pipeline import Pipeline
from ideaqueue.specs.queue.message import EventMessage
from ideaqueue.shared.logging_utils import error as log_error, info as log_info
from ideaqueue.shared.queue_client import queue_name_for


def handle_queue_message(pipeline: Pipeline, job_name: str, msg: func.QueueMessage) -> None:
    body = msg.get_body().decode("utf-8")
    try:
        message = EventMessage.model_validate_json(body)
    except ValidationError as exc:
        # A malformed message would fail on every redelivery
        log_error(None, "queue:invalid_message", job=job_name, messageId=getattr(msg, "id", None), error=str(exc))
        return
    log_info(
        message.eventId,
        "queue:dequeued",
        job=job_name,
        messageId=getattr(msg, "id", None),
        dequeueCount=getattr(msg, "dequeue_count", None),
    )
    pipeline.harness.handle(job_name, message)


def handle_timer(pipeline: Pipeline, job_name: str, timer: func.TimerRequest) -> None:
    if timer.past_due:
        log_info(None, "timer:past_due", job=job_name)
    job = pipeline.harness.get_job(job_name)
    run_id = pipeline.dispatcher.emit(job.events[0], {})
    log_info(run_id, "timer:triggered", job=job_name)


def _queue_function(pipeline: Pipeline, job: Job) -> Callable[[func.QueueMessage], None]:
    def run(msg: func.QueueMessage) -> None:
        handle_queue_message(pipeline, job.name, msg)

    return run


def _timer_function(pipeline: Pipeline, job: Job) -> Callable[[func.TimerRequest], None]:
    def run(timer: func.TimerRequest) -> None:
        handle_timer(pipeline, job.name, timer)

    return run


def _function_name(prefix: str, job: Job) -> str:
    return f"{prefix}_{job.name.replace('-', '_')}"


def build_queue_blueprint(pipeline: Pipeline) -> func.Blueprint:
    bp = func.Blueprint()
    prefix = pipeline.settings.queuePrefix
    for job in pipeline.harness.jobs:
        fn = _queue_function(pipeline, job)
        fn = bp.queue_trigger(
            arg_name="msg",
            queue_name=queue_name_for(prefix, job.name),
            connection="AzureWebJobsStorage",
        )(fn)
        bp.function_name(name=_function_name("q", job))(fn)
    return bp


def build_timer_blueprint(pipeline: Pipeline) -> func.Blueprint:
    bp = func.Blueprint()
    for job in pipeline.harness.jobs:
        if not job.schedule:
            continue
        fn = _timer_function(pipeline, job)
        fn = bp.timer_trigger(schedule=job.schedule, arg_name="timer", run_on_startup=False)(fn)
        bp.function_name(name=_function_name("timer", job))(fn)
    return bp
