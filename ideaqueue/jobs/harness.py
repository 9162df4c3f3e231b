"""Shared execution harness for every job.

The harness owns the run record (keyed by event id), the single-flight lock
per concurrency key, retries with exponential backoff, step memoization and
the terminal-failure hand-off to ``Job.recover``.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic_core import to_jsonable_python

from ideaqueue.ports.base import FulfillmentPort, ImageGenerator, Notifier, StorefrontPort, TextGenerator
from ideaqueue.specs.common.datetime_utils import utc_now
from ideaqueue.specs.common.enums import JobRunStatus
from ideaqueue.specs.common.errors import PipelineError
from ideaqueue.specs.models.runs import JobRun
from ideaqueue.specs.queue.message import EventMessage
from ideaqueue.shared.bucket_registry import BucketRegistry
from ideaqueue.shared.config_store import ConfigStore
from ideaqueue.shared.dispatcher import EventDispatcher
from ideaqueue.shared.idea_store import IdeaStore
from ideaqueue.shared.logging_utils import error as log_error, info as log_info, warning as log_warning
from ideaqueue.shared.retry_utils import CancellationToken, poll_until, run_with_retries
from ideaqueue.shared.revision_ledger import RevisionLedger
from ideaqueue.shared.run_state import RunStateStore
from ideaqueue.shared.settings import PipelineSettings

T = TypeVar("T")


@dataclass
class JobServices:
    settings: PipelineSettings
    ideas: IdeaStore
    ledger: RevisionLedger
    buckets: BucketRegistry
    config: ConfigStore
    run_state: RunStateStore
    text: TextGenerator
    images: ImageGenerator
    fulfillment: FulfillmentPort
    storefront: StorefrontPort
    notifier: Notifier


class JobContext:
    """What a job sees while it runs: its event, services and step helpers."""

    def __init__(
        self,
        *,
        run: JobRun,
        message: EventMessage,
        services: JobServices,
        dispatcher: EventDispatcher,
        run_state: RunStateStore,
        token: CancellationToken,
    ) -> None:
        self.run = run
        self.event = message
        self.services = services
        self._dispatcher = dispatcher
        self._run_state = run_state
        self.token = token

    @property
    def run_id(self) -> str:
        return self.run.runId

    @property
    def data(self) -> Dict[str, Any]:
        return self.event.data

    def step(self, name: str, fn: Callable[[], Any]) -> Any:
        """Run ``fn`` once per run; a retry gets the recorded JSON result back."""
        if name in self.run.steps:
            log_info(self.run_id, "harness:step_memoized", step=name)
            return self.run.steps[name]
        self.token.raise_if_cancelled()
        value = to_jsonable_python(fn())
        self.run.steps[name] = value
        self._run_state.save_run(self.run)
        return value

    def chain_event_id(self, key: str) -> str:
        return f"{self.run_id}:{key}"

    def emit(self, name: str, data: Dict[str, Any], key: Optional[str] = None) -> str:
        """Emit a chained event whose id is derived from this run, so re-runs dedupe."""
        return self._dispatcher.emit(name, data, event_id=self.chain_event_id(key or name))

    def poll(self, check: Callable[[], Optional[T]], *, attempts: int, interval: float, description: str) -> T:
        return poll_until(check, attempts=attempts, interval=interval, description=description, token=self.token)


class Job(ABC):
    name: str = ""
    description: str = ""
    events: Tuple[str, ...] = ()
    retries: int = 2
    concurrency_key: Optional[str] = None
    manual: bool = False
    schedule: Optional[str] = None

    def concurrency_key_for(self, message: EventMessage) -> str:
        return self.concurrency_key or self.name

    @abstractmethod
    def run(self, ctx: JobContext) -> Any:
        """Do the work; the return value is stored as the run result."""

    def recover(self, ctx: JobContext, exc: BaseException) -> None:
        """Called once after the last attempt fails."""


class JobHarness:
    def __init__(
        self,
        services: JobServices,
        dispatcher: EventDispatcher,
        run_state: RunStateStore,
        *,
        backoff_factor: float = 1.0,
    ) -> None:
        self.services = services
        self.dispatcher = dispatcher
        self.run_state = run_state
        self.backoff_factor = backoff_factor
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._tokens: Dict[str, CancellationToken] = {}
        self._running: Dict[str, int] = {}

    def register(self, job: Job) -> None:
        if job.name in self._jobs:
            raise ValueError(f"job '{job.name}' registered twice")
        self._jobs[job.name] = job
        for event in job.events:
            self.dispatcher.subscribe(event, job.name)

    def get_job(self, name: str) -> Optional[Job]:
        return self._jobs.get(name)

    @property
    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    def running_count(self, job_name: str) -> int:
        return self._running.get(job_name, 0)

    def record_pending(self, job_name: str, event_name: str, data: Dict[str, Any], run_id: str) -> JobRun:
        """Create the run record before the event is sent so it can be listed or cancelled while queued."""
        run = JobRun(runId=run_id, jobName=job_name, eventName=event_name, payload=dict(data))
        self.run_state.save_run(run)
        return run

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def handle(self, job_name: str, message: EventMessage) -> Optional[JobRun]:
        """Run ``job_name`` for ``message``. Never raises; failures end up on the run record."""
        job = self._jobs.get(job_name)
        if job is None:
            log_error(message.eventId, "harness:unknown_job", job=job_name, event=message.name)
            return None

        existing = self.run_state.get_run(message.eventId)
        if existing is not None and existing.is_finished:
            log_info(message.eventId, "harness:duplicate_delivery", job=job_name, status=existing.status)
            return existing

        with self._lock_for(job.concurrency_key_for(message)):
            # Another worker may have finished the same event while we waited
            existing = self.run_state.get_run(message.eventId)
            if existing is not None and existing.is_finished:
                log_info(message.eventId, "harness:duplicate_delivery", job=job_name, status=existing.status)
                return existing
            run = existing or JobRun(
                runId=message.eventId,
                jobName=job.name,
                eventName=message.name,
                payload=message.data,
            )
            return self._execute(job, message, run)

    def _execute(self, job: Job, message: EventMessage, run: JobRun) -> JobRun:
        token = CancellationToken(run.runId)
        if run.cancelRequested:
            token.cancel()
        self._tokens[run.runId] = token
        self._running[job.name] = self._running.get(job.name, 0) + 1

        run.status = JobRunStatus.RUNNING.value
        run.startedAt = run.startedAt or utc_now()
        self.run_state.save_run(run)
        ctx = JobContext(
            run=run,
            message=message,
            services=self.services,
            dispatcher=self.dispatcher,
            run_state=self.run_state,
            token=token,
        )
        log_info(run.runId, f"{job.name}:start", event=message.name)
        start = perf_counter()

        def _attempt() -> Any:
            run.attempts += 1
            self.run_state.save_run(run)
            return job.run(ctx)

        def _on_backoff(details: Dict[str, Any]) -> None:
            log_warning(
                run.runId,
                "harness:retry",
                job=job.name,
                attempt=details.get("tries"),
                waitSeconds=round(details.get("wait") or 0, 2),
                error=str(details.get("exception")),
            )

        try:
            result = run_with_retries(
                _attempt,
                max_tries=job.retries + 1,
                factor=self.backoff_factor,
                on_backoff=_on_backoff,
            )
            run.status = JobRunStatus.COMPLETED.value
            run.result = to_jsonable_python(result)
            log_info(run.runId, f"{job.name}:completed", attempts=run.attempts)
        except Exception as exc:
            run.status = JobRunStatus.FAILED.value
            run.error = exc.to_dict() if isinstance(exc, PipelineError) else {
                "code": "UNHANDLED_ERROR",
                "message": str(exc),
                "details": {"type": type(exc).__name__},
            }
            log_error(run.runId, f"{job.name}:failed", attempts=run.attempts, error=str(exc))
            try:
                job.recover(ctx, exc)
            except Exception as recover_exc:
                log_error(run.runId, "harness:recover_failed", job=job.name, error=str(recover_exc))
        finally:
            run.completedAt = utc_now()
            run.durationMs = int((perf_counter() - start) * 1000)
            self.run_state.save_run(run)
            self._tokens.pop(run.runId, None)
            self._running[job.name] = max(0, self._running.get(job.name, 1) - 1)
        return run

    def cancel(self, run_id: str) -> bool:
        """Request cancellation of a queued or running run."""
        token = self._tokens.get(run_id)
        if token is not None:
            token.cancel()
            log_info(run_id, "harness:cancel_requested", running=True)
            return True
        run = self.run_state.get_run(run_id)
        if run is None or run.is_finished:
            return False
        run.cancelRequested = True
        self.run_state.save_run(run)
        log_info(run_id, "harness:cancel_requested", running=False)
        return True
