"""Operator decisions on ideas, and manual job control.

The gateway is the only code that moves an idea out of ``pending``. Each
decision is one conditional store write (status precondition, lease and the
ledger entry together) followed by at most one event.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ideaqueue.jobs.create_printful_product import missing_publish_fields
from ideaqueue.jobs.harness import JobHarness
from ideaqueue.jobs.registry import REFINE_EVENT, STAGE_JOBS, STAGE_TRIGGERS
from ideaqueue.specs.common.datetime_utils import new_id
from ideaqueue.specs.common.enums import IdeaStatus, RevisionType, Stage, next_stage
from ideaqueue.specs.common.errors import Conflict, InvalidTransition, NotFound
from ideaqueue.specs.http.admin import UpdateIdeaRequest
from ideaqueue.specs.models.domain import BUCKET_FIELDS, Idea, RevisionEntry
from ideaqueue.specs.models.runs import JobRun
from ideaqueue.shared.bucket_registry import BucketRegistry
from ideaqueue.shared.dispatcher import EventDispatcher
from ideaqueue.shared.idea_store import IdeaStore
from ideaqueue.shared.logging_utils import error as log_error, info as log_info
from ideaqueue.shared.revision_ledger import RevisionLedger
from ideaqueue.shared.run_state import RunStateStore


class AdminGateway:
    def __init__(
        self,
        ideas: IdeaStore,
        ledger: RevisionLedger,
        buckets: BucketRegistry,
        dispatcher: EventDispatcher,
        harness: JobHarness,
        run_state: RunStateStore,
    ) -> None:
        self.ideas = ideas
        self.ledger = ledger
        self.buckets = buckets
        self.dispatcher = dispatcher
        self.harness = harness
        self.run_state = run_state

    # -- reads -------------------------------------------------------------

    def get(self, idea_id: str) -> Idea:
        return self.ideas.get(idea_id)

    def list(
        self,
        *,
        stage: Optional[str] = None,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
        bucket_id: Optional[str] = None,
    ) -> List[Idea]:
        return self.ideas.list(stage=stage, status=status, category_id=category_id, bucket_id=bucket_id)

    # -- decisions ---------------------------------------------------------

    def _pending(self, idea_id: str, action: str) -> Idea:
        idea = self.ideas.get(idea_id)
        if idea.status != IdeaStatus.PENDING.value:
            raise InvalidTransition(
                f"Cannot {action} an idea that is {idea.status}",
                details={"ideaId": idea.id, "stage": idea.stage, "status": idea.status},
            )
        return idea

    def _send(self, event: str, data: Dict[str, Any], event_id: str) -> str:
        job_name = self.dispatcher.job_for(event)
        if job_name:
            self.harness.record_pending(job_name, event, data, event_id)
        return self.dispatcher.emit(event, data, event_id=event_id)

    def _emit_or_release(self, idea_id: str, event: str, data: Dict[str, Any], event_id: str) -> None:
        """Emit the job event; if that fails, hand the idea back to the operator."""
        try:
            self._send(event, data, event_id)
        except Exception as exc:
            log_error(event_id, "gateway:emit_failed", ideaId=idea_id, event=event, error=str(exc))
            try:
                self.ideas.update(
                    idea_id,
                    {"status": IdeaStatus.PENDING.value},
                    expected_status=IdeaStatus.PROCESSING,
                    lease=event_id,
                )
            except (Conflict, InvalidTransition) as release_exc:
                log_error(event_id, "gateway:release_failed", ideaId=idea_id, error=str(release_exc))
            raise

    def advance(
        self,
        idea_id: str,
        guidance: Optional[str] = None,
        bucket_override: Optional[str] = None,
    ) -> Tuple[Idea, str]:
        """Approve the current stage and start the next stage's job.

        Returns the idea as stored after the event was handed to the
        dispatcher, and the event id holding the lease.
        """
        idea = self._pending(idea_id, "advance")
        target = next_stage(Stage(idea.stage))
        if target is None:
            raise InvalidTransition("Idea is already at the final stage", details={"ideaId": idea.id})

        if target == Stage.PUBLISH:
            missing = missing_publish_fields(idea)
            if missing:
                raise InvalidTransition(
                    f"Missing required fields for publishing: {', '.join(missing)}",
                    details={"ideaId": idea.id, "missing": missing},
                )

        event_id = new_id()
        transition = idea.transitionCount + 1
        patch: Dict[str, Any] = {
            "status": IdeaStatus.PROCESSING.value,
            "activeEventId": event_id,
            "transitionCount": transition,
        }
        bucket_field = BUCKET_FIELDS.get(target.value)
        if bucket_field:
            patch[bucket_field] = self.buckets.assign(target, bucket_override)
        elif bucket_override:
            raise InvalidTransition(f"Stage {target.value} does not use buckets", details={"bucketId": bucket_override})

        guidance = (guidance or "").strip()
        if guidance:
            entry = RevisionEntry(
                stage=idea.stage,
                type=RevisionType.FORWARD,
                notes=guidance,
                transition=transition,
            )
            self.ledger.append(idea.id, entry, patch, expected_status=IdeaStatus.PENDING)
        else:
            self.ideas.update(idea.id, patch, expected_status=IdeaStatus.PENDING)
        log_info(
            event_id,
            "gateway:advance",
            ideaId=idea.id,
            fromStage=idea.stage,
            toStage=target.value,
            bucketId=patch.get(bucket_field) if bucket_field else None,
            guided=bool(guidance),
        )

        self._emit_or_release(idea.id, STAGE_TRIGGERS[target.value], {"ideaId": idea.id}, event_id)
        return self.ideas.get(idea.id), event_id

    def reject(self, idea_id: str) -> Idea:
        idea = self._pending(idea_id, "reject")
        updated = self.ideas.update(
            idea.id,
            {"status": IdeaStatus.REJECTED.value},
            expected_status=IdeaStatus.PENDING,
        )
        log_info(None, "gateway:reject", ideaId=idea.id, stage=idea.stage)
        return updated

    def refine(self, idea_id: str, notes: str, stage: str) -> Tuple[Idea, str]:
        """Log feedback and regenerate the current stage's artifacts."""
        notes = (notes or "").strip()
        if not notes:
            raise InvalidTransition("Refinement notes are required", details={"ideaId": idea_id})
        idea = self._pending(idea_id, "refine")
        stage = Stage(stage).value
        if stage != idea.stage:
            raise InvalidTransition(
                f"Idea is at {idea.stage}; cannot refine {stage}",
                details={"ideaId": idea.id, "stage": idea.stage},
            )
        if stage == Stage.PUBLISH.value:
            raise InvalidTransition("Published ideas cannot be refined", details={"ideaId": idea.id})

        event_id = new_id()
        entry = RevisionEntry(
            stage=stage,
            type=RevisionType.REVISION,
            notes=notes,
            transition=idea.transitionCount,
        )
        self.ledger.append(
            idea.id,
            entry,
            {"status": IdeaStatus.PROCESSING.value, "activeEventId": event_id},
            expected_status=IdeaStatus.PENDING,
        )
        log_info(event_id, "gateway:refine", ideaId=idea.id, stage=stage)
        self._emit_or_release(idea.id, REFINE_EVENT, {"ideaId": idea.id, "notes": notes, "stage": stage}, event_id)
        return self.ideas.get(idea.id), event_id

    def update_selection(self, idea_id: str, request: UpdateIdeaRequest) -> Idea:
        """Operator edits between stages; never changes stage or status."""
        idea = self._pending(idea_id, "edit")
        patch = request.model_dump(exclude_unset=True, exclude={"primaryDesignIndex", "primaryListingIndex"})

        if request.primaryDesignIndex is not None:
            if request.primaryDesignIndex >= len(idea.designVariants):
                raise InvalidTransition(
                    "primaryDesignIndex is out of range",
                    details={"ideaId": idea.id, "available": len(idea.designVariants)},
                )
            patch["mockupImageUrl"] = idea.designVariants[request.primaryDesignIndex].imageUrl

        if request.primaryListingIndex is not None:
            if request.primaryListingIndex >= len(idea.listingVariants):
                raise InvalidTransition(
                    "primaryListingIndex is out of range",
                    details={"ideaId": idea.id, "available": len(idea.listingVariants)},
                )
            option = idea.listingVariants[request.primaryListingIndex]
            patch.update(
                {
                    "productTitle": option.title,
                    "productDescription": option.description,
                    "productTags": list(option.tags),
                }
            )

        if not patch:
            return idea
        updated = self.ideas.update(idea.id, patch, expected_status=IdeaStatus.PENDING)
        log_info(None, "gateway:update_selection", ideaId=idea.id, fields=",".join(sorted(patch)))
        return updated

    # -- jobs --------------------------------------------------------------

    def trigger(self, job_name: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """Start a manual run and return its run id (the event id)."""
        params = dict(params or {})
        job = self.harness.get_job(job_name)
        if job is None:
            raise NotFound("Job", job_name)
        if not job.manual:
            raise InvalidTransition(f"Job '{job_name}' cannot be run manually", details={"job": job_name})

        if job_name in STAGE_JOBS:
            idea_id = params.get("ideaId")
            if not idea_id:
                raise InvalidTransition(f"Job '{job_name}' requires ideaId", details={"job": job_name})
            idea = self.ideas.get(idea_id)
            target = next_stage(Stage(idea.stage))
            if target is None or target.value != STAGE_JOBS[job_name]:
                raise InvalidTransition(
                    f"Job '{job_name}' cannot run for an idea at {idea.stage}",
                    details={"ideaId": idea.id, "stage": idea.stage},
                )
            _, event_id = self.advance(idea_id, params.get("guidance"), params.get("bucketId"))
            return event_id

        run_id = new_id()
        log_info(run_id, "gateway:trigger", job=job_name)
        return self._send(job.events[0], params, run_id)

    def runs(self, job_name: Optional[str] = None, limit: int = 50) -> List[JobRun]:
        return self.run_state.list_runs(job_name, limit)

    def get_run(self, run_id: str) -> JobRun:
        run = self.run_state.get_run(run_id)
        if run is None:
            raise NotFound("JobRun", run_id)
        return run

    def cancel(self, run_id: str) -> bool:
        self.get_run(run_id)
        return self.harness.cancel(run_id)
