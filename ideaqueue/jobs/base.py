from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, Mapping, Optional

from ideaqueue.jobs.harness import Job, JobContext
from ideaqueue.specs.common.enums import IdeaStatus, RevisionType, Stage
from ideaqueue.specs.common.errors import Conflict, InvalidTransition, NotFound, PipelineError
from ideaqueue.specs.models.domain import STAGE_FIELDS, Bucket, Idea, RevisionEntry
from ideaqueue.shared.logging_utils import error as log_error, info as log_info

# Fields any stage job may set besides its own artifacts
_CONTROL_FIELDS = ("stage", "status", "activeEventId")


class IdeaJob(Job):
    """A job that works on one idea holding a processing lease.

    The trigger is stale unless the idea is ``processing`` and its
    ``activeEventId`` equals the triggering event id; stale triggers are
    acknowledged without doing anything.
    """

    # Stage whose artifacts this job writes
    stage: Stage
    # Chained event that takes over the lease once this job commits
    handoff_event: Optional[str] = None

    def run(self, ctx: JobContext) -> Any:
        ctx.token.raise_if_cancelled()
        idea_id = ctx.data.get("ideaId")
        if not idea_id:
            raise InvalidTransition(f"{self.name} requires ideaId", details={"data": ctx.data})
        idea = ctx.services.ideas.get(idea_id)
        if self._handed_off(ctx, idea):
            # Committed on an earlier attempt but the chained event was never sent
            log_info(ctx.run_id, f"{self.name}:resume_handoff", ideaId=idea_id, event=self.handoff_event)
            return self.resume_handoff(ctx, idea)
        if idea.status != IdeaStatus.PROCESSING.value or idea.activeEventId != ctx.run_id:
            log_info(
                ctx.run_id,
                f"{self.name}:stale_trigger",
                ideaId=idea_id,
                status=idea.status,
                activeEventId=idea.activeEventId,
            )
            return {"ideaId": idea_id, "skipped": "stale"}
        return self.execute(ctx, idea)

    @abstractmethod
    def execute(self, ctx: JobContext, idea: Idea) -> Any:
        ...

    def _handed_off(self, ctx: JobContext, idea: Idea) -> bool:
        return (
            self.handoff_event is not None
            and idea.status == IdeaStatus.PROCESSING.value
            and idea.activeEventId == ctx.chain_event_id(self.handoff_event)
        )

    def resume_handoff(self, ctx: JobContext, idea: Idea) -> Any:
        """Re-send the chained event for work a previous attempt already committed."""
        raise NotImplementedError(f"{self.name} does not hand off")

    def bucket(self, ctx: JobContext, idea: Idea, stage: Optional[Stage] = None) -> Bucket:
        stage = Stage(stage or self.stage)
        bucket_id = idea.bucket_for(stage)
        if not bucket_id:
            raise InvalidTransition(f"No bucket assigned for stage {stage.value}", details={"ideaId": idea.id})
        return ctx.services.buckets.get(bucket_id)

    def commit(
        self,
        ctx: JobContext,
        idea: Idea,
        artifacts: Mapping[str, Any],
        *,
        stage: Optional[Stage] = None,
        status: IdeaStatus = IdeaStatus.PENDING,
        extra: Optional[Dict[str, Any]] = None,
        owner: Optional[Stage] = None,
    ) -> Idea:
        """Write this job's artifacts and hand the idea back (or forward).

        Only fields owned by ``owner`` (default ``self.stage``) may be written, conditional on the
        idea still being processing under this run's lease.
        """
        owned = STAGE_FIELDS[Stage(owner or self.stage).value]
        foreign = [k for k in artifacts if k not in owned]
        if foreign:
            raise ValueError(f"{self.name} may not write {foreign}")
        patch: Dict[str, Any] = dict(artifacts)
        patch["status"] = IdeaStatus(status).value
        if stage is not None:
            patch["stage"] = Stage(stage).value
        for key, value in (extra or {}).items():
            if key not in _CONTROL_FIELDS:
                raise ValueError(f"{self.name} may not set {key}")
            patch[key] = value
        return ctx.services.ideas.update(
            idea.id,
            patch,
            expected_status=IdeaStatus.PROCESSING,
            lease=ctx.run_id,
        )

    def recover(self, ctx: JobContext, exc: BaseException) -> None:
        """Return the idea to pending at its unchanged stage with a revision note."""
        idea_id = ctx.data.get("ideaId")
        if not idea_id:
            return
        try:
            idea = ctx.services.ideas.get(idea_id)
        except NotFound:
            return
        # A handoff that never went out still leaves the lease with this run
        lease = idea.activeEventId if self._handed_off(ctx, idea) else ctx.run_id
        if idea.status != IdeaStatus.PROCESSING.value or idea.activeEventId != lease:
            return
        code = exc.code if isinstance(exc, PipelineError) else type(exc).__name__
        entry = RevisionEntry(
            stage=idea.stage,
            type=RevisionType.REVISION,
            notes=f"{self.name} failed ({code}): {exc}",
            transition=idea.transitionCount,
        )
        try:
            ctx.services.ledger.append(
                idea_id,
                entry,
                {"status": IdeaStatus.PENDING.value},
                expected_status=IdeaStatus.PROCESSING,
                lease=lease,
            )
        except (Conflict, InvalidTransition) as err:
            log_error(ctx.run_id, f"{self.name}:recover_conflict", ideaId=idea_id, error=str(err))
            return
        log_info(ctx.run_id, f"{self.name}:returned_to_pending", ideaId=idea_id, stage=idea.stage, code=code)
