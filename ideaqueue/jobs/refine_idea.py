from typing import Any, Dict

from ideaqueue.jobs.base import IdeaJob
from ideaqueue.jobs.create_design import CreateDesignJob
from ideaqueue.jobs.configure_listing import ConfigureListingJob
from ideaqueue.jobs.configure_product import ConfigureProductJob
from ideaqueue.jobs.harness import JobContext
from ideaqueue.ports.prompts import refine_prompt
from ideaqueue.specs.common.enums import Stage
from ideaqueue.specs.common.errors import InvalidTransition
from ideaqueue.specs.models.artifacts import ListingOptions, PhraseConcept, ProductSuggestions
from ideaqueue.specs.models.domain import Idea
from ideaqueue.specs.queue.message import EventMessage
from ideaqueue.shared.logging_utils import info as log_info

# Refines share the single-flight key of the job that owns the stage
STAGE_JOB_KEYS = {
    Stage.PHRASE.value: "generate-ideas",
    Stage.DESIGN.value: "create-design",
    Stage.PRODUCT.value: "configure-product",
    Stage.LISTING.value: "configure-listing",
}


def _phrase_artifacts(concept: PhraseConcept) -> Dict[str, Any]:
    return {
        "phrase": concept.phrase.strip(),
        "phraseExplanation": concept.explanation or None,
        "graphicDescription": concept.graphicDescription or None,
        "graphicStyle": concept.graphicStyle or None,
        "suggestedApparelType": concept.apparelType or None,
    }


class RefineIdeaJob(IdeaJob):
    name = "refine-idea"
    description = "Regenerate the current stage's artifacts from operator feedback"
    events = ("job/refine-idea",)

    def __init__(self) -> None:
        self._design = CreateDesignJob()

    def concurrency_key_for(self, message: EventMessage) -> str:
        stage = message.data.get("stage")
        return STAGE_JOB_KEYS.get(stage, self.name)

    def execute(self, ctx: JobContext, idea: Idea) -> Dict[str, Any]:
        services = ctx.services
        notes = ctx.data.get("notes") or ""
        stage = Stage(ctx.data.get("stage") or idea.stage)
        if stage.value != idea.stage or stage.value not in STAGE_JOB_KEYS:
            raise InvalidTransition(
                f"Cannot refine stage {stage.value} of an idea at {idea.stage}",
                details={"ideaId": idea.id},
            )
        log_info(ctx.run_id, "refine:start", ideaId=idea.id, stage=stage.value)

        if stage == Stage.DESIGN:
            artifacts = self._design.generate(ctx, idea, notes)
        else:
            bucket = self.bucket(ctx, idea, stage)
            # The notes just logged are the newest entry; history covers what came before
            history = services.ledger.history_lines(idea)[1:]
            system_prompt, user_prompt = refine_prompt(idea, services.config.brand, bucket, notes, history)
            model = services.config.brand.aiModelPreference
            if stage == Stage.PHRASE:
                raw = ctx.step(
                    "regenerate",
                    lambda: services.text.generate_structured(
                        user_prompt, PhraseConcept, system_prompt=system_prompt, model=model
                    ),
                )
                artifacts = _phrase_artifacts(PhraseConcept.model_validate(raw))
                artifacts["aiPrompt"] = user_prompt
            elif stage == Stage.PRODUCT:
                raw = ctx.step(
                    "regenerate",
                    lambda: services.text.generate_structured(
                        user_prompt, ProductSuggestions, system_prompt=system_prompt, model=model
                    ),
                )
                artifacts = ConfigureProductJob.artifacts_from(ProductSuggestions.model_validate(raw))
            else:
                raw = ctx.step(
                    "regenerate",
                    lambda: services.text.generate_structured(
                        user_prompt, ListingOptions, system_prompt=system_prompt, model=model
                    ),
                )
                artifacts = ConfigureListingJob.artifacts_from(ListingOptions.model_validate(raw))

        self.commit(ctx, idea, artifacts, owner=stage)
        log_info(ctx.run_id, "refine:completed", ideaId=idea.id, stage=stage.value)
        return {"ideaId": idea.id, "stage": stage.value, "fields": sorted(artifacts)}
