from typing import Any, Dict, Optional

from ideaqueue.jobs.base import IdeaJob
from ideaqueue.jobs.harness import JobContext
from ideaqueue.ports.prompts import design_prompt
from ideaqueue.specs.common.enums import Stage
from ideaqueue.specs.common.errors import GenerationFailure
from ideaqueue.specs.models.artifacts import DesignConcept
from ideaqueue.specs.models.domain import Idea
from ideaqueue.shared.logging_utils import info as log_info


class CreateDesignJob(IdeaJob):
    name = "create-design"
    description = "Generate design concept art for an approved phrase"
    events = ("job/create-design",)
    stage = Stage.DESIGN
    manual = True

    def generate(self, ctx: JobContext, idea: Idea, guidance: Optional[str]) -> Dict[str, Any]:
        services = ctx.services
        bucket = self.bucket(ctx, idea, Stage.DESIGN)
        prompt = design_prompt(idea, services.config.brand, bucket, guidance)
        log_info(ctx.run_id, "design:generate", ideaId=idea.id, bucketId=bucket.id, guided=bool(guidance))
        raw = ctx.step(
            "generate-concepts",
            lambda: services.images.generate_concepts(
                prompt,
                count=services.settings.designConceptCount,
                style=idea.graphicStyle,
            ),
        )
        concepts = [DesignConcept.model_validate(c) for c in raw]
        if not concepts:
            raise GenerationFailure("No design concepts generated", details={"ideaId": idea.id})
        return {"mockupImageUrl": concepts[0].imageUrl, "designVariants": concepts}

    def execute(self, ctx: JobContext, idea: Idea) -> Dict[str, Any]:
        guidance = ctx.services.ledger.forward_guidance_for(idea, Stage.PHRASE)
        artifacts = self.generate(ctx, idea, guidance)
        self.commit(ctx, idea, artifacts, stage=Stage.DESIGN)
        ctx.emit("design.created", {"ideaId": idea.id})
        return {"ideaId": idea.id, "concepts": len(artifacts["designVariants"]), "guided": bool(guidance)}
