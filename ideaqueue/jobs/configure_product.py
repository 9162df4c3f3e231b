from typing import Any, Dict, Optional

from ideaqueue.jobs.base import IdeaJob
from ideaqueue.jobs.harness import JobContext
from ideaqueue.ports.prompts import product_prompt
from ideaqueue.specs.common.enums import Stage
from ideaqueue.specs.models.artifacts import ProductSuggestions
from ideaqueue.specs.models.domain import Idea
from ideaqueue.shared.logging_utils import info as log_info


class ConfigureProductJob(IdeaJob):
    name = "configure-product"
    description = "Suggest apparel types, colors, sizes and prices for a design"
    events = ("job/configure-product",)
    stage = Stage.PRODUCT
    manual = True

    @staticmethod
    def artifacts_from(suggestions: ProductSuggestions) -> Dict[str, Any]:
        return {
            "apparelType": suggestions.suggestions[0].apparelType,
            "productVariants": suggestions.suggestions,
        }

    def execute(self, ctx: JobContext, idea: Idea) -> Dict[str, Any]:
        services = ctx.services
        guidance: Optional[str] = services.ledger.forward_guidance_for(idea, Stage.DESIGN)
        bucket = self.bucket(ctx, idea)
        system_prompt, user_prompt = product_prompt(idea, services.config.brand, bucket, guidance)
        log_info(ctx.run_id, "product:generate", ideaId=idea.id, bucketId=bucket.id, guided=bool(guidance))
        raw = ctx.step(
            "suggest-products",
            lambda: services.text.generate_structured(
                user_prompt,
                ProductSuggestions,
                system_prompt=system_prompt,
                model=services.config.brand.aiModelPreference,
            ),
        )
        suggestions = ProductSuggestions.model_validate(raw)
        self.commit(ctx, idea, self.artifacts_from(suggestions), stage=Stage.PRODUCT)
        ctx.emit("product.configured", {"ideaId": idea.id})
        return {"ideaId": idea.id, "suggestions": len(suggestions.suggestions), "guided": bool(guidance)}
