from typing import Any, Dict

from ideaqueue.jobs.base import IdeaJob
from ideaqueue.jobs.harness import JobContext
from ideaqueue.ports.prompts import listing_prompt
from ideaqueue.specs.common.enums import Stage
from ideaqueue.specs.models.artifacts import ListingOptions
from ideaqueue.specs.models.domain import Idea
from ideaqueue.shared.logging_utils import info as log_info

MAX_LISTING_OPTIONS = 4


class ConfigureListingJob(IdeaJob):
    name = "configure-listing"
    description = "Write listing copy variations (title, description, tags)"
    events = ("job/configure-listing",)
    stage = Stage.LISTING
    manual = True

    @staticmethod
    def artifacts_from(listing: ListingOptions) -> Dict[str, Any]:
        options = listing.options[:MAX_LISTING_OPTIONS]
        primary = options[0]
        return {
            "productTitle": primary.title,
            "productDescription": primary.description,
            "productTags": list(primary.tags),
            "listingVariants": options,
        }

    def execute(self, ctx: JobContext, idea: Idea) -> Dict[str, Any]:
        services = ctx.services
        guidance = services.ledger.forward_guidance_for(idea, Stage.PRODUCT)
        bucket = self.bucket(ctx, idea)
        system_prompt, user_prompt = listing_prompt(idea, services.config.brand, bucket, guidance)
        log_info(ctx.run_id, "listing:generate", ideaId=idea.id, bucketId=bucket.id, guided=bool(guidance))
        raw = ctx.step(
            "write-listing",
            lambda: services.text.generate_structured(
                user_prompt,
                ListingOptions,
                system_prompt=system_prompt,
                model=services.config.brand.aiModelPreference,
            ),
        )
        artifacts = self.artifacts_from(ListingOptions.model_validate(raw))
        self.commit(ctx, idea, artifacts, stage=Stage.LISTING)
        ctx.emit("listing.configured", {"ideaId": idea.id})
        return {"ideaId": idea.id, "options": len(artifacts["listingVariants"]), "guided": bool(guidance)}
