"""Job catalog: every job the pipeline runs, and the event that starts each stage."""
from typing import Dict, List

from ideaqueue.jobs.analyze_categories import AnalyzeCategoriesJob
from ideaqueue.jobs.configure_listing import ConfigureListingJob
from ideaqueue.jobs.configure_product import ConfigureProductJob
from ideaqueue.jobs.create_design import CreateDesignJob
from ideaqueue.jobs.create_printful_product import CreatePrintfulProductJob
from ideaqueue.jobs.generate_ideas import GenerateIdeasJob
from ideaqueue.jobs.harness import Job
from ideaqueue.jobs.notify_stage import NotifyStageJob
from ideaqueue.jobs.publish_to_shopify import PublishToShopifyJob
from ideaqueue.jobs.refine_idea import RefineIdeaJob
from ideaqueue.specs.common.enums import Stage

# Event emitted when an idea advances into a stage
STAGE_TRIGGERS: Dict[str, str] = {
    Stage.DESIGN.value: "job/create-design",
    Stage.PRODUCT.value: "job/configure-product",
    Stage.LISTING.value: "job/configure-listing",
    Stage.PUBLISH.value: "job/create-printful-product",
}

# Stage job name -> stage it moves an idea into
STAGE_JOBS: Dict[str, str] = {
    "create-design": Stage.DESIGN.value,
    "configure-product": Stage.PRODUCT.value,
    "configure-listing": Stage.LISTING.value,
    "create-printful-product": Stage.PUBLISH.value,
}

REFINE_EVENT = "job/refine-idea"


def build_jobs() -> List[Job]:
    return [
        GenerateIdeasJob(),
        CreateDesignJob(),
        ConfigureProductJob(),
        ConfigureListingJob(),
        CreatePrintfulProductJob(),
        PublishToShopifyJob(),
        RefineIdeaJob(),
        AnalyzeCategoriesJob(),
        NotifyStageJob(),
    ]
