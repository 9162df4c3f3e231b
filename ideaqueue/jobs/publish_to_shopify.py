from typing import Any, Dict, Optional

from ideaqueue.jobs.base import IdeaJob
from ideaqueue.jobs.harness import JobContext
from ideaqueue.specs.common.datetime_utils import utc_now
from ideaqueue.specs.common.enums import IdeaStatus, Stage
from ideaqueue.specs.common.errors import ExternalServiceError
from ideaqueue.specs.models.artifacts import SyncStatus
from ideaqueue.specs.models.domain import Idea
from ideaqueue.shared.logging_utils import info as log_info


class PublishToShopifyJob(IdeaJob):
    name = "publish-to-shopify"
    description = "Wait for the Printful sync, then finish the Shopify listing"
    events = ("printful.created",)
    stage = Stage.PUBLISH
    retries = 3

    def _synced(self, ctx: JobContext, product_id: str) -> Optional[SyncStatus]:
        status = ctx.services.fulfillment.get_sync_status(product_id)
        return status if status.synced > 0 else None

    def execute(self, ctx: JobContext, idea: Idea) -> Dict[str, Any]:
        services = ctx.services
        settings = services.settings
        product_id = ctx.data.get("printfulProductId") or idea.printfulProductId
        if not product_id:
            raise ExternalServiceError("printful", "no sync product recorded for idea", details={"ideaId": idea.id})

        status = SyncStatus.model_validate(
            ctx.step(
                "await-sync",
                lambda: ctx.poll(
                    lambda: self._synced(ctx, product_id),
                    attempts=settings.syncPollAttempts,
                    interval=settings.syncPollIntervalSeconds,
                    description="Printful store sync",
                ),
            )
        )
        shopify_id = status.externalId
        if not shopify_id:
            raise ExternalServiceError("printful", "synced product has no storefront id", details={"productId": product_id})
        log_info(ctx.run_id, "shopify:synced", ideaId=idea.id, shopifyProductId=shopify_id)

        ctx.step(
            "update-metadata",
            lambda: services.storefront.update_product_metadata(
                shopify_id,
                title=idea.productTitle,
                body_html=idea.productDescription,
                tags=list(idea.productTags),
            ),
        )
        if idea.shopifyCollectionId:
            ctx.step(
                "add-to-collection",
                lambda: services.storefront.add_product_to_collection(shopify_id, idea.shopifyCollectionId),
            )

        url = services.storefront.product_url(shopify_id)
        self.commit(
            ctx,
            idea,
            {"shopifyProductId": shopify_id, "shopifyProductUrl": url, "publishedAt": utc_now()},
            stage=Stage.PUBLISH,
            status=IdeaStatus.APPROVED,
            extra={"activeEventId": None},
        )
        ctx.emit("idea.published", {"ideaId": idea.id, "shopifyProductUrl": url})
        return {"ideaId": idea.id, "shopifyProductId": shopify_id, "shopifyProductUrl": url}
