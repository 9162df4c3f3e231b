from typing import Any, Dict, List, Optional

from ideaqueue.jobs.base import IdeaJob
from ideaqueue.jobs.harness import JobContext
from ideaqueue.specs.common.enums import IdeaStatus, Stage
from ideaqueue.specs.common.errors import InvalidTransition, PipelineError
from ideaqueue.specs.models.artifacts import PlacementSpec, SyncProduct, UploadedFile
from ideaqueue.specs.models.domain import Idea
from ideaqueue.shared.logging_utils import info as log_info


def missing_publish_fields(idea: Idea) -> List[str]:
    """Operator selections that must be present before fulfillment starts."""
    missing = []
    if not idea.printfulCatalogId:
        missing.append("printfulCatalogId")
    if not idea.syncVariants:
        missing.append("syncVariants")
    if not idea.productTitle:
        missing.append("productTitle")
    if not idea.design_file():
        missing.append("designFileUrl")
    return missing


class CreatePrintfulProductJob(IdeaJob):
    name = "create-printful-product"
    description = "Upload the design to Printful and create the sync product"
    events = ("job/create-printful-product",)
    stage = Stage.PUBLISH
    manual = True
    handoff_event = "printful.created"

    def _file_ready(self, ctx: JobContext, file_id: str) -> Optional[str]:
        status = ctx.services.fulfillment.get_file_status(file_id)
        if status.status == "ok":
            return status.status
        if status.status == "failed":
            raise PipelineError(
                "Printful could not process the design file",
                code="FULFILLMENT_FILE_FAILED",
                details={"fileId": file_id},
            )
        return None

    def execute(self, ctx: JobContext, idea: Idea) -> Dict[str, Any]:
        services = ctx.services
        settings = services.settings
        missing = missing_publish_fields(idea)
        if missing:
            raise InvalidTransition(
                f"Missing required fields for publishing: {', '.join(missing)}",
                details={"ideaId": idea.id, "missing": missing},
            )

        file_url = idea.design_file()
        uploaded = UploadedFile.model_validate(
            ctx.step("upload-file", lambda: services.fulfillment.upload_file(file_url))
        )
        log_info(ctx.run_id, "printful:file_uploaded", ideaId=idea.id, fileId=uploaded.fileId)
        ctx.step(
            "await-file",
            lambda: ctx.poll(
                lambda: self._file_ready(ctx, uploaded.fileId),
                attempts=settings.filePollAttempts,
                interval=settings.filePollIntervalSeconds,
                description="Printful file processing",
            ),
        )

        placements = list(idea.printPlacements) or [PlacementSpec()]
        product = SyncProduct.model_validate(
            ctx.step(
                "create-sync-product",
                lambda: services.fulfillment.create_sync_product(
                    external_id=idea.id,
                    title=idea.productTitle or idea.phrase,
                    description=idea.productDescription or "",
                    variants=list(idea.syncVariants),
                    placements=placements,
                    file_url=uploaded.url or file_url,
                ),
            )
        )
        log_info(ctx.run_id, "printful:product_created", ideaId=idea.id, printfulProductId=product.productId)

        # The lease moves to the chained event so only its consumer may finish the publish
        chain_id = ctx.chain_event_id(self.handoff_event)
        committed = self.commit(
            ctx,
            idea,
            {
                "printfulFileId": uploaded.fileId,
                "printfulProductId": product.productId,
                "printfulExternalId": product.externalId,
            },
            status=IdeaStatus.PROCESSING,
            extra={"activeEventId": chain_id},
        )
        return self.resume_handoff(ctx, committed)

    def resume_handoff(self, ctx: JobContext, idea: Idea) -> Dict[str, Any]:
        ctx.emit(self.handoff_event, {"ideaId": idea.id, "printfulProductId": idea.printfulProductId})
        return {"ideaId": idea.id, "printfulFileId": idea.printfulFileId, "printfulProductId": idea.printfulProductId}
