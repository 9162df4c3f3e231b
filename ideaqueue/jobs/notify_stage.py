import html
from typing import Any, Dict, Optional

from ideaqueue.jobs.harness import Job, JobContext
from ideaqueue.specs.common.errors import NotFound
from ideaqueue.shared.logging_utils import info as log_info, warning as log_warning

_HEADLINES = {
    "idea.created": "New phrase ready for review",
    "design.created": "Design concepts ready for review",
    "product.configured": "Product configuration ready for review",
    "listing.configured": "Listing copy ready for review",
    "idea.published": "Published to the store",
}


class NotifyStageJob(Job):
    """Tells the operator an idea is waiting for a decision. Read-only."""

    name = "notify-stage"
    description = "Send an operator notification when an idea is ready for review"
    events = tuple(_HEADLINES)

    def _message(self, ctx: JobContext) -> Optional[str]:
        idea_id = ctx.data.get("ideaId")
        try:
            idea = ctx.services.ideas.get(idea_id)
        except NotFound:
            return None
        lines = [
            f"<b>{html.escape(_HEADLINES[ctx.event.name])}</b>",
            f"\"{html.escape(idea.phrase)}\"",
            f"Stage: {html.escape(idea.stage)} / {html.escape(idea.status)}",
        ]
        if idea.shopifyProductUrl:
            lines.append(html.escape(idea.shopifyProductUrl))
        site = ctx.services.settings.publicSiteUrl
        if site:
            lines.append(html.escape(f"{site.rstrip('/')}/admin/ideas/{idea.id}"))
        return "\n".join(lines)

    def run(self, ctx: JobContext) -> Dict[str, Any]:
        notifier = ctx.services.notifier
        if not notifier.configured:
            log_warning(ctx.run_id, "notify:not_configured", event=ctx.event.name)
            return {"sent": False, "reason": "not_configured"}
        text = self._message(ctx)
        if text is None:
            log_warning(ctx.run_id, "notify:idea_missing", ideaId=ctx.data.get("ideaId"))
            return {"sent": False, "reason": "idea_missing"}
        sent = ctx.step("send", lambda: notifier.send(text))
        log_info(ctx.run_id, "notify:sent", event=ctx.event.name, sent=sent)
        return {"sent": bool(sent)}
