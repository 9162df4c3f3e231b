from typing import Any, Dict, List

from ideaqueue.jobs.generate_ideas import published_count
from ideaqueue.jobs.harness import Job, JobContext
from ideaqueue.shared.logging_utils import info as log_info

PRIORITIES_KEY = "category-priorities"
TOP_N = 5


class AnalyzeCategoriesJob(Job):
    name = "analyze-categories"
    description = "Rank categories by how far they are from their published target"
    events = ("job/analyze-categories",)
    manual = True
    # Azure Functions NCRONTAB: daily at midnight UTC
    schedule = "0 0 0 * * *"

    def run(self, ctx: JobContext) -> Dict[str, Any]:
        services = ctx.services
        priorities: List[Dict[str, Any]] = []
        for category in services.config.categories():
            published = published_count(services, category.id)
            priorities.append(
                {
                    "categoryId": category.id,
                    "name": category.name,
                    "targetCount": category.targetCount,
                    "publishedCount": published,
                    "priority": max(0, category.targetCount - published),
                }
            )
        priorities.sort(key=lambda p: (-p["priority"], p["categoryId"]))
        services.run_state.set_value(PRIORITIES_KEY, priorities)
        log_info(ctx.run_id, "categories:analyzed", count=len(priorities))
        return {"priorities": priorities[:TOP_N]}
