import uuid
from typing import Any, Dict, List

from ideaqueue.jobs.harness import Job, JobContext, JobServices
from ideaqueue.ports.prompts import phrase_prompt
from ideaqueue.specs.common.enums import IdeaStatus, Stage
from ideaqueue.specs.common.errors import ConfigurationError, Conflict, GenerationFailure
from ideaqueue.specs.models.artifacts import PhraseConcept
from ideaqueue.specs.models.domain import Category, Idea
from ideaqueue.shared.logging_utils import info as log_info


def published_count(services: JobServices, category_id: str) -> int:
    return len(
        services.ideas.list(
            category_id=category_id,
            stage=Stage.PUBLISH.value,
            status=IdeaStatus.APPROVED.value,
        )
    )


def pick_category(services: JobServices) -> Category:
    """Active category with the largest gap between target and published ideas."""
    categories = services.config.categories()
    if not categories:
        raise ConfigurationError("No active categories configured")
    return max(
        categories,
        key=lambda c: (c.targetCount - published_count(services, c.id), -c.sortOrder),
    )


def dedupe_phrases(concepts: List[PhraseConcept], existing: List[str]) -> List[PhraseConcept]:
    """Drop phrases already in the category or repeated in the batch, ignoring case."""
    seen = {p.strip().lower() for p in existing}
    unique: List[PhraseConcept] = []
    for concept in concepts:
        key = concept.phrase.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(concept)
    return unique


class GenerateIdeasJob(Job):
    name = "generate-ideas"
    description = "Generate a batch of new phrase ideas for one category"
    events = ("job/generate-ideas",)
    retries = 3
    manual = True

    def run(self, ctx: JobContext) -> Dict[str, Any]:
        services = ctx.services
        brand = services.config.brand
        category_id = ctx.data.get("categoryId") or ctx.step("pick-category", lambda: pick_category(services).id)
        category = services.config.category(category_id)

        bucket_id = ctx.step(
            "assign-bucket",
            lambda: services.buckets.assign(Stage.PHRASE, ctx.data.get("bucketId")),
        )
        bucket = services.buckets.get(bucket_id)

        existing = ctx.step(
            "existing-phrases",
            lambda: [i.phrase for i in services.ideas.list(category_id=category.id)],
        )
        batch_size = services.settings.ideaBatchSize or brand.ideaBatchSize
        system_prompt, user_prompt = phrase_prompt(brand, category, bucket, existing, batch_size)
        model = brand.aiModelPreference or None
        log_info(ctx.run_id, "phrase:generate", categoryId=category.id, bucketId=bucket_id, batchSize=batch_size)

        def _generate() -> Dict[str, Any]:
            concepts = services.text.generate_structured(
                user_prompt, List[PhraseConcept], system_prompt=system_prompt, model=model
            )[:batch_size]
            unique = dedupe_phrases(concepts, existing)
            if not unique:
                raise GenerationFailure(
                    "No new phrases generated",
                    details={"categoryId": category.id, "returned": len(concepts)},
                )
            return {"concepts": unique, "dropped": len(concepts) - len(unique)}

        # Unusable output raises inside the step, so a retry asks the model again
        generated = ctx.step("generate-phrases", _generate)
        unique = [PhraseConcept.model_validate(c) for c in generated["concepts"]]
        dropped = generated["dropped"]

        created: List[str] = []
        for index, concept in enumerate(unique):
            # Stable per run and position so a retry finds what it already wrote
            idea_id = uuid.uuid5(uuid.NAMESPACE_URL, f"ideaqueue:{ctx.run_id}:{index}").hex
            idea = Idea(
                id=idea_id,
                categoryId=category.id,
                stage=Stage.PHRASE,
                status=IdeaStatus.PENDING,
                phraseBucketId=bucket_id,
                phrase=concept.phrase.strip(),
                phraseExplanation=concept.explanation or None,
                graphicDescription=concept.graphicDescription or None,
                graphicStyle=concept.graphicStyle or None,
                suggestedApparelType=concept.apparelType or None,
                aiModel=model or services.text.model or None,
                aiPrompt=user_prompt,
            )
            try:
                services.ideas.create(idea)
            except Conflict:
                log_info(ctx.run_id, "phrase:already_created", ideaId=idea_id)
            created.append(idea_id)
            ctx.emit("idea.created", {"ideaId": idea_id, "categoryId": category.id}, key=f"idea.created:{idea_id}")

        log_info(ctx.run_id, "phrase:created", count=len(created), dropped=dropped)
        return {
            "categoryId": category.id,
            "bucketId": bucket_id,
            "ideaIds": created,
            "dropped": dropped,
        }
