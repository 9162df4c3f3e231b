"""End-to-end walks through the review loop with an inline transport."""
import pytest

from conftest import listing_payload, phrase_payload, product_payload

from ideaqueue.specs.common.enums import Stage
from ideaqueue.specs.common.errors import InvalidTransition
from ideaqueue.specs.models.artifacts import DesignConcept
from ideaqueue.specs.queue.message import EventMessage


def test_advance_phrase_to_design_with_guidance_and_bucket(pq):
    pq.seed_idea()

    idea, event_id = pq.gateway.advance("idea-1", "lean into cactus imagery", "design-retro-loteria")

    assert idea.stage == "design"
    assert idea.status == "pending"
    assert idea.activeEventId is None
    assert idea.designBucketId == "design-retro-loteria"
    assert idea.transitionCount == 1
    assert len(idea.designVariants) == 4
    assert idea.mockupImageUrl in [v.imageUrl for v in idea.designVariants]

    entry = idea.revisionHistory[0]
    assert (entry.stage, entry.type, entry.notes) == ("phrase", "forward", "lean into cactus imagery")
    assert "lean into cactus imagery" in pq.images.calls[0]["prompt"]

    run = pq.gateway.get_run(event_id)
    assert run.status == "completed"
    assert run.jobName == "create-design"


def test_refine_design_replaces_concepts(pq):
    pq.seed_idea()
    before, _ = pq.gateway.advance("idea-1")
    old_urls = {v.imageUrl for v in before.designVariants}

    idea, _ = pq.gateway.refine("idea-1", "make it darker", "design")

    assert idea.stage == "design"
    assert idea.status == "pending"
    assert old_urls.isdisjoint(v.imageUrl for v in idea.designVariants)
    assert idea.revisionHistory[0].stage == "design"
    assert idea.revisionHistory[0].type == "revision"
    assert idea.revisionHistory[0].notes == "make it darker"
    assert "make it darker" in pq.images.calls[-1]["prompt"]


def test_guidance_only_reaches_the_transition_it_was_written_for(pq):
    pq.seed_idea()
    pq.gateway.advance("idea-1", "lean into cactus imagery")
    pq.text.queue_json(product_payload("t-shirt"))

    pq.gateway.advance("idea-1")

    prompt = pq.text.calls[-1]["prompt"]
    assert "cactus" not in prompt


def test_product_then_listing_stages(pq):
    pq.seed_idea()
    pq.gateway.advance("idea-1")

    pq.text.queue_json(product_payload("hoodie", "t-shirt"))
    idea, _ = pq.gateway.advance("idea-1", "keep it under $30", "product-t-shirts")
    assert idea.stage == "product"
    assert idea.apparelType == "hoodie"
    assert [v.apparelType for v in idea.productVariants] == ["hoodie", "t-shirt"]
    assert idea.productVariants[0].retailPrice == "29.50"
    assert "keep it under $30" in pq.text.calls[-1]["prompt"]

    pq.text.queue_json(listing_payload("One", "Two", "Three", "Four", "Five"))
    idea, _ = pq.gateway.advance("idea-1")
    assert idea.stage == "listing"
    assert idea.status == "pending"
    assert idea.listingBucketId
    assert idea.productTitle == "One"
    assert idea.productTags == ["one", "spanglish"]
    assert [o.title for o in idea.listingVariants] == ["One", "Two", "Three", "Four"]
    assert idea.transitionCount == 3


def test_publish_happy_path_is_terminal(pq):
    pq.seed_listing_idea(shopifyCollectionId="col-9")

    idea, event_id = pq.gateway.advance("idea-1")

    assert idea.stage == "publish"
    assert idea.status == "approved"
    assert idea.activeEventId is None
    assert idea.printfulProductId == "pf-1"
    assert idea.shopifyProductId == "shop-101"
    assert idea.shopifyProductUrl == "https://shop.test/products/shop-101"
    assert idea.publishedAt

    assert pq.printful.uploads == ["https://img.test/mock.png"]
    assert pq.printful.created[0]["external_id"] == "idea-1"
    assert pq.shopify.metadata[0]["title"] == "No Manches Tee"
    assert pq.shopify.collections == [("shop-101", "col-9")]

    assert pq.gateway.get_run(event_id).status == "completed"
    assert pq.gateway.get_run(f"{event_id}:printful.created").jobName == "publish-to-shopify"
    assert any("Published to the store" in m for m in pq.notifier.messages)

    with pytest.raises(InvalidTransition):
        pq.gateway.advance("idea-1")
    with pytest.raises(InvalidTransition):
        pq.gateway.refine("idea-1", "again", "publish")
    with pytest.raises(InvalidTransition):
        pq.gateway.reject("idea-1")


def test_designer_file_wins_over_mockup(pq):
    pq.seed_listing_idea(designFileUrl="https://files.test/final.png")
    pq.gateway.advance("idea-1")
    assert pq.printful.uploads == ["https://files.test/final.png"]


def test_publish_preflight_lists_missing_fields(pq):
    pq.seed_idea(stage=Stage.LISTING, productTitle="No Manches Tee")

    with pytest.raises(InvalidTransition) as exc_info:
        pq.gateway.advance("idea-1")

    assert exc_info.value.details["missing"] == ["printfulCatalogId", "syncVariants", "designFileUrl"]
    idea = pq.gateway.get("idea-1")
    assert idea.status == "pending"
    assert idea.transitionCount == 0
    assert pq.printful.uploads == []


def test_file_poll_timeout_returns_idea_to_listing(pq):
    pq.seed_listing_idea()
    pq.printful.file_statuses = ["pending"] * 10

    idea, event_id = pq.gateway.advance("idea-1")

    run = pq.gateway.get_run(event_id)
    assert run.status == "failed"
    assert run.error["code"] == "FULFILLMENT_TIMEOUT"
    assert run.attempts == 1
    assert pq.printful.file_checks == 3

    assert idea.stage == "listing"
    assert idea.status == "pending"
    assert idea.activeEventId is None
    assert idea.revisionHistory[0].type == "revision"
    assert "FULFILLMENT_TIMEOUT" in idea.revisionHistory[0].notes
    assert pq.printful.created == []


def test_failed_printful_file_is_not_retried(pq):
    pq.seed_listing_idea()
    pq.printful.file_statuses = ["failed"]

    _, event_id = pq.gateway.advance("idea-1")

    run = pq.gateway.get_run(event_id)
    assert run.error["code"] == "FULFILLMENT_FILE_FAILED"
    assert run.attempts == 1
    assert pq.gateway.get("idea-1").status == "pending"


def test_sync_timeout_leaves_printful_product_recorded(pq):
    pq.seed_listing_idea()
    pq.printful.sync_statuses = [0] * 20

    _, event_id = pq.gateway.advance("idea-1")

    publish_run = pq.gateway.get_run(f"{event_id}:printful.created")
    assert publish_run.status == "failed"
    assert publish_run.error["code"] == "FULFILLMENT_TIMEOUT"
    idea = pq.gateway.get("idea-1")
    assert idea.stage == "listing"
    assert idea.status == "pending"
    assert idea.printfulProductId == "pf-1"
    assert pq.shopify.metadata == []


def test_image_failures_exhaust_retries_then_recover(pq):
    pq.seed_idea()
    failure = RuntimeError("fal is down")
    pq.images.failures = [failure, failure, failure]

    idea, event_id = pq.gateway.advance("idea-1")

    run = pq.gateway.get_run(event_id)
    assert run.status == "failed"
    assert run.attempts == 3
    assert run.error["code"] == "UNHANDLED_ERROR"
    assert idea.stage == "phrase"
    assert idea.status == "pending"
    assert idea.revisionHistory[0].notes.startswith("create-design failed")


def test_transient_image_failure_is_retried(pq):
    pq.seed_idea()
    pq.images.failures = [RuntimeError("timeout")]

    idea, event_id = pq.gateway.advance("idea-1")

    assert pq.gateway.get_run(event_id).attempts == 2
    assert idea.stage == "design"


def test_rejected_idea_refuses_further_actions(pq):
    pq.seed_idea()
    rejected = pq.gateway.reject("idea-1")
    assert rejected.status == "rejected"

    with pytest.raises(InvalidTransition):
        pq.gateway.advance("idea-1")
    with pytest.raises(InvalidTransition):
        pq.gateway.refine("idea-1", "one more try", "phrase")


def test_stale_trigger_is_acknowledged_without_work(pq):
    pq.seed_idea()
    pq.gateway.reject("idea-1")

    event_id = pq.pipeline.dispatcher.emit("job/create-design", {"ideaId": "idea-1"})

    run = pq.gateway.get_run(event_id)
    assert run.status == "completed"
    assert run.result == {"ideaId": "idea-1", "skipped": "stale"}
    assert pq.images.calls == []
    assert pq.gateway.get("idea-1").status == "rejected"


def test_duplicate_delivery_is_a_no_op(pq):
    pq.seed_idea()
    _, event_id = pq.gateway.advance("idea-1")
    calls = len(pq.images.calls)

    again = pq.pipeline.harness.handle(
        "create-design",
        EventMessage(eventId=event_id, name="job/create-design", data={"ideaId": "idea-1"}),
    )

    assert again.status == "completed"
    assert len(pq.images.calls) == calls
    assert len(pq.gateway.get("idea-1").designVariants) == 4


def test_refine_phrase_rewrites_phrase_fields(pq):
    pq.seed_idea(revisionHistory=[])
    pq.text.queue_json(phrase_payload("Ni modo")[0])

    idea, _ = pq.gateway.refine("idea-1", "shorter please", "phrase")

    assert idea.phrase == "Ni modo"
    assert idea.stage == "phrase"
    assert idea.status == "pending"
    assert "shorter please" in idea.aiPrompt
    assert idea.phraseBucketId == "phrase-flowers-nature"


def test_refine_prompt_carries_earlier_feedback(pq):
    pq.seed_idea()
    pq.text.queue_json(phrase_payload("Ni modo")[0], phrase_payload("Ay caray")[0])

    pq.gateway.refine("idea-1", "shorter please", "phrase")
    pq.gateway.refine("idea-1", "more kitchen", "phrase")

    prompt = pq.text.calls[-1]["prompt"]
    assert "New feedback: more kitchen" in prompt
    assert "- [phrase/revision] shorter please" in prompt


def test_refine_listing_keeps_stage(pq):
    pq.seed_listing_idea()
    pq.text.queue_json(listing_payload("Better Title", "Other", "Third"))

    idea, _ = pq.gateway.refine("idea-1", "punchier", "listing")

    assert idea.stage == "listing"
    assert idea.productTitle == "Better Title"
    assert len(idea.listingVariants) == 3


def test_refine_rejects_wrong_stage_and_empty_notes(pq):
    pq.seed_idea()
    with pytest.raises(InvalidTransition):
        pq.gateway.refine("idea-1", "darker", "design")
    with pytest.raises(InvalidTransition):
        pq.gateway.refine("idea-1", "   ", "phrase")
    assert pq.gateway.get("idea-1").revisionHistory == []


def test_unusable_refine_output_returns_idea_to_pending(pq):
    pq.seed_idea(stage=Stage.PRODUCT, productBucketId="product-t-shirts")
    pq.text.queue("not json", "still not json", "nope")

    _, event_id = pq.gateway.refine("idea-1", "cheaper", "product")

    assert pq.gateway.get_run(event_id).status == "failed"
    idea = pq.gateway.get("idea-1")
    assert idea.status == "pending"
    assert idea.stage == "product"
    assert [e.type for e in idea.revisionHistory[:2]] == ["revision", "revision"]


def test_notifications_follow_each_stage(pq):
    pq.seed_idea(phrase="Tacos & <salsa>")
    pq.gateway.advance("idea-1")

    assert len(pq.notifier.messages) == 1
    message = pq.notifier.messages[0]
    assert "Design concepts ready for review" in message
    assert "Tacos &amp; &lt;salsa&gt;" in message


def test_design_variants_survive_round_trip(pq):
    pq.seed_idea(
        stage=Stage.DESIGN,
        designBucketId="design-retro-loteria",
        designVariants=[DesignConcept(imageUrl="https://img.test/a.png")],
    )
    assert pq.gateway.get("idea-1").designVariants[0].type == "design-concept"


def test_variants_follow_the_current_stage(pq):
    pq.seed_idea(
        stage=Stage.DESIGN,
        designBucketId="design-retro-loteria",
        designVariants=[DesignConcept(imageUrl="https://img.test/a.png", seed=7)],
    )
    idea = pq.gateway.get("idea-1")

    assert [v.imageUrl for v in idea.variants] == ["https://img.test/a.png"]
    dumped = idea.model_dump(mode="json")
    assert dumped["variants"] == dumped["designVariants"]
    assert pq.gateway.get("idea-1").model_dump(mode="json")["variants"][0]["seed"] == 7

    assert pq.seed_idea(id="idea-2").variants == []


def test_listing_with_too_few_options_is_regenerated(pq):
    pq.seed_idea(stage=Stage.PRODUCT, productBucketId="product-t-shirts", apparelType="t-shirt")
    pq.text.queue_json(listing_payload("Only", "Two"), listing_payload("One", "Two", "Three"))

    idea, event_id = pq.gateway.advance("idea-1")

    assert pq.gateway.get_run(event_id).attempts == 2
    assert idea.stage == "listing"
    assert [o.title for o in idea.listingVariants] == ["One", "Two", "Three"]
