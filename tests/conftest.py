import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from ideaqueue.pipeline import Pipeline, build_pipeline
from ideaqueue.ports.base import FulfillmentPort, ImageGenerator, Notifier, StorefrontPort, TextGenerator
from ideaqueue.specs.common.enums import IdeaStatus, Stage
from ideaqueue.specs.models.artifacts import (
    DesignConcept,
    FileStatus,
    PlacementSpec,
    SyncProduct,
    SyncStatus,
    SyncVariant,
    UploadedFile,
)
from ideaqueue.specs.models.domain import Idea
from ideaqueue.shared.config_store import ConfigStore
from ideaqueue.shared.dispatcher import InlineTransport
from ideaqueue.shared.idea_store import MemoryIdeaStore
from ideaqueue.shared.run_state import MemoryRunStateStore
from ideaqueue.shared.settings import PipelineSettings

ROOT = Path(__file__).resolve().parents[1]
SEED_FILE = ROOT / "config" / "seed.yaml"

Scripted = Union[str, Exception, Callable[[str], str]]


class ScriptedTextGenerator(TextGenerator):
    """Returns queued responses in order; exceptions in the queue are raised."""

    model = "test/model"

    def __init__(self, responses: Optional[List[Scripted]] = None) -> None:
        self.responses: List[Scripted] = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *responses: Scripted) -> None:
        self.responses.extend(responses)

    def queue_json(self, *payloads: Any) -> None:
        self.responses.extend(json.dumps(p) for p in payloads)

    def generate(self, prompt, *, system_prompt=None, model=None) -> str:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "model": model})
        if not self.responses:
            raise AssertionError("no scripted text response left")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(prompt)
        return item


class FakeImageGenerator(ImageGenerator):
    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.failures: List[Exception] = []
        self._counter = 0

    def generate_concepts(self, prompt, count=4, style=None) -> List[DesignConcept]:
        self.calls.append({"prompt": prompt, "count": count, "style": style})
        if self.failures:
            raise self.failures.pop(0)
        concepts = []
        for _ in range(count):
            self._counter += 1
            concepts.append(DesignConcept(imageUrl=f"https://img.test/{self._counter}.png", seed=self._counter))
        return concepts


class FakePrintful(FulfillmentPort):
    def __init__(self) -> None:
        # method name -> exceptions raised by its next calls
        self.failures: Dict[str, List[Exception]] = {}
        self.file_statuses: List[str] = []
        self.sync_statuses: List[int] = []
        self.uploads: List[str] = []
        self.created: List[Dict[str, Any]] = []
        self.file_checks = 0
        self.sync_checks = 0

    def _maybe_fail(self, method: str) -> None:
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)

    def upload_file(self, url: str) -> UploadedFile:
        self._maybe_fail("upload_file")
        self.uploads.append(url)
        return UploadedFile(fileId=f"file-{len(self.uploads)}", url=url)

    def get_file_status(self, file_id: str) -> FileStatus:
        self._maybe_fail("get_file_status")
        self.file_checks += 1
        status = self.file_statuses.pop(0) if self.file_statuses else "ok"
        return FileStatus(fileId=file_id, status=status)

    def create_sync_product(self, *, external_id, title, description, variants, placements, file_url) -> SyncProduct:
        self._maybe_fail("create_sync_product")
        self.created.append(
            {
                "external_id": external_id,
                "title": title,
                "description": description,
                "variants": variants,
                "placements": placements,
                "file_url": file_url,
            }
        )
        return SyncProduct(productId=f"pf-{len(self.created)}", externalId=external_id)

    def get_sync_status(self, product_id: str) -> SyncStatus:
        self._maybe_fail("get_sync_status")
        self.sync_checks += 1
        synced = self.sync_statuses.pop(0) if self.sync_statuses else 1
        return SyncStatus(productId=product_id, synced=synced, externalId="shop-101" if synced else None)


class FakeShopify(StorefrontPort):
    def __init__(self) -> None:
        self.metadata: List[Dict[str, Any]] = []
        self.collections: List[Any] = []

    def update_product_metadata(self, product_id, *, title=None, body_html=None, tags=None) -> None:
        self.metadata.append({"product_id": product_id, "title": title, "body_html": body_html, "tags": tags})

    def add_product_to_collection(self, product_id, collection_id) -> None:
        self.collections.append((product_id, collection_id))

    def product_url(self, product_id: str) -> str:
        return f"https://shop.test/products/{product_id}"


class RecordingNotifier(Notifier):
    def __init__(self, configured: bool = True) -> None:
        self._configured = configured
        self.messages: List[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def send(self, text: str) -> bool:
        self.messages.append(text)
        return True


def phrase_payload(*phrases: str) -> List[Dict[str, str]]:
    return [
        {
            "phrase": p,
            "explanation": f"About {p}",
            "graphicDescription": "A comal with sunglasses",
            "graphicStyle": "retro loteria",
            "apparelType": "t-shirt",
        }
        for p in phrases
    ]


def product_payload(*apparel: str) -> Dict[str, Any]:
    return {
        "suggestions": [
            {"apparelType": a, "colors": ["black"], "sizes": ["S", "M", "L"], "retailPrice": 29.5, "reasoning": "fits"}
            for a in apparel
        ]
    }


def listing_payload(*titles: str) -> Dict[str, Any]:
    return {
        "options": [
            {"title": t, "description": f"{t} description", "tags": [t.lower(), "spanglish"], "angle": "seo"}
            for t in titles
        ]
    }


def make_settings(**overrides: Any) -> PipelineSettings:
    values: Dict[str, Any] = {
        "seedFile": SEED_FILE,
        "ideaStoreBackend": "memory",
        "runStateBackend": "memory",
        "filePollAttempts": 3,
        "filePollIntervalSeconds": 0,
        "syncPollAttempts": 3,
        "syncPollIntervalSeconds": 0,
        "retryBackoffSeconds": 0,
    }
    values.update(overrides)
    return PipelineSettings(**values)


class PipelineHarness:
    """A pipeline wired to fakes, plus shortcuts used across tests."""

    def __init__(self, pipeline: Pipeline, **fakes: Any) -> None:
        self.pipeline = pipeline
        self.text: ScriptedTextGenerator = fakes["text"]
        self.images: FakeImageGenerator = fakes["images"]
        self.printful: FakePrintful = fakes["printful"]
        self.shopify: FakeShopify = fakes["shopify"]
        self.notifier: RecordingNotifier = fakes["notifier"]
        self.transport: InlineTransport = fakes["transport"]

    @property
    def gateway(self):
        return self.pipeline.gateway

    @property
    def ideas(self):
        return self.pipeline.services.ideas

    @property
    def run_state(self):
        return self.pipeline.services.run_state

    def seed_idea(self, **fields: Any) -> Idea:
        values: Dict[str, Any] = {
            "id": fields.pop("id", "idea-1"),
            "categoryId": "kitchen-sayings",
            "phrase": "No manches",
            "stage": Stage.PHRASE,
            "status": IdeaStatus.PENDING,
            "phraseBucketId": "phrase-flowers-nature",
        }
        values.update(fields)
        return self.ideas.create(Idea(**values))

    def seed_listing_idea(self, **fields: Any) -> Idea:
        values: Dict[str, Any] = {
            "stage": Stage.LISTING,
            "mockupImageUrl": "https://img.test/mock.png",
            "productTitle": "No Manches Tee",
            "productDescription": "Bilingual humor",
            "productTags": ["spanglish"],
            "printfulCatalogId": 71,
            "syncVariants": [SyncVariant(printfulVariantId=4012, retailPrice="29.50")],
            "printPlacements": [PlacementSpec(placement="front")],
            "designBucketId": "design-retro-loteria",
            "productBucketId": "product-t-shirts",
            "listingBucketId": "listing-seo-heavy",
        }
        values.update(fields)
        return self.seed_idea(**values)

    def runs(self, job_name: str):
        return self.run_state.list_runs(job_name)


def build_test_pipeline(auto_drain: bool = True, **overrides: Any) -> PipelineHarness:
    fakes = {
        "text": ScriptedTextGenerator(),
        "images": FakeImageGenerator(),
        "printful": FakePrintful(),
        "shopify": FakeShopify(),
        "notifier": RecordingNotifier(),
        "transport": InlineTransport(auto_drain=auto_drain),
    }
    settings = make_settings(**overrides)
    pipeline = build_pipeline(
        settings,
        config=ConfigStore.from_yaml(SEED_FILE),
        ideas=MemoryIdeaStore(),
        run_state=MemoryRunStateStore(),
        transport=fakes["transport"],
        text=fakes["text"],
        images=fakes["images"],
        fulfillment=fakes["printful"],
        storefront=fakes["shopify"],
        notifier=fakes["notifier"],
    )
    return PipelineHarness(pipeline, **fakes)


@pytest.fixture
def pq() -> PipelineHarness:
    return build_test_pipeline()


@pytest.fixture
def config() -> ConfigStore:
    return ConfigStore.from_yaml(SEED_FILE)
