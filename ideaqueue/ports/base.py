"""Boundaries to the external services a stage job calls.

Adapters in this package talk to the real services; tests substitute
scripted fakes implementing the same abstract classes.
"""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

from ideaqueue.specs.common.errors import GenerationFailure
from ideaqueue.specs.models.artifacts import (
    DesignConcept,
    FileStatus,
    PlacementSpec,
    SyncProduct,
    SyncStatus,
    SyncVariant,
    UploadedFile,
)

T = TypeVar("T")


def parse_json_response(response: str) -> Any:
    """Parse JSON from a model response, tolerating markdown code fences."""
    cleaned = (response or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    try:
        return json.loads(cleaned.strip())
    except json.JSONDecodeError as exc:
        raise GenerationFailure(
            "Model response was not valid JSON",
            details={"error": str(exc), "preview": cleaned[:200]},
        ) from exc


class TextGenerator(ABC):
    model: str = ""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        """Return the raw completion text. Raises GenerationFailure."""

    def generate_structured(
        self,
        prompt: str,
        schema: Type[T],
        *,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
    ) -> T:
        """Generate and validate against ``schema`` (a model or typing construct)."""
        raw = self.generate(prompt, system_prompt=system_prompt, model=model)
        data = parse_json_response(raw)
        try:
            return TypeAdapter(schema).validate_python(data)
        except ValidationError as exc:
            raise GenerationFailure(
                "Model response did not match the expected shape",
                details={"errors": exc.errors(include_url=False, include_context=False)[:5]},
            ) from exc


class ImageGenerator(ABC):
    @abstractmethod
    def generate_concepts(self, prompt: str, count: int = 4, style: Optional[str] = None) -> List[DesignConcept]:
        """Return up to ``count`` concepts. Raises GenerationFailure."""


class FulfillmentPort(ABC):
    """Print-on-demand provider."""

    @abstractmethod
    def upload_file(self, url: str) -> UploadedFile:
        ...

    @abstractmethod
    def get_file_status(self, file_id: str) -> FileStatus:
        ...

    @abstractmethod
    def create_sync_product(
        self,
        *,
        external_id: str,
        title: str,
        description: str,
        variants: List[SyncVariant],
        placements: List[PlacementSpec],
        file_url: str,
    ) -> SyncProduct:
        ...

    @abstractmethod
    def get_sync_status(self, product_id: str) -> SyncStatus:
        ...


class StorefrontPort(ABC):
    @abstractmethod
    def update_product_metadata(
        self,
        product_id: str,
        *,
        title: Optional[str] = None,
        body_html: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> None:
        ...

    @abstractmethod
    def add_product_to_collection(self, product_id: str, collection_id: str) -> None:
        ...

    @abstractmethod
    def product_url(self, product_id: str) -> str:
        ...


class Notifier(ABC):
    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    def send(self, text: str) -> bool:
        """Deliver ``text``; returns False when nothing was sent."""
