from __future__ import annotations

from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ideaqueue.specs.common.datetime_utils import utc_now
from ideaqueue.specs.common.enums import IdeaStatus, RevisionType, Stage
from ideaqueue.specs.models.artifacts import (
    DesignConcept,
    ListingOption,
    PlacementSpec,
    ProductVariant,
    SyncVariant,
)


class RevisionEntry(BaseModel):
    """Operator feedback attached to an idea.

    ``transition`` is the idea's ``transitionCount`` when the entry was
    logged; forward guidance is only honoured by the transition that wrote it.
    """

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    stage: Stage
    type: RevisionType
    notes: str
    timestamp: str = Field(default_factory=utc_now)
    transition: int = 0


class Bucket(BaseModel):
    """Stage-scoped prompt profile."""

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    id: str
    stage: Stage
    name: str
    prompt: str
    sortOrder: int = 0
    isActive: bool = True


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    promptContext: Optional[str] = None
    targetCount: int = 10
    isActive: bool = True
    sortOrder: int = 0


class BrandConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    verbiageTheme: Optional[str] = None
    verbiagePromptContext: Optional[str] = None
    toneGuidelines: Optional[str] = None
    graphicThemes: Optional[str] = None
    defaultApparelTypes: List[str] = Field(default_factory=lambda: ["t-shirt", "hoodie", "tank-top"])
    defaultMarkupPercent: int = 50
    aiModelPreference: Optional[str] = None
    ideaBatchSize: int = Field(default=5, ge=1)


# Artifact fields each stage job may write. Control fields (stage, status,
# lease, timestamps) are not listed here.
STAGE_FIELDS: Dict[str, Tuple[str, ...]] = {
    Stage.PHRASE.value: (
        "phrase",
        "phraseExplanation",
        "graphicDescription",
        "graphicStyle",
        "suggestedApparelType",
        "aiModel",
        "aiPrompt",
    ),
    Stage.DESIGN.value: ("mockupImageUrl", "designVariants"),
    Stage.PRODUCT.value: ("apparelType", "productVariants"),
    Stage.LISTING.value: ("productTitle", "productDescription", "productTags", "listingVariants"),
    Stage.PUBLISH.value: (
        "printfulFileId",
        "printfulProductId",
        "printfulExternalId",
        "shopifyProductId",
        "shopifyProductUrl",
        "publishedAt",
    ),
}

BUCKET_FIELDS: Dict[str, str] = {
    Stage.PHRASE.value: "phraseBucketId",
    Stage.DESIGN.value: "designBucketId",
    Stage.PRODUCT.value: "productBucketId",
    Stage.LISTING.value: "listingBucketId",
}

class Idea(BaseModel):
    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, use_enum_values=True, validate_default=True
    )

    id: str
    categoryId: str
    stage: Stage = Stage.PHRASE
    status: IdeaStatus = IdeaStatus.PENDING
    createdAt: str = Field(default_factory=utc_now)
    updatedAt: str = Field(default_factory=utc_now)

    phraseBucketId: Optional[str] = None
    designBucketId: Optional[str] = None
    productBucketId: Optional[str] = None
    listingBucketId: Optional[str] = None

    # Event id currently allowed to run a job against this idea
    activeEventId: Optional[str] = None
    transitionCount: int = 0

    # phrase
    phrase: str
    phraseExplanation: Optional[str] = None
    graphicDescription: Optional[str] = None
    graphicStyle: Optional[str] = None
    suggestedApparelType: Optional[str] = None
    aiModel: Optional[str] = None
    aiPrompt: Optional[str] = None

    # design
    mockupImageUrl: Optional[str] = None
    designVariants: List[DesignConcept] = Field(default_factory=list)

    # product
    apparelType: Optional[str] = None
    productVariants: List[ProductVariant] = Field(default_factory=list)

    # listing
    productTitle: Optional[str] = None
    productDescription: Optional[str] = None
    productTags: List[str] = Field(default_factory=list)
    listingVariants: List[ListingOption] = Field(default_factory=list)

    # publish
    printfulFileId: Optional[str] = None
    printfulProductId: Optional[str] = None
    printfulExternalId: Optional[str] = None
    shopifyProductId: Optional[str] = None
    shopifyProductUrl: Optional[str] = None
    publishedAt: Optional[str] = None

    # operator selections
    designFileUrl: Optional[str] = None
    printfulCatalogId: Optional[int] = None
    syncVariants: List[SyncVariant] = Field(default_factory=list)
    printPlacements: List[PlacementSpec] = Field(default_factory=list)
    shopifyCollectionId: Optional[str] = None

    revisionHistory: List[RevisionEntry] = Field(default_factory=list)

    @computed_field
    @property
    def variants(self) -> List[Union[DesignConcept, ProductVariant, ListingOption]]:
        """Variant list owned by the current stage."""
        if self.stage == Stage.DESIGN:
            return list(self.designVariants)
        if self.stage == Stage.PRODUCT:
            return list(self.productVariants)
        if self.stage == Stage.LISTING:
            return list(self.listingVariants)
        return []

    @property
    def is_terminal(self) -> bool:
        if self.status == IdeaStatus.REJECTED:
            return True
        return self.stage == Stage.PUBLISH and self.status == IdeaStatus.APPROVED

    def bucket_for(self, stage: Stage) -> Optional[str]:
        field = BUCKET_FIELDS.get(Stage(stage).value)
        return getattr(self, field) if field else None

    def design_file(self) -> Optional[str]:
        return self.designFileUrl or self.mockupImageUrl


__all__ = [
    "RevisionEntry",
    "Bucket",
    "Category",
    "BrandConfig",
    "Idea",
    "STAGE_FIELDS",
    "BUCKET_FIELDS",
]
