from .artifacts import (
    DesignConcept,
    ListingOption,
    ListingOptions,
    PhraseConcept,
    PlacementSpec,
    ProductSuggestions,
    ProductVariant,
    SyncVariant,
)
from .domain import Bucket, BrandConfig, Category, Idea, RevisionEntry
from .runs import JobRun

__all__ = [
    "Idea",
    "RevisionEntry",
    "Bucket",
    "Category",
    "BrandConfig",
    "PhraseConcept",
    "DesignConcept",
    "ProductVariant",
    "ProductSuggestions",
    "ListingOption",
    "ListingOptions",
    "SyncVariant",
    "PlacementSpec",
    "JobRun",
]
