from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ideaqueue.specs.common.enums import Stage
from ideaqueue.specs.common.errors import ConfigurationError, NotFound
from ideaqueue.specs.models.domain import Bucket, BrandConfig, Category
from ideaqueue.shared.logging_utils import info as log_info


class ConfigStore:
    """Read-only brand voice, categories and prompt buckets."""

    def __init__(self, brand: BrandConfig, categories: List[Category], buckets: List[Bucket]) -> None:
        self.brand = brand
        self._categories = {c.id: c for c in categories}
        self._buckets = {b.id: b for b in buckets}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigStore":
        if not isinstance(data, dict) or "brand" not in data:
            raise ConfigurationError("Seed config must define a 'brand' section")
        try:
            brand = BrandConfig(**data["brand"])
            categories = [Category(**c) for c in data.get("categories") or []]
            buckets: List[Bucket] = []
            for stage, rows in (data.get("buckets") or {}).items():
                for row in rows or []:
                    buckets.append(Bucket(stage=Stage(stage), **row))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid seed config: {exc}") from exc
        return cls(brand, categories, buckets)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ConfigStore":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Seed file not found: {path}", details={"path": str(path)})
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        store = cls.from_dict(data)
        log_info(
            None,
            "config:loaded",
            path=str(path),
            categories=len(store._categories),
            buckets=len(store._buckets),
        )
        return store

    def categories(self, active_only: bool = True) -> List[Category]:
        rows = [c for c in self._categories.values() if c.isActive or not active_only]
        return sorted(rows, key=lambda c: (c.sortOrder, c.id))

    def category(self, category_id: str) -> Category:
        found = self._categories.get(category_id)
        if found is None:
            raise NotFound("Category", category_id)
        return found

    def buckets(self, stage: Optional[Stage] = None, active_only: bool = True) -> List[Bucket]:
        rows = [
            b
            for b in self._buckets.values()
            if (stage is None or b.stage == Stage(stage).value) and (b.isActive or not active_only)
        ]
        return sorted(rows, key=lambda b: (b.sortOrder, b.id))

    def bucket(self, bucket_id: str) -> Bucket:
        found = self._buckets.get(bucket_id)
        if found is None:
            raise NotFound("Bucket", bucket_id)
        return found
