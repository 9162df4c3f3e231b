"""Durable record of every idea.

Every mutation goes through ``update``, which applies the status
precondition, the processing lease check and the optional ledger prepend as
one conditional write.
"""
import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic_core import to_jsonable_python

from ideaqueue.specs.common.datetime_utils import utc_now
from ideaqueue.specs.common.enums import IdeaStatus
from ideaqueue.specs.common.errors import Conflict, InvalidTransition, NotFound
from ideaqueue.specs.models.domain import Idea, RevisionEntry
from ideaqueue.shared.cosmos_client import CosmosDBClient, strip_system_properties
from ideaqueue.shared.logging_utils import info as log_info

_CONTROLLED_FIELDS = ("stage", "status")
_IMMUTABLE_FIELDS = ("id", "createdAt", "revisionHistory")


def apply_update(
    current: Idea,
    patch: Mapping[str, Any],
    *,
    expected_status: Optional[IdeaStatus] = None,
    lease: Optional[str] = None,
    prepend: Optional[RevisionEntry] = None,
) -> Idea:
    """Validate preconditions against ``current`` and return the patched idea."""
    if any(f in patch for f in _CONTROLLED_FIELDS) and expected_status is None:
        raise ValueError("stage/status changes require expected_status")
    bad = [f for f in _IMMUTABLE_FIELDS if f in patch]
    if bad:
        raise ValueError(f"fields cannot be patched: {bad}")
    if current.is_terminal:
        raise InvalidTransition(
            f"Idea '{current.id}' is {current.stage}/{current.status} and can no longer change",
            details={"ideaId": current.id, "stage": current.stage, "status": current.status},
        )
    if expected_status is not None and current.status != IdeaStatus(expected_status).value:
        raise Conflict(
            f"Idea '{current.id}' is {current.status}, expected {IdeaStatus(expected_status).value}",
            details={"ideaId": current.id, "status": current.status},
        )
    if lease is not None and current.activeEventId != lease:
        raise Conflict(
            f"Idea '{current.id}' is leased to another event",
            details={"ideaId": current.id, "activeEventId": current.activeEventId, "eventId": lease},
        )

    data = current.model_dump(mode="json")
    data.update(to_jsonable_python(dict(patch)))
    if prepend is not None:
        data["revisionHistory"] = [prepend.model_dump(mode="json")] + data["revisionHistory"]
    if data.get("status") == IdeaStatus.PENDING.value:
        data["activeEventId"] = None
    data["updatedAt"] = utc_now()
    return Idea.model_validate(data)


def _matches(idea: Idea, stage, status, category_id, bucket_id) -> bool:
    if stage is not None and idea.stage != stage:
        return False
    if status is not None and idea.status != status:
        return False
    if category_id is not None and idea.categoryId != category_id:
        return False
    if bucket_id is not None and bucket_id not in (
        idea.phraseBucketId,
        idea.designBucketId,
        idea.productBucketId,
        idea.listingBucketId,
    ):
        return False
    return True


class IdeaStore(ABC):
    @abstractmethod
    def get(self, idea_id: str) -> Idea:
        """Return the idea or raise NotFound."""

    @abstractmethod
    def create(self, idea: Idea) -> Idea:
        ...

    @abstractmethod
    def list(
        self,
        *,
        stage: Optional[str] = None,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
        bucket_id: Optional[str] = None,
    ) -> List[Idea]:
        ...

    @abstractmethod
    def update(
        self,
        idea_id: str,
        patch: Mapping[str, Any],
        *,
        expected_status: Optional[IdeaStatus] = None,
        lease: Optional[str] = None,
        prepend: Optional[RevisionEntry] = None,
    ) -> Idea:
        """Apply ``patch`` atomically.

        Raises Conflict when ``expected_status`` or ``lease`` no longer holds,
        InvalidTransition when the idea is terminal and NotFound when missing.
        """


class _DictIdeaStore(IdeaStore):
    """Shared logic for stores that keep every idea in one dict."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, dict]:
        raise NotImplementedError

    def _save(self, data: Dict[str, dict]) -> None:
        raise NotImplementedError

    def get(self, idea_id: str) -> Idea:
        with self._lock:
            raw = self._load().get(idea_id)
        if raw is None:
            raise NotFound("Idea", idea_id)
        return Idea.model_validate(raw)

    def create(self, idea: Idea) -> Idea:
        with self._lock:
            data = self._load()
            if idea.id in data:
                raise Conflict(f"Idea '{idea.id}' already exists")
            data[idea.id] = idea.model_dump(mode="json")
            self._save(data)
        log_info(None, "idea_store:create", ideaId=idea.id, categoryId=idea.categoryId)
        return idea

    def list(self, *, stage=None, status=None, category_id=None, bucket_id=None) -> List[Idea]:
        with self._lock:
            rows = list(self._load().values())
        ideas = [Idea.model_validate(r) for r in rows]
        ideas = [i for i in ideas if _matches(i, stage, status, category_id, bucket_id)]
        return sorted(ideas, key=lambda i: i.createdAt, reverse=True)

    def update(self, idea_id, patch, *, expected_status=None, lease=None, prepend=None) -> Idea:
        with self._lock:
            data = self._load()
            raw = data.get(idea_id)
            if raw is None:
                raise NotFound("Idea", idea_id)
            updated = apply_update(
                Idea.model_validate(raw),
                patch,
                expected_status=expected_status,
                lease=lease,
                prepend=prepend,
            )
            data[idea_id] = updated.model_dump(mode="json")
            self._save(data)
        return updated


class MemoryIdeaStore(_DictIdeaStore):
    def __init__(self) -> None:
        super().__init__()
        self._data: Dict[str, dict] = {}

    def _load(self) -> Dict[str, dict]:
        return self._data

    def _save(self, data: Dict[str, dict]) -> None:
        self._data = data


class FileIdeaStore(_DictIdeaStore):
    """JSON file backend for local runs (single process)."""

    def __init__(self, state_dir: Path) -> None:
        super().__init__()
        self._dir = Path(state_dir)
        self._file = self._dir / "ideas.json"

    def _load(self) -> Dict[str, dict]:
        if not self._file.exists():
            return {}
        return json.loads(self._file.read_text(encoding="utf-8"))

    def _save(self, data: Dict[str, dict]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = self._file.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        tmp.replace(self._file)


class CosmosIdeaStore(IdeaStore):
    """Cosmos DB backend; conditional writes use the document ETag."""

    # ETag races are re-read and re-checked this many times before giving up
    MAX_WRITE_ATTEMPTS = 5

    def __init__(self, client, container_name: str) -> None:
        self._client = client
        self._container = container_name

    def _read(self, idea_id: str) -> dict:
        item = self._client.get_item(self._container, idea_id)
        if item is None:
            raise NotFound("Idea", idea_id)
        return item

    def get(self, idea_id: str) -> Idea:
        return Idea.model_validate(strip_system_properties(self._read(idea_id)))

    def create(self, idea: Idea) -> Idea:
        self._client.create_item(self._container, idea.model_dump(mode="json"))
        log_info(None, "idea_store:create", ideaId=idea.id, categoryId=idea.categoryId, backend="cosmos")
        return idea

    def list(self, *, stage=None, status=None, category_id=None, bucket_id=None) -> List[Idea]:
        clauses = []
        params = []
        if stage is not None:
            clauses.append("c.stage = @stage")
            params.append({"name": "@stage", "value": str(getattr(stage, "value", stage))})
        if status is not None:
            clauses.append("c.status = @status")
            params.append({"name": "@status", "value": str(getattr(status, "value", status))})
        if category_id is not None:
            clauses.append("c.categoryId = @categoryId")
            params.append({"name": "@categoryId", "value": category_id})
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._client.query_items(self._container, f"SELECT * FROM c{where} ORDER BY c.createdAt DESC", params)
        ideas = [Idea.model_validate(strip_system_properties(r)) for r in rows]
        return [i for i in ideas if _matches(i, None, None, None, bucket_id)]

    def update(self, idea_id, patch, *, expected_status=None, lease=None, prepend=None) -> Idea:
        for attempt in range(1, self.MAX_WRITE_ATTEMPTS + 1):
            item = self._read(idea_id)
            etag = item.get("_etag")
            updated = apply_update(
                Idea.model_validate(strip_system_properties(item)),
                patch,
                expected_status=expected_status,
                lease=lease,
                prepend=prepend,
            )
            try:
                self._client.replace_item(self._container, updated.model_dump(mode="json"), etag)
                return updated
            except Conflict:
                if attempt == self.MAX_WRITE_ATTEMPTS:
                    raise
                log_info(None, "idea_store:etag_retry", ideaId=idea_id, attempt=attempt)
        raise Conflict(f"Idea '{idea_id}' could not be written")


def build_idea_store(settings, cosmos_client=None) -> IdeaStore:
    backend = settings.ideaStoreBackend
    if backend == "auto":
        backend = "cosmos" if settings.cosmos_configured else "file"
    if backend == "memory":
        return MemoryIdeaStore()
    if backend == "file":
        return FileIdeaStore(settings.runtimeStateDir)
    if cosmos_client is None:
        cosmos_client = CosmosDBClient(settings.cosmosConnectionString, settings.cosmosDatabase)
    return CosmosIdeaStore(cosmos_client, settings.cosmosIdeasContainer)
