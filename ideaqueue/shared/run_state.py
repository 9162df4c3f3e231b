import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ideaqueue.specs.models.runs import JobRun
from ideaqueue.shared.cosmos_client import CosmosDBClient, strip_system_properties
from ideaqueue.shared.logging_utils import info as log_info


class RunStateStore(ABC):
    """Job run records plus a small key/value area.

    The key/value area holds bookkeeping that is not part of an idea, such as
    the bucket usage clock and the last category priorities.
    """

    @abstractmethod
    def get_run(self, run_id: str) -> Optional[JobRun]:
        ...

    @abstractmethod
    def save_run(self, run: JobRun) -> JobRun:
        ...

    @abstractmethod
    def list_runs(self, job_name: Optional[str] = None, limit: int = 50) -> List[JobRun]:
        ...

    @abstractmethod
    def get_value(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set_value(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def incr(self, key: str) -> int:
        """Increment an integer counter and return the new value."""


def _sort_runs(runs: List[JobRun], job_name: Optional[str], limit: int) -> List[JobRun]:
    if job_name:
        runs = [r for r in runs if r.jobName == job_name]
    runs.sort(key=lambda r: r.startedAt or "", reverse=True)
    return runs[:limit]


class _DictRunStateStore(RunStateStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, dict]:
        raise NotImplementedError

    def _save(self, data: Dict[str, dict]) -> None:
        raise NotImplementedError

    def get_run(self, run_id: str) -> Optional[JobRun]:
        with self._lock:
            raw = self._load().get("runs", {}).get(run_id)
        return JobRun.model_validate(raw) if raw else None

    def save_run(self, run: JobRun) -> JobRun:
        with self._lock:
            data = self._load()
            data.setdefault("runs", {})[run.runId] = run.model_dump(mode="json")
            self._save(data)
        return run

    def list_runs(self, job_name: Optional[str] = None, limit: int = 50) -> List[JobRun]:
        with self._lock:
            rows = list(self._load().get("runs", {}).values())
        return _sort_runs([JobRun.model_validate(r) for r in rows], job_name, limit)

    def get_value(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get("kv", {}).get(key, default)

    def set_value(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data.setdefault("kv", {})[key] = value
            self._save(data)

    def incr(self, key: str) -> int:
        with self._lock:
            data = self._load()
            kv = data.setdefault("kv", {})
            kv[key] = int(kv.get(key) or 0) + 1
            self._save(data)
            return kv[key]


class MemoryRunStateStore(_DictRunStateStore):
    def __init__(self) -> None:
        super().__init__()
        self._data: Dict[str, dict] = {"runs": {}, "kv": {}}

    def _load(self) -> Dict[str, dict]:
        return self._data

    def _save(self, data: Dict[str, dict]) -> None:
        self._data = data


class FileRunStateStore(_DictRunStateStore):
    def __init__(self, state_dir: Path) -> None:
        super().__init__()
        self._dir = Path(state_dir)
        self._file = self._dir / "state.json"

    def _load(self) -> Dict[str, dict]:
        if not self._file.exists():
            return {}
        return json.loads(self._file.read_text(encoding="utf-8"))

    def _save(self, data: Dict[str, dict]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = self._file.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        tmp.replace(self._file)


class CosmosRunStateStore(RunStateStore):
    """Runs and key/value entries share one container, split by ``type``."""

    def __init__(self, client: CosmosDBClient, container_name: str) -> None:
        self._client = client
        self._container = container_name
        self._lock = threading.Lock()
        log_info(None, "cosmos:job_runs:init", container=container_name)

    def get_run(self, run_id: str) -> Optional[JobRun]:
        item = self._client.get_item(self._container, run_id)
        if not item or item.get("type") != "jobRun":
            return None
        return JobRun.model_validate(strip_system_properties(item))

    def save_run(self, run: JobRun) -> JobRun:
        body = run.model_dump(mode="json")
        body.update({"id": run.runId, "type": "jobRun"})
        self._client.upsert_item(self._container, body)
        return run

    def list_runs(self, job_name: Optional[str] = None, limit: int = 50) -> List[JobRun]:
        query = "SELECT * FROM c WHERE c.type = 'jobRun'"
        params = []
        if job_name:
            query += " AND c.jobName = @jobName"
            params.append({"name": "@jobName", "value": job_name})
        rows = self._client.query_items(self._container, query, params)
        return _sort_runs([JobRun.model_validate(strip_system_properties(r)) for r in rows], None, limit)

    def get_value(self, key: str, default: Any = None) -> Any:
        item = self._client.get_item(self._container, f"kv:{key}")
        return item.get("value", default) if item else default

    def set_value(self, key: str, value: Any) -> None:
        self._client.upsert_item(self._container, {"id": f"kv:{key}", "type": "kv", "value": value})

    def incr(self, key: str) -> int:
        # Serialized per process; one logical worker pool owns the counter
        with self._lock:
            value = int(self.get_value(key) or 0) + 1
            self.set_value(key, value)
            return value


def build_run_state_store(settings, cosmos_client: Optional[CosmosDBClient] = None) -> RunStateStore:
    backend = settings.runStateBackend
    if backend == "auto":
        backend = "cosmos" if settings.cosmos_configured else "file"
    if backend == "memory":
        return MemoryRunStateStore()
    if backend == "file":
        return FileRunStateStore(settings.runtimeStateDir)
    if cosmos_client is None:
        cosmos_client = CosmosDBClient(settings.cosmosConnectionString, settings.cosmosDatabase)
    return CosmosRunStateStore(cosmos_client, settings.cosmosJobRunsContainer)
