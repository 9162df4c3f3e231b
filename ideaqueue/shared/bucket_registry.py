import threading
from typing import List, Optional

from ideaqueue.specs.common.enums import Stage
from ideaqueue.specs.common.errors import ConfigurationError, InvalidTransition
from ideaqueue.specs.models.domain import Bucket
from ideaqueue.shared.config_store import ConfigStore
from ideaqueue.shared.run_state import RunStateStore
from ideaqueue.shared.logging_utils import info as log_info

_CLOCK_KEY = "bucket-usage:clock"


def _usage_key(bucket_id: str) -> str:
    return f"bucket-usage:{bucket_id}"


class BucketRegistry:
    """Assigns a prompt bucket to an idea as it enters a stage.

    Automatic assignment picks the least recently assigned active bucket of
    the stage; buckets never assigned come first, ties go to ``sortOrder``.
    """

    def __init__(self, config: ConfigStore, run_state: RunStateStore) -> None:
        self._config = config
        self._run_state = run_state
        self._lock = threading.Lock()

    def buckets(self, stage: Stage) -> List[Bucket]:
        return self._config.buckets(stage)

    def get(self, bucket_id: str) -> Bucket:
        return self._config.bucket(bucket_id)

    def last_used(self, bucket_id: str) -> int:
        return int(self._run_state.get_value(_usage_key(bucket_id)) or 0)

    def assign(self, stage: Stage, override: Optional[str] = None) -> str:
        stage = Stage(stage)
        with self._lock:
            if override:
                bucket = self._config.bucket(override)
                if bucket.stage != stage.value:
                    raise InvalidTransition(
                        f"Bucket '{override}' belongs to stage {bucket.stage}, not {stage.value}",
                        details={"bucketId": override, "stage": stage.value},
                    )
                if not bucket.isActive:
                    raise InvalidTransition(f"Bucket '{override}' is not active", details={"bucketId": override})
            else:
                candidates = self._config.buckets(stage)
                if not candidates:
                    raise ConfigurationError(f"No active buckets for stage {stage.value}")
                bucket = min(candidates, key=lambda b: (self.last_used(b.id), b.sortOrder, b.id))
            self._run_state.set_value(_usage_key(bucket.id), self._run_state.incr(_CLOCK_KEY))
        log_info(None, "buckets:assigned", stage=stage.value, bucketId=bucket.id, override=bool(override))
        return bucket.id
