import os
import tempfile
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field

_ROOT = Path(__file__).resolve().parents[2]

# Use a temp-based directory by default to avoid Azure Functions
# file-watcher restarts when writing local runtime state.
_DEFAULT_STATE_BASE = Path(tempfile.gettempdir()) / "ideaqueue-runtime"


class PipelineSettings(BaseModel):
    """Process-wide configuration, read once when the pipeline is built."""

    seedFile: Path = _ROOT / "config" / "seed.yaml"

    ideaStoreBackend: Literal["auto", "memory", "file", "cosmos"] = "auto"
    runStateBackend: Literal["auto", "memory", "file", "cosmos"] = "auto"
    runtimeStateDir: Path = _DEFAULT_STATE_BASE

    cosmosConnectionString: Optional[str] = None
    cosmosDatabase: Optional[str] = None
    cosmosIdeasContainer: str = "ideas"
    cosmosJobRunsContainer: str = "jobRuns"

    dispatchTransport: Literal["inline", "threads", "queue"] = "inline"
    dispatchWorkers: int = Field(default=4, ge=1)
    storageConnectionString: Optional[str] = None
    queuePrefix: str = "ideaqueue"

    openrouterApiKey: Optional[str] = None
    openrouterModel: str = "deepseek/deepseek-chat"
    falKey: Optional[str] = None
    printfulApiKey: Optional[str] = None
    printfulStoreId: Optional[str] = None
    shopifyStoreDomain: Optional[str] = None
    shopifyAdminApiToken: Optional[str] = None
    telegramBotToken: Optional[str] = None
    telegramChatId: Optional[str] = None
    publicSiteUrl: Optional[str] = None

    filePollAttempts: int = Field(default=30, ge=1)
    filePollIntervalSeconds: float = Field(default=2.0, ge=0)
    syncPollAttempts: int = Field(default=60, ge=1)
    syncPollIntervalSeconds: float = Field(default=5.0, ge=0)
    retryBackoffSeconds: float = Field(default=1.0, ge=0)

    ideaBatchSize: Optional[int] = Field(default=None, ge=1)
    designConceptCount: int = Field(default=4, ge=1)

    @property
    def cosmos_configured(self) -> bool:
        return bool(self.cosmosConnectionString and self.cosmosDatabase)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineSettings":
        env = os.environ if environ is None else environ
        mapping = {
            "seedFile": "IDEAQUEUE_SEED_FILE",
            "ideaStoreBackend": "IDEA_STORE_BACKEND",
            "runStateBackend": "RUN_STATE_BACKEND",
            "runtimeStateDir": "RUNTIME_STATE_DIR",
            "cosmosConnectionString": "COSMOS_DB_CONNECTION_STRING",
            "cosmosDatabase": "COSMOS_DB_NAME",
            "cosmosIdeasContainer": "COSMOS_DB_CONTAINER_IDEAS",
            "cosmosJobRunsContainer": "COSMOS_DB_CONTAINER_JOB_RUNS",
            "dispatchTransport": "DISPATCH_TRANSPORT",
            "dispatchWorkers": "DISPATCH_WORKERS",
            "storageConnectionString": "AzureWebJobsStorage",
            "queuePrefix": "IDEAQUEUE_QUEUE_PREFIX",
            "openrouterApiKey": "OPENROUTER_API_KEY",
            "openrouterModel": "OPENROUTER_MODEL",
            "falKey": "FAL_KEY",
            "printfulApiKey": "PRINTFUL_API_KEY",
            "printfulStoreId": "PRINTFUL_STORE_ID",
            "shopifyStoreDomain": "SHOPIFY_STORE_DOMAIN",
            "shopifyAdminApiToken": "SHOPIFY_ADMIN_API_TOKEN",
            "telegramBotToken": "TELEGRAM_BOT_TOKEN",
            "telegramChatId": "TELEGRAM_CHAT_ID",
            "publicSiteUrl": "PUBLIC_SITE_URL",
            "filePollAttempts": "FILE_POLL_ATTEMPTS",
            "filePollIntervalSeconds": "FILE_POLL_INTERVAL_SECONDS",
            "syncPollAttempts": "SYNC_POLL_ATTEMPTS",
            "syncPollIntervalSeconds": "SYNC_POLL_INTERVAL_SECONDS",
            "retryBackoffSeconds": "JOB_RETRY_BACKOFF_SECONDS",
            "ideaBatchSize": "IDEA_BATCH_SIZE",
            "designConceptCount": "DESIGN_CONCEPT_COUNT",
        }
        values = {}
        for field, var in mapping.items():
            raw = env.get(var)
            if raw is not None and raw != "":
                values[field] = raw.lower() if field.endswith(("Backend", "Transport")) else raw
        return cls(**values)


__all__ = ["PipelineSettings"]
