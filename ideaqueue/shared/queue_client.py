"""
Storage queue helpers for the queue transport
"""
from typing import Optional
from azure.storage.queue import QueueClient
from azure.core.exceptions import ResourceExistsError

from ideaqueue.specs.common.errors import ConfigurationError
from ideaqueue.shared.logging_utils import info as log_info, error as log_error

# Storage queue names allow at most 63 characters
_MAX_QUEUE_NAME = 63


def queue_name_for(prefix: str, job_name: str) -> str:
    """One queue per job, named ``<prefix>-<job>`` in lowercase."""
    return f"{prefix}-{job_name}".lower()[:_MAX_QUEUE_NAME]


def get_queue_client(queue_name: str, conn_str: Optional[str]) -> QueueClient:
    """
    Return a client for ``queue_name``, creating the queue on first use.

    Raises:
        ConfigurationError: No storage connection string is configured
    """
    if not conn_str:
        raise ConfigurationError("AzureWebJobsStorage is not set; the queue transport needs it")

    client = QueueClient.from_connection_string(conn_str=conn_str, queue_name=queue_name)
    try:
        client.create_queue()
    except ResourceExistsError:
        return client
    except Exception as e:
        log_error(None, "queue:create_failed", queue=queue_name, error=str(e))
        raise
    log_info(None, "queue:created", queue=queue_name)
    return client
