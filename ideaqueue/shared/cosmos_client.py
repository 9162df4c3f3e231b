# Cosmos DB access shared by the idea store and the run state store

import logging
import backoff
from typing import Optional, List, Dict, Any
from azure.core import MatchConditions
from azure.cosmos import CosmosClient, exceptions
from azure.cosmos.container import ContainerProxy
from ideaqueue.specs.common.errors import ConfigurationError, Conflict

MAX_RETRIES = 3
OPERATION_TIMEOUT = 10.0

# Throttling and transient unavailability
_TRANSIENT_STATUS = {429, 503}


class RetryableCosmosError(Exception):
    """A throttled or briefly unavailable Cosmos DB call."""


def _transient(action: str):
    """Turn transient Cosmos responses into RetryableCosmosError and back off on them."""
    def decorate(fn):
        @backoff.on_exception(
            backoff.expo,
            RetryableCosmosError,
            max_tries=MAX_RETRIES,
            max_time=OPERATION_TIMEOUT,
        )
        def wrapper(self, container_name, *args, **kwargs):
            try:
                return fn(self, self.get_container(container_name), *args, **kwargs)
            except exceptions.CosmosHttpResponseError as e:
                if e.status_code in _TRANSIENT_STATUS:
                    raise RetryableCosmosError(f"{action} in '{container_name}' failed with {e.status_code}") from e
                raise
        wrapper.__name__ = fn.__name__
        wrapper.__doc__ = fn.__doc__
        return wrapper
    return decorate


class CosmosDBClient:
    def __init__(self, connection_string: Optional[str], database_name: Optional[str]):
        if not (connection_string and database_name):
            raise ConfigurationError("COSMOS_CONNECTION_STRING and COSMOS_DATABASE must both be set")
        self.database_name = database_name
        self.client = CosmosClient.from_connection_string(connection_string, retry_total=MAX_RETRIES)
        self.database = self.client.get_database_client(database_name)
        self._containers: Dict[str, ContainerProxy] = {}

    def get_container(self, container_name: str) -> ContainerProxy:
        container = self._containers.get(container_name)
        if container is None:
            container = self.database.get_container_client(container_name)
            self._containers[container_name] = container
        return container

    @_transient("read")
    def get_item(self, container, item_id: str, partition_key: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Read one document by id.

        Returns:
            The document with its ``_etag``, or None when it does not exist
        """
        try:
            return container.read_item(item=item_id, partition_key=partition_key or item_id)
        except exceptions.CosmosResourceNotFoundError:
            logging.debug("cosmos: %s not found", item_id)
            return None

    @_transient("query")
    def query_items(
        self,
        container,
        query: str,
        parameters: Optional[List[Dict[str, Any]]] = None
    ) -> List[Dict[str, Any]]:
        """Run a parameterized (``@name``) query across partitions."""
        rows = container.query_items(
            query=query,
            parameters=parameters or [],
            enable_cross_partition_query=True,
        )
        return list(rows)

    @_transient("create")
    def create_item(self, container, item: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return container.create_item(body=item)
        except exceptions.CosmosResourceExistsError as e:
            raise Conflict(f"Document '{item.get('id')}' already exists") from e

    @_transient("replace")
    def replace_item(self, container, item: Dict[str, Any], etag: Optional[str]) -> Dict[str, Any]:
        """
        Overwrite a document, guarded by ``etag`` when one is given.

        Raises:
            Conflict: The stored document no longer carries ``etag``
        """
        conditions: Dict[str, Any] = {}
        if etag:
            conditions["etag"] = etag
            conditions["match_condition"] = MatchConditions.IfNotModified
        try:
            return container.replace_item(item=item["id"], body=item, **conditions)
        except exceptions.CosmosAccessConditionFailedError as e:
            raise Conflict(f"Document '{item['id']}' changed since it was read") from e

    @_transient("upsert")
    def upsert_item(self, container, item: Dict[str, Any]) -> Dict[str, Any]:
        return container.upsert_item(body=item)


def strip_system_properties(item: Dict[str, Any]) -> Dict[str, Any]:
    """Drop Cosmos-managed fields (``_etag``, ``_rid``, ...) from a document."""
    return {k: v for k, v in item.items() if not k.startswith("_")}
