from typing import Dict, List, Optional

from ideaqueue.ports.base import StorefrontPort
from ideaqueue.ports.http_utils import request_json
from ideaqueue.specs.common.errors import ConfigurationError
from ideaqueue.shared.logging_utils import info as log_info

SHOPIFY_API_VERSION = "2024-10"


class ShopifyClient(StorefrontPort):
    """Shopify Admin REST API, limited to the product calls publishing needs."""

    def __init__(self, store_domain: Optional[str], admin_token: Optional[str], api_version: str = SHOPIFY_API_VERSION) -> None:
        self._domain = store_domain
        self._token = admin_token
        self._api_version = api_version

    def _base_url(self) -> str:
        if not self._domain:
            raise ConfigurationError("SHOPIFY_STORE_DOMAIN is required")
        return f"https://{self._domain}/admin/api/{self._api_version}"

    def _headers(self) -> Dict[str, str]:
        if not self._token:
            raise ConfigurationError("SHOPIFY_ADMIN_API_TOKEN is required")
        return {"X-Shopify-Access-Token": self._token, "Content-Type": "application/json"}

    def update_product_metadata(
        self,
        product_id: str,
        *,
        title: Optional[str] = None,
        body_html: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> None:
        product: Dict[str, str] = {}
        if tags:
            product["tags"] = ", ".join(tags)
        if body_html:
            product["body_html"] = body_html
        if title:
            product["title"] = title
        if not product:
            return
        request_json(
            "PUT",
            f"{self._base_url()}/products/{product_id}.json",
            service="shopify",
            headers=self._headers(),
            json_body={"product": product},
        )
        log_info(None, "shopify:metadata_updated", shopifyProductId=product_id, fields=",".join(sorted(product)))

    def add_product_to_collection(self, product_id: str, collection_id: str) -> None:
        request_json(
            "POST",
            f"{self._base_url()}/collects.json",
            service="shopify",
            headers=self._headers(),
            json_body={"collect": {"product_id": int(product_id), "collection_id": int(collection_id)}},
        )
        log_info(None, "shopify:collection_added", shopifyProductId=product_id, collectionId=collection_id)

    def product_url(self, product_id: str) -> str:
        if not self._domain:
            raise ConfigurationError("SHOPIFY_STORE_DOMAIN is required")
        return f"https://{self._domain}/products/{product_id}"
