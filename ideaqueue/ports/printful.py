from typing import Dict, List, Optional

from ideaqueue.ports.base import FulfillmentPort
from ideaqueue.ports.http_utils import request_json
from ideaqueue.specs.common.errors import ConfigurationError
from ideaqueue.specs.models.artifacts import (
    FileStatus,
    PlacementSpec,
    SyncProduct,
    SyncStatus,
    SyncVariant,
    UploadedFile,
)
from ideaqueue.shared.logging_utils import info as log_info

PRINTFUL_BASE_URL = "https://api.printful.com"


class PrintfulClient(FulfillmentPort):
    def __init__(self, api_key: Optional[str], store_id: Optional[str] = None, base_url: str = PRINTFUL_BASE_URL) -> None:
        self._api_key = api_key
        self._store_id = store_id
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ConfigurationError("PRINTFUL_API_KEY is required")
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        if self._store_id:
            headers["X-PF-Store-Id"] = self._store_id
        return headers

    def _call(self, method: str, path: str, body: Optional[dict] = None) -> dict:
        data = request_json(
            method,
            f"{self._base_url}{path}",
            service="printful",
            headers=self._headers(),
            json_body=body,
        )
        return data.get("data") or {}

    def upload_file(self, url: str) -> UploadedFile:
        log_info(None, "printful:upload_file")
        data = self._call("POST", "/v2/files", {"url": url})
        return UploadedFile(fileId=str(data["id"]), url=data.get("url"))

    def get_file_status(self, file_id: str) -> FileStatus:
        data = self._call("GET", f"/v2/files/{file_id}")
        return FileStatus(fileId=str(data.get("id", file_id)), status=str(data.get("status") or "unknown"))

    def create_sync_product(
        self,
        *,
        external_id: str,
        title: str,
        description: str,
        variants: List[SyncVariant],
        placements: List[PlacementSpec],
        file_url: str,
    ) -> SyncProduct:
        log_info(None, "printful:create_sync_product", externalId=external_id, variants=len(variants))
        files = [{"type": p.placement, "url": file_url} for p in placements]
        body = {
            "sync_product": {"external_id": external_id, "name": title, "description": description},
            "sync_variants": [
                {
                    "external_id": f"{external_id}-{v.printfulVariantId}",
                    "variant_id": v.printfulVariantId,
                    "retail_price": v.retailPrice,
                    "files": files,
                }
                for v in variants
            ],
        }
        data = self._call("POST", "/v2/store/products", body)
        return SyncProduct(productId=str(data["id"]), externalId=data.get("external_id"))

    def get_sync_status(self, product_id: str) -> SyncStatus:
        data = self._call("GET", f"/v2/store/products/{product_id}")
        external = data.get("external_id")
        return SyncStatus(
            productId=str(data.get("id", product_id)),
            synced=int(data.get("synced") or 0),
            externalId=str(external) if external is not None else None,
        )
