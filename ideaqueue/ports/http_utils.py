from typing import Any, Dict, Optional

import requests

from ideaqueue.specs.common.errors import ExternalServiceError

DEFAULT_TIMEOUT = 30


def request_json(
    method: str,
    url: str,
    *,
    service: str,
    headers: Optional[Dict[str, str]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """Send a JSON request; any transport failure or non-2xx becomes ExternalServiceError."""
    try:
        resp = requests.request(method, url, headers=headers, json=json_body, timeout=timeout)
    except requests.RequestException as exc:
        raise ExternalServiceError(service, str(exc), details={"url": url}) from exc
    if not 200 <= resp.status_code < 300:
        raise ExternalServiceError(
            service,
            f"{resp.status_code} - {resp.text[:500]}",
            status_code=resp.status_code,
            details={"url": url, "method": method},
        )
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError as exc:
        raise ExternalServiceError(service, "response was not JSON", status_code=resp.status_code) from exc
