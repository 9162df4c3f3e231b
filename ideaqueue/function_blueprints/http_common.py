from typing import Any, Dict, Optional

import azure.functions as func
from pydantic import BaseModel, ValidationError

from ideaqueue.specs.common.errors import PipelineError
from ideaqueue.specs.http.admin import ErrorResponse
from ideaqueue.shared.logging_utils import error as log_error


class BadRequest(Exception):
    """Request body could not be parsed or validated."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.details = details


def json_response(model: BaseModel, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        body=model.model_dump_json(),
        mimetype="application/json",
        status_code=status_code,
    )


def error_response(exc: Exception, trace_id: Optional[str] = None) -> func.HttpResponse:
    if isinstance(exc, BadRequest):
        status, err = 400, ErrorResponse(message=str(exc), errorCode="INVALID_REQUEST", details=exc.details)
    elif isinstance(exc, PipelineError):
        status, err = exc.http_status, ErrorResponse(message=str(exc), errorCode=exc.code, details=exc.details)
    else:
        status, err = 500, ErrorResponse(message="Internal error", errorCode="UNHANDLED_ERROR")
    log_error(trace_id, "http:error", status=status, code=err.errorCode, error=str(exc))
    return json_response(err, status)


def read_json(req: func.HttpRequest, required: bool = True) -> Dict[str, Any]:
    if not req.get_body():
        if required:
            raise BadRequest("Request body is required")
        return {}
    try:
        data = req.get_json()
    except ValueError as exc:
        raise BadRequest("Invalid JSON body") from exc
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


def parse(model_cls, data: Dict[str, Any]):
    try:
        return model_cls(**data)
    except ValidationError as exc:
        raise BadRequest(
            f"Invalid request: {exc.error_count()} validation error(s)",
            details=exc.errors(include_url=False, include_context=False),
        ) from exc
