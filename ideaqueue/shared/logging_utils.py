import logging
from typing import Any, Dict, Optional


LOGGER_NAME = "ideaqueue"
_LOGGER = logging.getLogger(LOGGER_NAME)


def log(level: int, trace_id: Optional[str], message: str, **dimensions: Any) -> None:
    dims: Dict[str, Any] = {"traceId": trace_id} if trace_id else {}
    dims.update({k: v for k, v in dimensions.items() if v is not None})
    # custom_dimensions feeds Application Insights
    suffix = " ".join(f"{k}={v}" for k, v in dims.items())
    _LOGGER.log(level, f"{message} {suffix}".rstrip(), extra={"custom_dimensions": dims})


def info(trace_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.INFO, trace_id, message, **dimensions)


def warning(trace_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.WARNING, trace_id, message, **dimensions)


def error(trace_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.ERROR, trace_id, message, **dimensions)
