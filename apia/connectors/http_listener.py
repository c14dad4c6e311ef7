"""httpListener: lift the inbound request's parts to the top of the payload."""

from typing import Any, Dict

from loguru import logger


def execute(config: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    request = payload.get("request")
    if not isinstance(request, dict):
        return dict(payload)
    logger.debug("HTTP request: {} {}", request.get("method"), request.get("path"))
    return {
        **payload,
        "params": request.get("params") or {},
        "query": request.get("query") or {},
        "body": request.get("body") or {},
        "headers": request.get("headers") or {},
        "method": request.get("method"),
        "path": request.get("path"),
    }
