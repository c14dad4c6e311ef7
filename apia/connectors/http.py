"""http: call an external HTTP service and attach the response to the payload."""

from typing import Any, Dict

import httpx
from loguru import logger

DEFAULT_TIMEOUT_MS = 5000
BODY_METHODS = ("POST", "PUT", "PATCH")


def build_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)


async def execute(config: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    """Send one request described by `config`.

    Config keys: ``url`` (required), ``method`` (default GET), ``headers``,
    ``params``, ``data`` (body for POST/PUT/PATCH, else ``payload.body``) and
    ``timeout`` in milliseconds. Error statuses are returned in
    ``httpResponse`` with ``error: true``; transport failures raise.
    """
    url = config.get("url")
    if not url:
        raise ValueError("HTTP connector requires a URL")
    method = str(config.get("method") or "GET").upper()
    timeout = float(config.get("timeout") or DEFAULT_TIMEOUT_MS) / 1000.0

    kwargs: Dict[str, Any] = {"headers": config.get("headers") or {}}
    if config.get("params"):
        kwargs["params"] = config["params"]
    if method in BODY_METHODS:
        kwargs["json"] = config.get("data") or payload.get("body") or {}

    logger.info("HTTP {} request to: {}", method, url)
    async with build_client(timeout) as client:
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RuntimeError(f"HTTP connector failed: {e}") from e
    logger.info("HTTP {} completed with status: {}", method, response.status_code)

    http_response: Dict[str, Any] = {
        "status": response.status_code,
        "statusText": response.reason_phrase,
        "data": _body(response),
        "headers": dict(response.headers),
    }
    if response.is_error:
        http_response["error"] = True
    return {**payload, "httpResponse": http_response}


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
