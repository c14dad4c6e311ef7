"""Route table compiled from the router configuration.

The HTTP layer itself lives outside this package; it looks routes up here,
builds the initial payload with :func:`request_payload` and turns results or
failures into responses with :func:`build_response` / :func:`error_response`.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import json

from loguru import logger

from .errors import DocumentError
from .references import iter_routes


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    flow: str

    @property
    def key(self) -> str:
        return f"{self.method}:{self.path}"

    def match(self, method: str, path: str) -> Optional[Dict[str, str]]:
        """Path parameters when `method`/`path` hit this route (``:name`` segments), else None."""
        if method.upper() != self.method:
            return None
        pattern = [s for s in self.path.split("/") if s]
        actual = [s for s in path.split("/") if s]
        if len(pattern) != len(actual):
            return None
        params: Dict[str, str] = {}
        for want, got in zip(pattern, actual):
            if want.startswith(":"):
                params[want[1:]] = got
            elif want != got:
                return None
        return params


class RouteTable:
    def __init__(self, routes: Iterable[Route] = ()):
        self._routes: Dict[str, Route] = {}
        for route in routes:
            self._routes[route.key] = route

    def add(self, method: str, path: str, flow: str) -> Route:
        route = Route(method.upper(), path, flow)
        self._routes[route.key] = route
        logger.debug("Route mapped: {} {} -> {}", route.method, path, flow)
        return route

    def lookup(self, method: str, path: str) -> Optional[Tuple[Route, Dict[str, str]]]:
        exact = self._routes.get(f"{method.upper()}:{path}")
        if exact is not None:
            return exact, {}
        for route in self._routes.values():
            params = route.match(method, path)
            if params is not None:
                return route, params
        return None

    @property
    def routes(self) -> List[Route]:
        return list(self._routes.values())

    def to_dict(self) -> Dict[str, str]:
        return {key: route.flow for key, route in self._routes.items()}

    def __len__(self) -> int:
        return len(self._routes)

    @classmethod
    def from_config(cls, config: Any) -> "RouteTable":
        table = cls()
        for entry in iter_routes(config):
            flow = entry.get("flowReference") or entry.get("flow")
            if entry.get("method") and entry.get("path") and flow:
                table.add(str(entry["method"]), str(entry["path"]), str(flow))
            else:
                logger.warning("Skipping incomplete route: {}", dict(entry))
        return table


def load_routes(path: Path) -> RouteTable:
    path = Path(path)
    if not path.is_file():
        logger.warning("No router configuration at {}", path)
        return RouteTable()
    try:
        config = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise DocumentError(f'Failed to parse JSON file "{path}": {e}') from e
    return RouteTable.from_config(config)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def request_payload(
    method: str,
    path: str,
    *,
    headers: Optional[Mapping[str, Any]] = None,
    query: Optional[Mapping[str, Any]] = None,
    params: Optional[Mapping[str, Any]] = None,
    body: Any = None,
) -> Dict[str, Any]:
    """Initial payload for a flow triggered by an HTTP request."""
    return {
        "request": {
            "method": method.upper(),
            "path": path,
            "headers": dict(headers or {}),
            "query": dict(query or {}),
            "params": dict(params or {}),
            "body": body if body is not None else {},
            "timestamp": _now(),
        },
        "response": {"headers": {}, "statusCode": 200},
    }


def build_response(result: Any) -> Tuple[int, Dict[str, str], Any]:
    """(status, headers, body) for a finished flow, honouring ``payload.response``."""
    response = result.get("response") if isinstance(result, Mapping) else None
    if not isinstance(response, Mapping):
        return 200, {}, result
    headers = {str(k): str(v) for k, v in (response.get("headers") or {}).items()}
    status = int(response.get("statusCode") or 200)
    body = response["body"] if "body" in response else result
    return status, headers, body


def error_response(exc: BaseException, flow: Optional[str]) -> Tuple[int, Dict[str, Any]]:
    """Generic 500 body for a failed flow: the message and flow name, never a traceback."""
    return 500, {
        "error": "Internal server error",
        "message": str(exc),
        "flow": getattr(exc, "flow", None) or flow,
        "timestamp": _now(),
    }
