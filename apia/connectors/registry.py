from __future__ import annotations
import importlib
import importlib.util
import inspect
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from ..cache import ReadThroughCache
from ..config import GlobalConfig
from ..errors import ConnectorNotFoundError, ContractViolationError, InferenceError
from .base import ConnectorModule

BUILTIN_CONNECTORS: Dict[str, str] = {
    "setPayload": "apia.connectors.set_payload",
    "transform": "apia.connectors.transform",
    "httpListener": "apia.connectors.http_listener",
    "http": "apia.connectors.http",
}

# first match wins, so more specific keywords come first
CONNECTOR_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("mysql", "mysql"),
    ("mongodb", "mongodb"),
    ("postgresql", "postgresql"),
    ("postgres", "postgresql"),
    ("zoho", "zoho"),
    ("salesforce", "salesforce"),
    ("transform", "transform"),
    ("set-payload", "setPayload"),
    ("http", "httpListener"),
)

ConnectorSource = Union[str, Path, ConnectorModule]


def infer_connector_type(flow_name: str) -> str:
    """Guess a connector type from a flow's declared name."""
    for keyword, connector_type in CONNECTOR_KEYWORDS:
        if keyword in (flow_name or ""):
            return connector_type
    raise InferenceError(f"Cannot infer connector type for: {flow_name}", flow=flow_name or None)


class ConnectorRegistry:
    """Map connector type strings to modules exposing ``execute(config, payload)``.

    Sources are dotted module paths, ``.py`` files or ready objects. Modules are
    imported on first use and kept; ``reload`` re-imports one explicitly.
    """

    def __init__(
        self,
        global_config: Optional[GlobalConfig] = None,
        search_paths: Sequence[Path] = (),
        builtins: Optional[Mapping[str, ConnectorSource]] = None,
    ):
        self.global_config = global_config or GlobalConfig()
        self._sources: Dict[str, ConnectorSource] = dict(BUILTIN_CONNECTORS if builtins is None else builtins)
        self._cache: ReadThroughCache[str, ConnectorModule] = ReadThroughCache()
        for directory in search_paths:
            self.discover(directory)

    # ---------- Registration ----------
    def register(self, connector_type: str, source: ConnectorSource) -> None:
        self._sources[connector_type] = source
        self._cache.discard(connector_type)
        logger.debug("Registered connector {}", connector_type)

    def discover(self, directory: Path) -> List[str]:
        """Register every ``<type>.py`` in `directory`. Built-in types keep their implementation."""
        directory = Path(directory)
        found: List[str] = []
        if not directory.is_dir():
            return found
        for path in sorted(directory.glob("*.py")):
            if path.stem.startswith("_"):
                continue
            if path.stem in BUILTIN_CONNECTORS:
                logger.debug("Custom connector {} shadowed by built-in", path.stem)
                continue
            self.register(path.stem, path)
            found.append(path.stem)
        return found

    @property
    def types(self) -> List[str]:
        return sorted(self._sources)

    # ---------- Resolution ----------
    def resolve(self, connector_type: str) -> ConnectorModule:
        if connector_type not in self._sources:
            raise ConnectorNotFoundError(connector_type)
        return self._cache.get_or_compute(connector_type, lambda: self._load(connector_type))

    def reload(self, connector_type: str) -> ConnectorModule:
        """Re-import a connector, bypassing the cache."""
        if connector_type not in self._sources:
            raise ConnectorNotFoundError(connector_type)
        module = self._load(connector_type, fresh=True)
        logger.info("Reloaded connector {}", connector_type)
        return self._cache.put(connector_type, module)

    def _load(self, connector_type: str, fresh: bool = False) -> ConnectorModule:
        source = self._sources[connector_type]
        if isinstance(source, str):
            try:
                module: Any = importlib.import_module(source)
            except ModuleNotFoundError as e:
                if e.name and source.startswith(e.name):
                    raise ConnectorNotFoundError(connector_type) from e
                raise
            if fresh:
                module = importlib.reload(module)
        elif isinstance(source, Path):
            module = _import_file(connector_type, source)
        else:
            module = source
        if not callable(getattr(module, "execute", None)):
            raise ContractViolationError(connector_type)
        return module

    def merged_config(self, connector_type: str, config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return self.global_config.merge(connector_type, config)

    async def execute(self, connector_type: str, config: Optional[Mapping[str, Any]], payload: Dict[str, Any]) -> Any:
        module = self.resolve(connector_type)
        result = module.execute(self.merged_config(connector_type, config), payload)
        if inspect.isawaitable(result):
            result = await result
        return result


def _import_file(connector_type: str, path: Path) -> ModuleType:
    if not path.is_file():
        raise ConnectorNotFoundError(connector_type)
    module_name = f"apia_connector_{connector_type}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConnectorNotFoundError(connector_type)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module
