from __future__ import annotations
from pathlib import Path
from typing import Dict, Mapping, Optional
import json

from loguru import logger

from .cache import ReadThroughCache
from .errors import DocumentError, FlowNotFoundError, InvalidFlowError
from .masterlist import MASTERLIST_FILE
from .schemas import FlowDocument, parse_document


def load_masterlist(build_dir: Path) -> Dict[str, str]:
    path = Path(build_dir) / MASTERLIST_FILE
    if not path.is_file():
        raise DocumentError(f"Masterlist not found at {path}. Did you run the build?")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise DocumentError(f'Failed to parse JSON file "{path}": {e}') from e
    if not isinstance(data, dict):
        raise DocumentError(f"Masterlist at {path} must be a JSON object")
    return data


class FlowLoader:
    """Resolve flow names to parsed documents through the masterlist.

    Documents are immutable after the build, so a successful load is kept for
    the life of the process.
    """

    def __init__(self, build_dir: Path, masterlist: Optional[Mapping[str, str]] = None):
        self.build_dir = Path(build_dir)
        self.masterlist: Mapping[str, str] = masterlist if masterlist is not None else load_masterlist(self.build_dir)
        self._cache: ReadThroughCache[str, FlowDocument] = ReadThroughCache()
        logger.info("Loaded masterlist with {} flow definitions", len(self.masterlist))

    def load(self, name: str) -> FlowDocument:
        return self._cache.get_or_compute(name, lambda: self._read(name))

    def _read(self, name: str) -> FlowDocument:
        relative = self.masterlist.get(name)
        if not relative:
            raise FlowNotFoundError(name)
        path = self.build_dir / relative
        if not path.is_file():
            raise FlowNotFoundError(name, f"Flow file not found: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise InvalidFlowError(f'Failed to parse JSON file "{path}": {e}', flow=name) from e
        logger.debug("Loaded flow {} from {}", name, relative)
        return parse_document(data, name)

    def __contains__(self, name: object) -> bool:
        return name in self.masterlist

    @property
    def cached(self) -> int:
        return len(self._cache)
