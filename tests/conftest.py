"""
Test configuration and fixtures for the APIA test suite.
"""
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from apia.builder import build
from apia.config import RuntimeSettings
from apia.runtime import Runtime


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def make_source(tmp_path) -> Callable[..., Path]:
    """Write a source tree: ``flows``/``subflows`` map file names to documents."""

    def _make(
        flows: Optional[Dict[str, Any]] = None,
        subflows: Optional[Dict[str, Any]] = None,
        router: Any = None,
        global_config: Optional[Dict[str, Any]] = None,
        connectors: Optional[Dict[str, str]] = None,
    ) -> Path:
        src = tmp_path / "src"
        src.mkdir(exist_ok=True)
        for name, doc in (flows or {}).items():
            write_json(src / "flows" / f"{name}.json", doc)
        for name, doc in (subflows or {}).items():
            write_json(src / "subflows" / f"{name}.json", doc)
        if router is not None:
            write_json(src / "config" / "router.config.json", router)
        if global_config is not None:
            write_json(src / "config" / "global.config.json", global_config)
        for name, code in (connectors or {}).items():
            path = src / "connectors" / f"{name}.py"
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(code, encoding="utf-8")
        return src

    return _make


@pytest.fixture
def make_runtime(make_source, tmp_path) -> Callable[..., Runtime]:
    """Build a source tree and return a runtime over the build directory."""

    def _make(connector_timeout: Optional[float] = None, **source: Any) -> Runtime:
        src = make_source(**source)
        out = tmp_path / "build"
        build(src, out)
        settings = RuntimeSettings(build_dir=out, connector_timeout=connector_timeout)
        return Runtime(settings=settings)

    return _make


@pytest.fixture
def greet_flow() -> Dict[str, Any]:
    return {
        "name": "greet",
        "type": "connector",
        "connectorType": "setPayload",
        "config": {"fields": {"message": "hello"}},
    }
