"""Runtime settings and connector defaults."""

from __future__ import annotations
import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

from .errors import DocumentError


class RuntimeSettings(BaseModel):
    """Process-level settings. Read from ``APIA_*`` environment variables by default."""
    model_config = ConfigDict(frozen=True)

    build_dir: Path = Path(".apia")
    log_level: str = "INFO"
    # seconds; None waits on a connector forever
    connector_timeout: Optional[float] = Field(default=None, gt=0)
    console_limit: int = Field(default=1000, ge=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def upper(cls, v: Any) -> str:
        return str(v).upper()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "RuntimeSettings":
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        if env.get("APIA_BUILD_DIR"):
            values["build_dir"] = env["APIA_BUILD_DIR"]
        if env.get("APIA_LOG_LEVEL"):
            values["log_level"] = env["APIA_LOG_LEVEL"]
        if env.get("APIA_CONNECTOR_TIMEOUT"):
            values["connector_timeout"] = env["APIA_CONNECTOR_TIMEOUT"]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


class GlobalConfig(RootModel[Dict[str, Dict[str, Any]]]):
    """Default configuration per connector type, e.g. ``{"mysql": {"host": "db"}}``."""

    root: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    def defaults_for(self, connector_type: str) -> Dict[str, Any]:
        return dict(self.root.get(connector_type) or {})

    def merge(self, connector_type: str, config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Call-site `config` layered over the defaults; call-site keys win."""
        return {**self.defaults_for(connector_type), **(config or {})}

    @classmethod
    def load(cls, path: Path) -> "GlobalConfig":
        path = Path(path)
        if not path.is_file():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise DocumentError(f'Failed to parse JSON file "{path}": {e}') from e
        if not isinstance(data, Mapping):
            raise DocumentError(f'Global configuration "{path}" must be a JSON object')
        # non-object entries are not connector defaults
        return cls({k: v for k, v in data.items() if isinstance(v, Mapping)})
