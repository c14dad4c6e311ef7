"""Build step: compile a source tree into a runnable build directory.

Layout produced under the build directory::

    flows/               flows and subflows, merged
    connectors/          custom connector modules
    router.config.json   when the source has one
    global.config.json   when the source has one
    masterlist.json
"""

from __future__ import annotations
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from .masterlist import (
    CONFIG_DIR,
    CONNECTORS_DIR,
    FLOWS_DIR,
    GLOBAL_CONFIG,
    MASTERLIST_FILE,
    ROUTER_CONFIG,
    SUBFLOWS_DIR,
    Masterlist,
    compile_source,
)


@dataclass
class BuildResult:
    build_dir: Path
    masterlist: Masterlist
    copied_configs: List[str] = field(default_factory=list)
    connectors: List[str] = field(default_factory=list)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "masterlistEntries": len(self.masterlist),
            "routerReferences": len(self.masterlist.router_references),
            "configs": self.copied_configs,
            "connectors": self.connectors,
            "cycles": len(self.masterlist.graph.cycles()),
        }


def build(src_dir: Path, build_dir: Path, clean: bool = True) -> BuildResult:
    """Validate `src_dir` and write the build to `build_dir`.

    Compilation runs before anything is written, so a failing source tree
    leaves an existing build untouched.
    """
    src_dir = Path(src_dir)
    build_dir = Path(build_dir)
    logger.info("Building {} -> {}", src_dir, build_dir)
    masterlist = compile_source(src_dir)

    if clean and build_dir.exists():
        logger.debug("Cleaning build directory {}", build_dir)
        shutil.rmtree(build_dir)
    build_dir.mkdir(parents=True, exist_ok=True)

    for source_dir in (FLOWS_DIR, SUBFLOWS_DIR):
        src = src_dir / source_dir
        if src.is_dir():
            shutil.copytree(src, build_dir / FLOWS_DIR, dirs_exist_ok=True)

    result = BuildResult(build_dir, masterlist)
    for name in (ROUTER_CONFIG, GLOBAL_CONFIG):
        config = _find_config(src_dir, name)
        if config is None:
            logger.warning("{} not found, skipping", name)
            continue
        shutil.copy2(config, build_dir / name)
        result.copied_configs.append(name)

    target = build_dir / CONNECTORS_DIR
    target.mkdir(exist_ok=True)
    custom = src_dir / CONNECTORS_DIR
    if custom.is_dir():
        for path in sorted(custom.glob("*.py")):
            shutil.copy2(path, target / path.name)
            result.connectors.append(path.stem)

    masterlist.write(build_dir / MASTERLIST_FILE)
    logger.info("Build complete: {}", result.stats)
    return result


def _find_config(src_dir: Path, name: str) -> Optional[Path]:
    for candidate in (src_dir / CONFIG_DIR / name, src_dir / name):
        if candidate.is_file():
            return candidate
    return None
