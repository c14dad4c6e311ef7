from __future__ import annotations
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set
import json

from loguru import logger

from .condition import parse_condition
from .connectors.registry import infer_connector_type
from .errors import (
    ApiaError,
    ConditionError,
    DocumentError,
    DuplicateFlowError,
    EmptyIndexError,
    InferenceError,
    UnresolvedReferenceError,
)
from .graph import ReferenceGraph
from .references import extract_references, extract_router_references, iter_routes
from .schemas import ConnectorFlow, DecisionFlow, SequenceFlow, declared_name, parse_document
from .types import InlineConnector, InlineDecision

FLOWS_DIR = "flows"
SUBFLOWS_DIR = "subflows"
CONFIG_DIR = "config"
ROUTER_CONFIG = "router.config.json"
GLOBAL_CONFIG = "global.config.json"
MASTERLIST_FILE = "masterlist.json"
CONNECTORS_DIR = "connectors"


@dataclass(frozen=True)
class SourceFile:
    path: Path
    relative_path: str
    name: str


def iter_json_files(root: Path) -> List[SourceFile]:
    """Every ``*.json`` file under `root`, ordered by directory then name."""
    root = Path(root)
    if not root.is_dir():
        return []
    files = [p for p in root.rglob("*.json") if p.is_file()]
    files.sort(key=lambda p: (p.relative_to(root).parent.parts, p.name))
    return [SourceFile(p, p.relative_to(root).as_posix(), p.stem) for p in files]


def load_json(path: Path) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise DocumentError(f'Failed to parse JSON file "{path}": {e}') from e


@dataclass
class Masterlist(MappingABC):
    """Compiled name -> build-relative document path index."""

    entries: Dict[str, str] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)
    references: Dict[str, Set[str]] = field(default_factory=dict)
    router_references: Set[str] = field(default_factory=set)
    graph: ReferenceGraph = field(default_factory=ReferenceGraph)

    def __getitem__(self, name: str) -> str:
        return self.entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def to_json(self) -> str:
        return json.dumps(self.entries, indent=2) + "\n"

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
        return path


def compile_masterlist(
    flows_root: Path,
    subflows_root: Path,
    config_paths: Sequence[Path] = (),
) -> Masterlist:
    """Index every flow and subflow document and check that all references resolve.

    Raises DuplicateFlowError, EmptyIndexError or UnresolvedReferenceError.
    Router/config documents in `config_paths` are validated against the index
    but never added to it.
    """
    ml = Masterlist()
    referenced: Set[str] = set()

    for source_dir, root in ((FLOWS_DIR, flows_root), (SUBFLOWS_DIR, subflows_root)):
        for f in iter_json_files(root):
            source = f"{source_dir}/{f.relative_path}"
            if f.name in ml.entries:
                raise DuplicateFlowError(f.name, ml.sources[f.name], source)
            # subflows are copied next to flows at build time
            ml.entries[f.name] = f"{FLOWS_DIR}/{f.relative_path}"
            ml.sources[f.name] = source
            refs = extract_references(load_json(f.path))
            ml.references[f.name] = refs
            referenced |= refs
            logger.debug("Indexed {} -> {} ({} references)", f.name, source, len(refs))

    if not ml.entries:
        raise EmptyIndexError("No JSON files found in flows or subflows directories")

    missing = referenced - ml.entries.keys()
    if missing:
        raise UnresolvedReferenceError(missing)

    configs = []
    for path in config_paths:
        logger.debug("Validating config file: {}", path)
        configs.append(load_json(path))
        ml.router_references |= extract_router_references(configs[-1])
    missing = ml.router_references - ml.entries.keys()
    if missing:
        raise UnresolvedReferenceError(missing, source="Router config references missing JSON files")

    for name, location in ml.sources.items():
        ml.graph.add_flow(name, location)
    for name, refs in ml.references.items():
        ml.graph.add_references(name, refs)
    for config in configs:
        ml.graph.add_entrypoints(
            r.get("flowReference") or r.get("flow") for r in iter_routes(config)
            if r.get("flowReference") or r.get("flow"))
    for cycle in ml.graph.cycles():
        logger.warning("Flow reference cycle: {}", " -> ".join(cycle))

    logger.info(
        "All references validated ({} definitions, {} router config references)",
        len(ml.entries), len(ml.router_references))
    return ml


def config_files(src_dir: Path) -> List[Path]:
    """Router/config documents of a source tree: ``config/**.json`` and a root router config."""
    src_dir = Path(src_dir)
    files = [f.path for f in iter_json_files(src_dir / CONFIG_DIR)]
    root_router = src_dir / ROUTER_CONFIG
    if root_router.is_file():
        files.append(root_router)
    return files


def compile_source(src_dir: Path) -> Masterlist:
    """Compile the conventional layout: ``flows/``, ``subflows/`` and ``config/`` under `src_dir`."""
    src_dir = Path(src_dir)
    return compile_masterlist(src_dir / FLOWS_DIR, src_dir / SUBFLOWS_DIR, config_files(src_dir))


# ---------- Structural validation ----------

def validate_documents(src_dir: Path) -> List[str]:
    """Collect every structural problem in a source tree instead of stopping at the first.

    Covers reference resolution, document shape, connector type inference,
    condition syntax and router route fields.
    """
    src_dir = Path(src_dir)
    problems: List[str] = []
    try:
        compile_source(src_dir)
    except ApiaError as e:
        problems.append(str(e))

    for source_dir in (FLOWS_DIR, SUBFLOWS_DIR):
        for f in iter_json_files(src_dir / source_dir):
            label = f"{source_dir}/{f.relative_path}"
            try:
                data = load_json(f.path)
            except DocumentError as e:
                problems.append(str(e))
                continue
            if isinstance(data, dict) and not declared_name(data):
                problems.append(f"{label}: missing name")
            try:
                doc = parse_document(data, f.name)
            except ApiaError as e:
                problems.append(f"{label}: {e}")
                continue
            problems.extend(f"{label}: {p}" for p in _document_problems(doc))

    for path in config_files(src_dir):
        if path.name != ROUTER_CONFIG:
            continue
        try:
            config = load_json(path)
        except DocumentError as e:
            problems.append(str(e))
            continue
        for i, route in enumerate(iter_routes(config)):
            if not route.get("method") or not route.get("path") or not (route.get("flow") or route.get("flowReference")):
                problems.append(f"{path.name}: route {i} missing required fields (method, path, flow)")
    # a parse failure can be reported by both passes
    return list(dict.fromkeys(problems))


def _document_problems(doc: Any, where: Optional[str] = None) -> List[str]:
    prefix = f"{where}: " if where else ""
    problems: List[str] = []
    if isinstance(doc, ConnectorFlow) and not doc.connector_type:
        try:
            infer_connector_type(doc.name)
        except InferenceError as e:
            problems.append(f"{prefix}{e}")
    elif isinstance(doc, DecisionFlow):
        if not doc.conditions and not doc.default:
            problems.append(f"{prefix}decision has no conditions and no default")
        for cond in doc.conditions:
            try:
                parse_condition(cond.when)
            except ConditionError as e:
                problems.append(f"{prefix}{e}")
    elif isinstance(doc, SequenceFlow):
        for i, step in enumerate(doc.steps):
            if isinstance(step, InlineConnector):
                problems.extend(_document_problems(step.connector, f"step {i}"))
            elif isinstance(step, InlineDecision):
                problems.extend(_document_problems(step.decision, f"step {i}"))
    return problems
