"""Reference extraction for flow and router documents.

A single exclusion rule applies everywhere: an object whose ``type`` is
``connector`` or ``decision`` is an inline definition, so the name fields it
carries are its own identity rather than pointers to other documents. Jump
targets (``flowReference``, the ``goTo`` of a decision's conditions and its
``default``) are collected even inside inline definitions.
"""

from __future__ import annotations
from typing import Any, Iterable, List, Mapping, Set

from .schemas import is_inline
from .types import FLOW_NAME_KEY, JUMP_KEY, NAME_KEY, SUBFLOW_NAME_KEY, FlowKind

CONTAINER_KEYS = ("subflows", "flows")


def extract_references(document: Any) -> Set[str]:
    """Return every flow name `document` refers to."""
    references: Set[str] = set()
    if isinstance(document, Mapping):
        own = {document.get(k) for k in (NAME_KEY, FLOW_NAME_KEY)} - {None, ""}
        _walk(document, own, references, is_root=True)
    elif isinstance(document, list):
        for item in document:
            _walk(item, set(), references)
    return references


def extract_router_references(config: Any) -> Set[str]:
    """References in a router document, including each route's target flow."""
    references = extract_references(config)
    for route in iter_routes(config):
        for key in ("flowReference", "flow"):
            target = route.get(key)
            if isinstance(target, str) and target:
                references.add(target)
    return references


def iter_routes(config: Any) -> List[Mapping[str, Any]]:
    """Routes of a router document: a bare list or ``{"routes": [...]}``."""
    if isinstance(config, list):
        routes = config
    elif isinstance(config, Mapping) and isinstance(config.get("routes"), list):
        routes = config["routes"]
    else:
        return []
    return [r for r in routes if isinstance(r, Mapping)]


def _walk(obj: Any, own: Set[str], refs: Set[str], is_root: bool = False) -> None:
    if isinstance(obj, list):
        for item in obj:
            _walk(item, own, refs)
        return
    if not isinstance(obj, Mapping):
        return

    inline = is_inline(obj)
    if not inline:
        _add(refs, obj.get(SUBFLOW_NAME_KEY))
        flow_name = obj.get(FLOW_NAME_KEY)
        if not is_root and flow_name not in own:
            _add(refs, flow_name)
    _add(refs, obj.get(JUMP_KEY))
    if obj.get("type") == FlowKind.Decision.value:
        _add(refs, obj.get("default"))
        conditions = obj.get("conditions")
        for condition in conditions if isinstance(conditions, list) else []:
            if isinstance(condition, Mapping):
                _add(refs, condition.get("goTo"))

    for key, value in obj.items():
        if key in CONTAINER_KEYS:
            _walk_container(value, own, refs)
        elif isinstance(value, (Mapping, list)):
            _walk(value, own, refs)


def _walk_container(value: Any, own: Set[str], refs: Set[str]) -> None:
    items: Iterable[Any]
    if isinstance(value, Mapping):
        items = value.values()
    elif isinstance(value, list):
        items = value
    else:
        return
    for item in items:
        if isinstance(item, str):
            _add(refs, item)
        else:
            _walk(item, own, refs)


def _add(refs: Set[str], value: Any) -> None:
    if isinstance(value, str) and value:
        refs.add(value)
