from typing import Any, Awaitable, Dict, Mapping, Optional, Protocol, Tuple, Union


class ConnectorModule(Protocol):
    """Anything exposing ``execute(config, payload) -> payload``, sync or async."""

    def execute(self, config: Dict[str, Any], payload: Dict[str, Any]) -> Union[Dict[str, Any], Awaitable[Dict[str, Any]]]:
        ...


def get_nested(obj: Any, path: str) -> Any:
    """Dotted-path lookup; any missing segment yields None."""
    current = obj
    for key in path.split("."):
        if isinstance(current, Mapping) and current.get(key) is not None:
            current = current[key]
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None
    return current


def set_nested(obj: Dict[str, Any], path: str, value: Any) -> None:
    """Dotted-path assignment creating intermediate objects as needed."""
    *parents, last = path.split(".")
    current: Any = obj
    for key in parents:
        container, slot = _slot(current, key, path)
        if not isinstance(container[slot], (dict, list)):
            container[slot] = {}
        current = container[slot]
    container, slot = _slot(current, last, path)
    container[slot] = value


def _slot(current: Any, key: str, path: str) -> Tuple[Any, Any]:
    # lists are walked by in-range index, everything else is keyed
    if isinstance(current, list):
        index = _index(current, key)
        if index is None:
            raise ValueError(f'Cannot set "{key}" on a list in path "{path}"')
        return current, index
    current.setdefault(key, None)
    return current, key


def _index(items: list, key: str) -> Optional[int]:
    if key.isdigit() and int(key) < len(items):
        return int(key)
    return None
