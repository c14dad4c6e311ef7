"""setPayload: write literal values or copies of other payload fields."""

import copy
from typing import Any, Dict

from loguru import logger

from .base import get_nested, set_nested


def execute(config: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    """Apply ``config.payload`` (shallow merge) then ``config.fields``.

    ``fields`` maps a dotted target path to either a literal or, when the value
    is a string containing a dot, a dotted source path read from the payload
    being built (a leading ``payload.`` is optional).
    """
    updated = copy.deepcopy(payload)
    if isinstance(config.get("payload"), dict):
        updated.update(copy.deepcopy(config["payload"]))
        logger.debug("setPayload merged {} keys", len(config["payload"]))

    for target, source in (config.get("fields") or {}).items():
        if isinstance(source, str) and "." in source:
            path = source[len("payload."):] if source.startswith("payload.") else source
            value = copy.deepcopy(get_nested(updated, path))
        else:
            value = source
        set_nested(updated, target, value)
        logger.debug("setPayload set {} = {!r}", target, value)
    return updated
