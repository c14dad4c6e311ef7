"""transform: compute payload fields from expressions.

Expressions use the decision condition language (field access, arithmetic,
comparisons, boolean logic) with ``payload`` in scope. Arbitrary code is not
accepted.
"""

import copy
from typing import Any, Dict

from .base import set_nested
from ..condition import evaluate_expression


def execute(config: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    if config.get("code") or config.get("function"):
        raise ValueError('Transform connector does not run code; use "fields" expressions')
    fields = config.get("fields")
    if not isinstance(fields, dict) or not fields:
        raise ValueError('Transform connector requires "fields" configuration')

    result = copy.deepcopy(payload)
    for target, expression in fields.items():
        # every expression sees the payload as it was before the transform
        set_nested(result, target, evaluate_expression(str(expression), payload))
    for path in config.get("remove") or []:
        _remove(result, path)
    return result


def _remove(obj: Dict[str, Any], path: str) -> None:
    *parents, last = path.split(".")
    for key in parents:
        obj = obj.get(key)
        if not isinstance(obj, dict):
            return
    obj.pop(last, None)
