"""Decision condition evaluation.

Conditions are parsed with the Lark grammar in ``condition.lark`` and walked
by a small interpreter. The only name in scope is ``payload``; nothing else
from the host process is reachable from a condition.
"""

from __future__ import annotations
import math
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping
from lark import Lark, Token, Tree
from loguru import logger

from .errors import ConditionError

GRAMMAR_PATH = Path(__file__).with_name("condition.lark")

_parser = None


def _load_parser() -> Lark:
    global _parser
    if _parser is None:
        grammar = GRAMMAR_PATH.read_text(encoding="utf-8")
        _parser = Lark(grammar, start="start", parser="lalr")
    return _parser


@lru_cache(maxsize=1024)
def parse_condition(expression: str) -> Tree:
    try:
        return _load_parser().parse(expression)
    except Exception as e:
        raise ConditionError(f"Invalid condition {expression!r}: {e}") from e


def evaluate_condition(expression: str, payload: Mapping[str, Any]) -> bool:
    """Evaluate `expression` against `payload`.

    Never raises: any failure is logged as a warning and counts as False.
    """
    try:
        tree = parse_condition(expression)
        return truthy(ConditionEvaluator({"payload": payload}).eval(tree))
    except Exception as e:
        logger.warning("Failed to evaluate condition {!r}: {}", expression, e)
        return False


def evaluate_expression(expression: str, payload: Mapping[str, Any]) -> Any:
    """Evaluate `expression` and return its value. Errors propagate."""
    return ConditionEvaluator({"payload": payload}).eval(parse_condition(expression))


def truthy(v: Any) -> bool:
    # conditions are authored with JavaScript truthiness: empty containers count as true
    if v is None or v is False:
        return False
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return v != 0 and not math.isnan(v)
    if isinstance(v, str):
        return v != ""
    return True


class ConditionEvaluator:
    def __init__(self, scope: Dict[str, Any]):
        self.scope = scope

    def eval(self, node: Tree | Token) -> Any:
        if isinstance(node, Token):
            raise ConditionError(f"Unexpected token {node!r}")
        dt = node.data
        if dt == "start":
            return self.eval(node.children[0])
        if dt in ("or_expr", "and_expr"):
            return self._eval_logical_chain(node)
        if dt in ("cmp_expr", "add_expr", "mul_expr"):
            return self._eval_binary_chain(node)
        if dt == "unary_expr":
            return self._unary(str(node.children[0]), self.eval(node.children[1]))
        if dt == "number":
            text = str(node.children[0])
            return float(text) if any(c in text for c in ".eE") else int(text)
        if dt == "string":
            return re.sub(r"\\(.)", r"\1", str(node.children[0])[1:-1])
        if dt == "boolean":
            return str(node.children[0]) == "true"
        if dt == "null":
            return None
        if dt == "name":
            name = str(node.children[0])
            if name not in self.scope:
                raise ConditionError(f"'{name}' is not defined")
            return self.scope[name]
        if dt == "primary":
            accum = self.eval(node.children[0])
            for acc in node.children[1:]:
                if acc.data == "field":
                    accum = self._get(accum, str(acc.children[0]))
                elif acc.data == "index":
                    accum = self._get(accum, self.eval(acc.children[0]))
            return accum
        raise ConditionError(f"Unsupported expression node: {dt}")

    def _eval_logical_chain(self, node: Tree) -> Any:
        # short-circuits like && / || so guards such as `payload.user && payload.user.id` hold
        acc = self.eval(node.children[0])
        i = 1
        while i < len(node.children):
            op = str(node.children[i])
            if op in ("&&", "and") and not truthy(acc):
                return acc
            if op in ("||", "or") and truthy(acc):
                return acc
            acc = self.eval(node.children[i + 1])
            i += 2
        return acc

    def _eval_binary_chain(self, node: Tree) -> Any:
        acc = self.eval(node.children[0])
        i = 1
        while i < len(node.children):
            op = str(node.children[i])
            rhs = self.eval(node.children[i + 1])
            acc = self._apply_bin_op(op, acc, rhs)
            i += 2
        return acc

    def _apply_bin_op(self, op: str, a: Any, b: Any) -> Any:
        if op == "+":
            if isinstance(a, str) or isinstance(b, str):
                return f"{_to_text(a)}{_to_text(b)}"
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "/":
            return a / b
        if op == "%":
            return a % b
        if op in ("==", "==="):
            return _strict_equal(a, b)
        if op in ("!=", "!=="):
            return not _strict_equal(a, b)
        if op == "<":
            return a < b
        if op == ">":
            return a > b
        if op == "<=":
            return a <= b
        if op == ">=":
            return a >= b
        raise ConditionError(f"Unknown operator {op}")

    def _unary(self, op: str, v: Any) -> Any:
        if op == "-":
            return -v
        if op == "+":
            return +v
        if op in ("!", "not"):
            return not truthy(v)
        raise ConditionError(f"Unknown unary {op}")

    def _get(self, obj: Any, key: Any) -> Any:
        if obj is None:
            raise ConditionError(f"Cannot read property '{key}' of null")
        if key == "length" and isinstance(obj, (list, str)):
            return len(obj)
        if isinstance(obj, Mapping):
            return obj.get(key)
        if isinstance(obj, (list, str)) and isinstance(key, int) and not isinstance(key, bool):
            return obj[key] if 0 <= key < len(obj) else None
        return None


def _to_text(v: Any) -> str:
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def _strict_equal(a: Any, b: Any) -> bool:
    # booleans never equal numbers, unlike Python's True == 1
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b
