"""
Rule evaluation over cached metric maps.

Purpose
-------
A JSON-Logic interpreter used by other modules to answer segmentation and
authorization questions against a reference's metrics, e.g.::

    {"and": [
        {">": [{"var": "TOP_SPEED"}, 200]},
        {"==": [{"var": "FUEL_TYPE"}, "Gasoline"]},
    ]}

Semantics follow JSON-Logic: loose `==` with JavaScript-style coercion,
strict `===`, JavaScript truthiness (empty lists are falsy, objects are
truthy), and `var` resolving absent variables to None.

`var` looks up the exact key first, then a dotted path, because metric keys
themselves contain `:` but not `.`.
"""

from __future__ import annotations

import math
from functools import reduce as _reduce
from typing import Any, Callable, Dict, List, Mapping, Optional

from src.core.exceptions import RuleEvaluationError
from src.core.logging.logger import get_logger
from src.modules.reference.identity import CategoryReferenceIdParam, to_key
from src.modules.reference.store import ReferenceStore

logger = get_logger(__name__)

Rule = Any

_NAN = float("nan")


# ============================================================================
# Coercion helpers
# ============================================================================


def truthy(value: Any) -> bool:
    if isinstance(value, list):
        return len(value) > 0
    if isinstance(value, dict):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_number(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if _is_number(value):
        return value
    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return _NAN
    if isinstance(value, list):
        if not value:
            return 0
        if len(value) == 1:
            return _to_number(value[0])
    return _NAN


def _to_string(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if value.is_integer():
            return str(int(value))
    if isinstance(value, list):
        return ",".join("" if v is None else _to_string(v) for v in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def loose_equals(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool):
        return loose_equals(int(a), b)
    if isinstance(b, bool):
        return loose_equals(a, int(b))
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if _is_number(a) and isinstance(b, str):
        return a == _to_number(b)
    if isinstance(a, str) and _is_number(b):
        return _to_number(a) == b
    if isinstance(a, (list, dict)) and isinstance(b, (list, dict)):
        return a is b
    if isinstance(a, list):
        return loose_equals(_to_string(a), b)
    if isinstance(b, list):
        return loose_equals(a, _to_string(b))
    return False


def strict_equals(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, (list, dict)) or isinstance(b, (list, dict)):
        return a is b
    return type(a) is type(b) and a == b


def _less_than(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a < b
    return _to_number(a) < _to_number(b)


def _less_or_equal(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a <= b
    return _to_number(a) <= _to_number(b)


def _normalize_number(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer() and not math.isinf(value):
        return int(value)
    return value


# ============================================================================
# Operators (evaluated arguments)
# ============================================================================


def _op_less(a: Any, b: Any, c: Any = None, *rest: Any) -> bool:
    if c is None:
        return _less_than(a, b)
    return _less_than(a, b) and _less_than(b, c)


def _op_less_equal(a: Any, b: Any, c: Any = None, *rest: Any) -> bool:
    if c is None:
        return _less_or_equal(a, b)
    return _less_or_equal(a, b) and _less_or_equal(b, c)


def _op_in(a: Any, b: Any = None, *rest: Any) -> bool:
    if isinstance(b, str):
        return _to_string(a) in b
    if isinstance(b, list):
        return any(strict_equals(a, item) for item in b)
    return False


def _op_cat(*args: Any) -> str:
    return "".join("" if arg is None else _to_string(arg) for arg in args)


def _clamp_index(value: Any, length: int) -> int:
    """String index with JavaScript clamping: NaN is 0, negatives count from the end."""
    number = _to_number(value)
    if isinstance(number, float) and math.isnan(number):
        return 0
    if number < 0:
        number = max(length + number, 0)
    return int(min(number, length))


def _op_substr(source: Any, start: Any = 0, end: Any = None, *rest: Any) -> str:
    text = _to_string(source)
    tail = text[_clamp_index(start, len(text)):]
    if end is None:
        return tail
    return tail[: _clamp_index(end, len(tail))]


def _op_add(*args: Any) -> Any:
    return _normalize_number(sum((_to_number(a) for a in args), 0))


def _op_multiply(*args: Any) -> Any:
    return _normalize_number(_reduce(lambda x, y: x * y, (_to_number(a) for a in args), 1))


def _op_subtract(a: Any, b: Any = None, *rest: Any) -> Any:
    if b is None:
        return _normalize_number(-_to_number(a))
    return _normalize_number(_to_number(a) - _to_number(b))


def _op_divide(a: Any, b: Any, *rest: Any) -> Any:
    numerator, denominator = _to_number(a), _to_number(b)
    if denominator == 0:
        if numerator == 0 or (isinstance(numerator, float) and math.isnan(numerator)):
            return _NAN
        return math.copysign(math.inf, numerator)
    return _normalize_number(numerator / denominator)


def _op_modulo(a: Any, b: Any, *rest: Any) -> Any:
    numerator, denominator = _to_number(a), _to_number(b)
    if denominator == 0 or not math.isfinite(numerator):
        return _NAN
    return _normalize_number(math.fmod(numerator, denominator))


def _op_min(*args: Any) -> Any:
    if not args:
        return None
    return min(_to_number(a) for a in args)


def _op_max(*args: Any) -> Any:
    if not args:
        return None
    return max(_to_number(a) for a in args)


def _op_merge(*args: Any) -> List[Any]:
    merged: List[Any] = []
    for arg in args:
        if isinstance(arg, list):
            merged.extend(arg)
        else:
            merged.append(arg)
    return merged


_OPERATIONS: Dict[str, Callable[..., Any]] = {
    "==": lambda a=None, b=None, *_: loose_equals(a, b),
    "===": lambda a=None, b=None, *_: strict_equals(a, b),
    "!=": lambda a=None, b=None, *_: not loose_equals(a, b),
    "!==": lambda a=None, b=None, *_: not strict_equals(a, b),
    ">": lambda a=None, b=None, *_: _less_than(b, a),
    ">=": lambda a=None, b=None, *_: _less_or_equal(b, a),
    "<": _op_less,
    "<=": _op_less_equal,
    "!": lambda a=None, *_: not truthy(a),
    "!!": lambda a=None, *_: truthy(a),
    "in": _op_in,
    "cat": _op_cat,
    "substr": _op_substr,
    "+": _op_add,
    "*": _op_multiply,
    "-": _op_subtract,
    "/": _op_divide,
    "%": _op_modulo,
    "min": _op_min,
    "max": _op_max,
    "merge": _op_merge,
    "log": lambda a=None, *_: a,
}


# ============================================================================
# Evaluator
# ============================================================================


def _is_logic(rule: Any) -> bool:
    return isinstance(rule, dict) and len(rule) == 1


def _resolve_var(data: Any, path: Any, not_found: Any = None) -> Any:
    if path is None or path == "" or path == []:
        return data

    name = _to_string(path) if not isinstance(path, str) else path

    if isinstance(data, Mapping) and name in data:
        value = data[name]
        return not_found if value is None else value

    current = data
    for part in name.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return not_found
            current = current[part]
        elif isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return not_found
        else:
            return not_found
        if current is None:
            return not_found
    return current


def _missing(data: Any, keys: List[Any]) -> List[Any]:
    if keys and isinstance(keys[0], list):
        keys = keys[0]
    absent = []
    for key in keys:
        value = _resolve_var(data, key)
        if value is None or value == "":
            absent.append(key)
    return absent


def evaluate(rule: Rule, data: Any = None) -> Any:
    """
    Evaluate a JSON-Logic `rule` against `data`.

    Raises
    ------
    RuleEvaluationError
        If the rule uses an unsupported operator.
    """
    if isinstance(rule, list):
        return [evaluate(item, data) for item in rule]
    if not _is_logic(rule):
        return rule

    if data is None:
        data = {}

    op, values = next(iter(rule.items()))
    if not isinstance(values, list):
        values = [values]

    if op in ("if", "?:"):
        i = 0
        while i < len(values) - 1:
            if truthy(evaluate(values[i], data)):
                return evaluate(values[i + 1], data)
            i += 2
        if len(values) == i + 1:
            return evaluate(values[i], data)
        return None

    if op == "and":
        current = None
        for value in values:
            current = evaluate(value, data)
            if not truthy(current):
                return current
        return current

    if op == "or":
        current = None
        for value in values:
            current = evaluate(value, data)
            if truthy(current):
                return current
        return current

    if op in ("filter", "map", "all", "some", "none", "reduce"):
        return _evaluate_iteration(op, values, data)

    args = [evaluate(value, data) for value in values]

    if op == "var":
        return _resolve_var(data, *args[:2]) if args else data
    if op == "missing":
        return _missing(data, args)
    if op == "missing_some":
        need_count, options = (args + [0, []])[:2]
        options = options or []
        absent = _missing(data, [options])
        if len(options) - len(absent) >= need_count:
            return []
        return absent

    operation = _OPERATIONS.get(op)
    if operation is None:
        raise RuleEvaluationError(op, f"Unrecognized operation {op}")

    try:
        return operation(*args)
    except (TypeError, ValueError, OverflowError) as e:
        raise RuleEvaluationError(op, f"Invalid arguments for {op}: {e}") from e


def _evaluate_iteration(op: str, values: List[Any], data: Any) -> Any:
    scoped_data = evaluate(values[0], data) if values else None
    scoped_logic = values[1] if len(values) > 1 else None

    if op == "reduce":
        initial = evaluate(values[2], data) if len(values) > 2 else None
        if not isinstance(scoped_data, list):
            return initial
        accumulator = initial
        for current in scoped_data:
            accumulator = evaluate(
                scoped_logic, {"current": current, "accumulator": accumulator}
            )
        return accumulator

    if not isinstance(scoped_data, list):
        scoped_data = []

    if op == "map":
        return [evaluate(scoped_logic, datum) for datum in scoped_data]

    matches = [datum for datum in scoped_data if truthy(evaluate(scoped_logic, datum))]
    if op == "filter":
        return matches
    if op == "all":
        return bool(scoped_data) and len(matches) == len(scoped_data)
    if op == "some":
        return len(matches) > 0
    return len(matches) == 0


class RuleEngine:
    """Evaluates rules against the metric map cached for a reference."""

    def __init__(self, store: ReferenceStore) -> None:
        self._store = store

    def apply_metrics_logic(self, ref: CategoryReferenceIdParam, rule: Rule) -> Optional[Any]:
        """
        Evaluate `rule` against the reference's metrics.

        Returns None (unknown) when no metric map is cached for the reference.
        """
        metrics = self._store.metrics.get(to_key(ref))
        if metrics is None:
            return None
        return evaluate(rule, dict(metrics))
