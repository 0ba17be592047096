"""Template substitution and condition evaluation.

Templates have the form ``{{path.to.value}}``. Paths are split on ``.``, ``[``
and ``]`` and looked up depth-first against a variable namespace. A string
that consists of exactly one template yields the raw value; templates embedded
in longer strings are substituted as text.

Unresolved templates follow a fallback policy rather than raising: an inline
template keeps its original ``{{...}}`` text and a whole-string template
resolves to the namespace object itself.
"""

from __future__ import annotations

import ast
import json
import operator
import re
from typing import Any, Callable, Dict, Iterator, List, Mapping

from .errors import ConditionError

TEMPLATE_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
FULL_TEMPLATE_RE = re.compile(r"^\{\{\s*([^{}]+?)\s*\}\}$")

MISSING: Any = object()


def split_path(path: str) -> List[str]:
    """Split ``a.b[0].c`` into ``['a', 'b', '0', 'c']``."""
    return [part for part in re.split(r"[.\[\]]", path.strip()) if part]


def lookup(namespace: Any, path: str, default: Any = MISSING) -> Any:
    """Resolve ``path`` against ``namespace``; return ``default`` when absent."""
    current = namespace
    for part in split_path(path):
        if isinstance(current, Mapping):
            if part in current:
                current = current[part]
                continue
            return default
        if isinstance(current, (list, tuple, str)):
            if part == "length":
                current = len(current)
                continue
            if part.startswith("-"):
                return default
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return default
            continue
        return default
    return current


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple, bool)) or value is None:
        return json.dumps(value, default=str)
    return str(value)


def substitute_text(text: str, namespace: Mapping[str, Any]) -> str:
    """Replace every template in ``text`` by its value rendered as text."""

    def _replace(match: re.Match[str]) -> str:
        resolved = lookup(namespace, match.group(1))
        if resolved is MISSING:
            return match.group(0)
        return _stringify(resolved)

    return TEMPLATE_RE.sub(_replace, text)


def resolve_templates(value: Any, namespace: Mapping[str, Any]) -> Any:
    """Recursively substitute templates inside ``value``."""
    if isinstance(value, str):
        full = FULL_TEMPLATE_RE.match(value)
        if full:
            resolved = lookup(namespace, full.group(1))
            return namespace if resolved is MISSING else resolved
        return substitute_text(value, namespace)
    if isinstance(value, list):
        return [resolve_templates(item, namespace) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve_templates(item, namespace) for item in value)
    if isinstance(value, dict):
        return {key: resolve_templates(item, namespace) for key, item in value.items()}
    return value


def iter_references(value: Any) -> Iterator[str]:
    """Yield every template path referenced anywhere inside ``value``."""
    if isinstance(value, str):
        for match in TEMPLATE_RE.finditer(value):
            yield match.group(1)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_references(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_references(item)


# ----------------------------------------------------------------------
# Conditions

_STRING_RE = re.compile(r"""("(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')""")

_TOKEN_RE = re.compile(
    _STRING_RE.pattern
    + r"|===|!==|&&|\|\||!(?!=)|\btrue\b|\bfalse\b|\bnull\b|\bundefined\b"
)

_TRANSLATIONS = {
    "===": "==",
    "!==": "!=",
    "&&": " and ",
    "||": " or ",
    "!": " not ",
    "true": "True",
    "false": "False",
    "null": "None",
    "undefined": "None",
}

_BIN_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_CMP_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


def _translate(source: str) -> str:
    def _sub(match: re.Match[str]) -> str:
        if match.group(1):
            return match.group(1)
        return _TRANSLATIONS[match.group(0)]

    return _TOKEN_RE.sub(_sub, source).strip()


class _ConditionEvaluator:
    """Walks a restricted expression AST without calling ``eval``."""

    def __init__(self, bindings: Dict[str, Any]) -> None:
        self._bindings = bindings

    def visit(self, node: ast.AST) -> Any:
        handler = getattr(self, f"_visit_{type(node).__name__}", None)
        if handler is None:
            raise ConditionError(f"Unsupported expression: {type(node).__name__}")
        return handler(node)

    def _visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def _visit_Name(self, node: ast.Name) -> Any:
        if node.id in self._bindings:
            return self._bindings[node.id]
        raise ConditionError(f"Unknown name in condition: {node.id}")

    def _visit_List(self, node: ast.List) -> Any:
        return [self.visit(elt) for elt in node.elts]

    def _visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(elt) for elt in node.elts)

    def _visit_BoolOp(self, node: ast.BoolOp) -> Any:
        result: Any = None
        for value in node.values:
            result = self.visit(value)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    def _visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub):
            return -operand
        if isinstance(node.op, ast.UAdd):
            return +operand
        raise ConditionError(f"Unsupported operator: {type(node.op).__name__}")

    def _visit_BinOp(self, node: ast.BinOp) -> Any:
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise ConditionError(f"Unsupported operator: {type(node.op).__name__}")
        try:
            return op(self.visit(node.left), self.visit(node.right))
        except (TypeError, ZeroDivisionError) as exc:
            raise ConditionError(str(exc)) from exc

    def _visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op_node, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            op = _CMP_OPS[type(op_node)]
            try:
                ok = op(left, right)
            except TypeError:
                # ordering between incompatible types is simply false
                ok = False
            if not ok:
                return False
            left = right
        return True

    def _visit_Subscript(self, node: ast.Subscript) -> Any:
        container = self.visit(node.value)
        key = self.visit(node.slice)
        try:
            return container[key]
        except (KeyError, IndexError, TypeError):
            return None

    def _visit_Attribute(self, node: ast.Attribute) -> Any:
        value = self.visit(node.value)
        if node.attr == "length" and isinstance(value, (list, tuple, str, dict)):
            return len(value)
        if isinstance(value, Mapping):
            return value.get(node.attr)
        return None

    def _visit_Call(self, node: ast.Call) -> Any:
        if isinstance(node.func, ast.Name) and node.func.id == "len" and len(node.args) == 1:
            return len(self.visit(node.args[0]))
        raise ConditionError("Function calls are not allowed in conditions")


def evaluate_condition(expression: Any, namespace: Mapping[str, Any]) -> bool:
    """Evaluate a workflow condition against ``namespace``.

    Templates are bound as opaque values, so resolved data never gets parsed
    as expression source. A quoted literal containing templates becomes the
    string with those templates substituted as text, so ``"{{status}}" === "ok"``
    compares the rendered status with ``"ok"``.
    """
    if not isinstance(expression, str):
        return bool(resolve_templates(expression, namespace))

    bindings: Dict[str, Any] = {}

    def _name_for(value: Any) -> str:
        name = f"__v{len(bindings)}"
        bindings[name] = value
        return f" {name} "

    def _bind_literal(match: re.Match[str]) -> str:
        literal = match.group(0)
        if not TEMPLATE_RE.search(literal):
            return literal
        try:
            text = ast.literal_eval(literal)
        except (SyntaxError, ValueError) as exc:
            raise ConditionError(f"Invalid string literal {literal} in condition") from exc
        return _name_for(substitute_text(text, namespace))

    def _bind(match: re.Match[str]) -> str:
        value = lookup(namespace, match.group(1))
        return _name_for(None if value is MISSING else value)

    source = _STRING_RE.sub(_bind_literal, expression)
    source = _translate(TEMPLATE_RE.sub(_bind, source))
    if not source:
        raise ConditionError("Empty condition")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ConditionError(f"Invalid condition '{expression}': {exc.msg}") from exc
    return bool(_ConditionEvaluator(bindings).visit(tree.body))
