"""
Filter and formula expressions for the local collection.

Expressions use the familiar C-style syntax found in query files:

    status != "done" && priority <= 2
    tags.contains("urgent") || file.folder == "projects"
    !isDraft && due_date < today()

They are rewritten into Python expression syntax, parsed with ``ast``
and evaluated by a whitelist walker; nothing is ever passed to eval().
"""

import ast
import operator
from datetime import date
from typing import Any, Callable, Mapping

from .errors import ExpressionError
from .types import iso_timestamp, utc_now

_WORDS = {"true": "True", "false": "False", "null": "None"}

_ORDERING = {
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}

_ARITHMETIC = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}


def _contains(target: Any, item: Any) -> bool:
    if isinstance(target, (list, tuple, str)):
        try:
            return item in target
        except TypeError:
            return False
    return False


def _starts_with(target: Any, prefix: Any) -> bool:
    return isinstance(target, str) and target.startswith(str(prefix))


def _ends_with(target: Any, suffix: Any) -> bool:
    return isinstance(target, str) and target.endswith(str(suffix))


def _is_empty(target: Any) -> bool:
    return target is None or target == "" or target == [] or target == {}


def _length(target: Any) -> int:
    try:
        return len(target)
    except TypeError:
        return 0


METHODS: dict[str, Callable[..., Any]] = {
    "contains": _contains,
    "startsWith": _starts_with,
    "endsWith": _ends_with,
    "isEmpty": _is_empty,
    "length": _length,
}

FUNCTIONS: dict[str, Callable[[], Any]] = {
    "today": lambda: date.today().isoformat(),
    "now": lambda: iso_timestamp(utc_now()),
}


def _to_python(text: str) -> str:
    """Rewrite &&, ||, ! and true/false/null outside string literals."""
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in ("'", '"'):
            j = i + 1
            while j < n and text[j] != ch:
                j += 2 if text[j] == "\\" else 1
            out.append(text[i:j + 1])
            i = j + 1
        elif text.startswith("&&", i):
            out.append(" and ")
            i += 2
        elif text.startswith("||", i):
            out.append(" or ")
            i += 2
        elif ch == "!" and not text.startswith("!=", i):
            out.append(" not ")
            i += 1
        elif ch.isalpha() or ch == "_":
            j = i
            while j < n and (text[j].isalnum() or text[j] == "_"):
                j += 1
            word = text[i:j]
            out.append(_WORDS.get(word, word))
            i = j
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def compile_expression(text: str) -> ast.Expression:
    """Parse *text* into an expression tree.

    Raises:
        ExpressionError: The text is not a valid expression.
    """
    try:
        return ast.parse(_to_python(text).strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression {text!r}: {e.msg}") from e


def evaluate(tree: ast.Expression, scope: Mapping[str, Any]) -> Any:
    """Evaluate a compiled expression against *scope* (missing names are None)."""
    return _Evaluator(scope).visit(tree.body)


def matches(tree: ast.Expression, scope: Mapping[str, Any]) -> bool:
    return bool(evaluate(tree, scope))


class _Evaluator:
    def __init__(self, scope: Mapping[str, Any]):
        self.scope = scope

    def visit(self, node: ast.AST) -> Any:
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")
        return method(node)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        return self.scope.get(node.id)

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        value = self.visit(node.value)
        if isinstance(value, Mapping):
            return value.get(node.attr)
        return None

    def visit_List(self, node: ast.List) -> list:
        return [self.visit(e) for e in node.elts]

    visit_Tuple = visit_List

    def visit_BoolOp(self, node: ast.BoolOp) -> bool:
        if isinstance(node.op, ast.And):
            return all(self.visit(v) for v in node.values)
        return any(self.visit(v) for v in node.values)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub) and isinstance(operand, (int, float)):
            return -operand
        raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        op = _ARITHMETIC.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        left, right = self.visit(node.left), self.visit(node.right)
        if left is None or right is None:
            return None
        try:
            return op(left, right)
        except (TypeError, ZeroDivisionError):
            return None

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            if not self._compare(op, left, right):
                return False
            left = right
        return True

    def _compare(self, op: ast.cmpop, left: Any, right: Any) -> bool:
        if isinstance(op, ast.Eq):
            return left == right
        if isinstance(op, ast.NotEq):
            return left != right
        if isinstance(op, (ast.In, ast.NotIn)):
            found = _contains(right, left)
            return found if isinstance(op, ast.In) else not found
        fn = _ORDERING.get(type(op))
        if fn is None:
            raise ExpressionError(f"Unsupported comparison: {type(op).__name__}")
        if left is None or right is None:
            return False
        try:
            return fn(left, right)
        except TypeError:
            return False

    def visit_Call(self, node: ast.Call) -> Any:
        if node.keywords:
            raise ExpressionError("Keyword arguments are not supported")
        args = [self.visit(a) for a in node.args]
        func = node.func
        if isinstance(func, ast.Name):
            fn = FUNCTIONS.get(func.id)
            if fn is None:
                raise ExpressionError(f"Unknown function: {func.id}()")
            if args:
                raise ExpressionError(f"{func.id}() takes no arguments")
            return fn()
        if isinstance(func, ast.Attribute):
            method = METHODS.get(func.attr)
            if method is None:
                raise ExpressionError(f"Unknown method: .{func.attr}()")
            try:
                return method(self.visit(func.value), *args)
            except TypeError as e:
                raise ExpressionError(f"Bad arguments to .{func.attr}(): {e}") from e
        raise ExpressionError("Unsupported call")
