"""In-memory resolver for driving the rules without the Python host."""

import ast

from chatmsg_lint.model import Binding, Constant, TypeReference, UnknownBinding


class FakeResolver:
    """Resolver keyed by source text.

    ``types`` maps callee text (``"SystemMessage"``) or variable names to a
    type, ``bindings`` maps identifier text to a binding and ``constants``
    maps identifier text to a compile-time value.
    """

    def __init__(
        self,
        types: dict[str, TypeReference] | None = None,
        bindings: dict[str, Binding] | None = None,
        constants: dict[str, object] | None = None,
    ) -> None:
        self.types = types or {}
        self.bindings = bindings or {}
        self.constants = constants or {}

    def resolve_callee(self, call: ast.Call) -> TypeReference | None:
        return self.types.get(ast.unparse(call.func))

    def resolve_type(self, expr: ast.expr) -> TypeReference | None:
        if isinstance(expr, ast.Call):
            return self.resolve_callee(expr)
        if isinstance(expr, ast.Name):
            return self.types.get(expr.id)
        return None

    def resolve_symbol(self, expr: ast.expr) -> Binding:
        return self.bindings.get(ast.unparse(expr), UnknownBinding())

    def evaluate_constant(self, expr: ast.expr) -> Constant | None:
        if isinstance(expr, ast.Constant):
            return Constant(expr.value)
        key = ast.unparse(expr)
        if key in self.constants:
            return Constant(self.constants[key])
        return None

    def source_segment(self, expr: ast.expr) -> str:
        return ast.unparse(expr)


def expr(code: str) -> ast.expr:
    """Parse a single expression."""
    return ast.parse(code, mode="eval").body
