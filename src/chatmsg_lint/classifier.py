"""Constant classification and composed-string scanning."""

from __future__ import annotations

import ast

from chatmsg_lint.model import Segment, Span
from chatmsg_lint.resolver import AnalysisContext

# Python 3.14 template strings; absent on older interpreters.
_TEMPLATE_STR = getattr(ast, "TemplateStr", None)
_INTERPOLATION = getattr(ast, "Interpolation", None)


def is_constant(expr: ast.expr, ctx: AnalysisContext) -> bool:
    """True iff the resolver can compute ``expr``'s value without running it."""
    return ctx.resolver.evaluate_constant(expr) is not None


def _is_str_literal(node: ast.expr) -> bool:
    return isinstance(node, ast.Constant) and isinstance(node.value, str)


def _flatten_concat(node: ast.expr) -> list[ast.expr]:
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.Add):
        return _flatten_concat(node.left) + _flatten_concat(node.right)
    return [node]


def embedded_expressions(node: ast.AST) -> list[ast.expr] | None:
    """Embedded segments of a composed string, or None if ``node`` is not one.

    Recognized forms are f-strings, t-strings, ``"...".format(...)``,
    ``"..." % args`` and ``+`` concatenation involving a string literal.
    """
    if isinstance(node, ast.JoinedStr):
        return [value.value for value in node.values if isinstance(value, ast.FormattedValue)]
    if _TEMPLATE_STR is not None and isinstance(node, _TEMPLATE_STR):
        return [value.value for value in node.values if isinstance(value, _INTERPOLATION)]
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Attribute)
        and node.func.attr == "format"
        and _is_str_literal(node.func.value)
    ):
        args = [arg.value if isinstance(arg, ast.Starred) else arg for arg in node.args]
        return args + [kw.value for kw in node.keywords]
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.Mod) and _is_str_literal(node.left):
        if isinstance(node.right, ast.Tuple):
            return list(node.right.elts)
        if isinstance(node.right, ast.Dict):
            return list(node.right.values)
        return [node.right]
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.Add):
        operands = _flatten_concat(node)
        if any(_is_str_literal(operand) for operand in operands):
            return [operand for operand in operands if not _is_str_literal(operand)]
    return None


def has_dynamic_interpolation(expr: ast.expr, ctx: AnalysisContext) -> bool:
    """True as soon as one embedded segment anywhere under ``expr`` is not constant."""
    for node in ast.walk(expr):
        segments = embedded_expressions(node)
        if not segments:
            continue
        ctx.check_cancelled()
        if any(not is_constant(segment, ctx) for segment in segments):
            return True
    return False


def dynamic_segments(expr: ast.expr, ctx: AnalysisContext) -> list[Segment]:
    """All non-constant embedded segments under ``expr``, outermost only, in source order."""
    found: dict[Span, ast.expr] = {}
    for node in ast.walk(expr):
        segments = embedded_expressions(node)
        if not segments:
            continue
        ctx.check_cancelled()
        for segment in segments:
            if not is_constant(segment, ctx):
                found.setdefault(Span.from_node(segment), segment)

    spans = sorted(found)
    outermost = [
        span for span in spans if not any(other != span and other.contains(span) for other in spans)
    ]
    return [Segment(span, ctx.resolver.source_segment(found[span])) for span in outermost]
