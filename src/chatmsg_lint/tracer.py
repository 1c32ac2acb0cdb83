"""Follow a content argument back to the local initializer that produced it."""

from __future__ import annotations

import ast
from dataclasses import dataclass

import structlog

from chatmsg_lint.classifier import dynamic_segments, has_dynamic_interpolation
from chatmsg_lint.model import LocalBinding, Segment, Span
from chatmsg_lint.resolver import AnalysisContext, first_argument

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Trace:
    """Where dynamic content entered the traced value."""

    span: Span
    segments: tuple[Segment, ...]


def _children(node: ast.expr, ctx: AnalysisContext) -> list[ast.expr]:
    """Element/argument expressions of a construction or collection literal."""
    if isinstance(node, (ast.List, ast.Tuple, ast.Set)):
        return [elt.value if isinstance(elt, ast.Starred) else elt for elt in node.elts]
    if isinstance(node, ast.Dict):
        return list(node.values)
    if isinstance(node, ast.Call) and ctx.catalog.is_constructible(ctx.resolver.resolve_callee(node)):
        args = [arg.value if isinstance(arg, ast.Starred) else arg for arg in node.args]
        return args + [kw.value for kw in node.keywords]
    return []


def _factory_hit(node: ast.expr, ctx: AnalysisContext) -> Trace | None:
    if not isinstance(node, ast.Call):
        return None
    if ctx.resolver.resolve_callee(node) not in ctx.catalog.factories:
        return None
    arg = first_argument(node, ctx.catalog.factory_keyword)
    if arg is None or not has_dynamic_interpolation(arg, ctx):
        return None
    return Trace(Span.from_node(arg), tuple(dynamic_segments(arg, ctx)))


def trace(expr: ast.expr, ctx: AnalysisContext) -> Trace | None:
    """Find dynamic content in the initializer of the local ``expr`` refers to.

    Only a bare name bound to a local with a visible initializer is traced.
    Inside the initializer, content-part factory calls are checked and
    constructions and collection literals are searched depth-first, left to
    right; the first hit wins. Names inside the initializer are not followed.
    """
    if not isinstance(expr, ast.Name):
        return None
    binding = ctx.resolver.resolve_symbol(expr)
    if not isinstance(binding, LocalBinding) or binding.initializer is None:
        return None

    stack: list[tuple[ast.expr, int]] = [(binding.initializer, 0)]
    while stack:
        ctx.check_cancelled()
        node, depth = stack.pop()
        if depth > ctx.policy.max_trace_depth:
            logger.debug(
                "trace_depth_exceeded",
                path=ctx.path,
                line=getattr(expr, "lineno", 0),
                limit=ctx.policy.max_trace_depth,
            )
            return None

        hit = _factory_hit(node, ctx)
        if hit is not None:
            return hit

        children = _children(node, ctx)
        stack.extend((child, depth + 1) for child in reversed(children))
    return None
