"""CML001: dynamic content passed to a system message constructor."""

from __future__ import annotations

import ast

from chatmsg_lint.classifier import dynamic_segments, has_dynamic_interpolation
from chatmsg_lint.model import (
    FieldBinding,
    Finding,
    LocalBinding,
    ParameterBinding,
    PropertyBinding,
    RuleDescriptor,
    Segment,
    Span,
)
from chatmsg_lint.resolver import AnalysisContext, first_argument
from chatmsg_lint.tracer import trace

DESCRIPTOR = RuleDescriptor(
    id="CML001",
    title="Avoid inputs in system messages",
    severity="warning",
    message=(
        "System message content contains dynamic expressions which may include user input. "
        "Move user content to a user message to prevent prompt injection."
    ),
    description=(
        "Including user inputs in a system message is a security risk and might allow bad "
        "actors to perform prompt injection. System messages should only contain static "
        "information."
    ),
)

NODE_TYPES: tuple[type[ast.AST], ...] = (ast.Call,)


def _finding(ctx: AnalysisContext, span: Span, segments: tuple[Segment, ...]) -> Finding:
    return Finding(
        rule_id=DESCRIPTOR.id,
        severity=DESCRIPTOR.severity,
        span=span,
        message=DESCRIPTOR.message,
        path=ctx.path,
        segments=segments,
    )


def _is_dynamic_handle(arg: ast.expr, ctx: AnalysisContext) -> bool:
    """Whether ``arg`` is a bare reference to a value that is not a constant."""
    if not isinstance(arg, (ast.Name, ast.Attribute)):
        return False
    binding = ctx.resolver.resolve_symbol(arg)
    if isinstance(binding, ParameterBinding):
        return True
    if isinstance(binding, LocalBinding):
        return not binding.is_const
    if isinstance(binding, FieldBinding):
        return ctx.policy.flag_member_reads and not binding.is_const
    if isinstance(binding, PropertyBinding):
        return ctx.policy.flag_member_reads
    return False


def check(node: ast.AST, ctx: AnalysisContext) -> list[Finding]:
    if not isinstance(node, ast.Call) or not (node.args or node.keywords):
        return []
    ctx.check_cancelled()
    if ctx.catalog.kind_of(ctx.resolver.resolve_type(node)) != "privileged":
        return []

    arg = first_argument(node, ctx.catalog.content_keyword)
    if arg is None:
        return []

    if has_dynamic_interpolation(arg, ctx):
        return [_finding(ctx, Span.from_node(arg), tuple(dynamic_segments(arg, ctx)))]

    traced = trace(arg, ctx)
    if traced is not None:
        return [_finding(ctx, traced.span, traced.segments)]

    if _is_dynamic_handle(arg, ctx):
        span = Span.from_node(arg)
        return [_finding(ctx, span, (Segment(span, ctx.resolver.source_segment(arg)),))]

    return []
