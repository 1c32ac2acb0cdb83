"""CML002: a system message should close a mixed conversation."""

from __future__ import annotations

import ast

from chatmsg_lint.model import Finding, RuleDescriptor, Span
from chatmsg_lint.resolver import AnalysisContext

DESCRIPTOR = RuleDescriptor(
    id="CML002",
    title="System message should be last",
    severity="info",
    message=(
        "Consider adding a system message as the last message to help mitigate "
        "potential prompt injections."
    ),
    description=(
        "Including an additional system message last is a good way to help mitigate "
        "potential prompt injections by reminding the model of its constraints."
    ),
)

NODE_TYPES: tuple[type[ast.AST], ...] = (ast.List, ast.Tuple)


def check(node: ast.AST, ctx: AnalysisContext) -> list[Finding]:
    if not isinstance(node, (ast.List, ast.Tuple)) or not isinstance(node.ctx, ast.Load):
        return []
    elements = node.elts
    if len(elements) < 2:
        return []

    kinds = [
        "unknown" if isinstance(element, ast.Starred) else ctx.message_kind(element)
        for element in elements
    ]
    if "privileged" not in kinds:
        return []
    if "user" not in kinds and "assistant" not in kinds:
        return []
    if kinds[-1] == "privileged":
        return []

    return [
        Finding(
            rule_id=DESCRIPTOR.id,
            severity=DESCRIPTOR.severity,
            span=Span.from_node(elements[-1]),
            message=DESCRIPTOR.message,
            path=ctx.path,
        )
    ]
