"""Resolution oracle consumed by the analysis core.

The rules never look at imports or scopes themselves. Everything they need to
know about names and types comes through a ``Resolver``, so the algorithm can
run against the real Python host (``chatmsg_lint.python_host``) or against a
hand-built fake in tests.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Protocol

from chatmsg_lint.model import (
    AnalysisPolicy,
    Binding,
    Constant,
    MessageCatalog,
    MessageKind,
    TypeReference,
)


class AnalysisCancelledError(RuntimeError):
    """Raised when the host asks the analysis to stop.

    Never converted into a partial finding: the engine drops whatever the
    current node produced and reports the file as cancelled.
    """


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


class Resolver(Protocol):
    """Read-only view of one module's names, types and constant values."""

    def resolve_type(self, expr: ast.expr) -> TypeReference | None: ...

    def resolve_callee(self, call: ast.Call) -> TypeReference | None: ...

    def resolve_symbol(self, expr: ast.expr) -> Binding: ...

    def evaluate_constant(self, expr: ast.expr) -> Constant | None: ...

    def source_segment(self, expr: ast.expr) -> str: ...


class _NeverCancelled:
    def is_set(self) -> bool:
        return False


@dataclass(frozen=True)
class AnalysisContext:
    """Everything a rule callback receives besides the node itself."""

    resolver: Resolver
    catalog: MessageCatalog = field(default_factory=MessageCatalog)
    policy: AnalysisPolicy = field(default_factory=AnalysisPolicy)
    cancel: CancelSignal = field(default_factory=_NeverCancelled)
    path: str = "<unknown>"

    def check_cancelled(self) -> None:
        if self.cancel.is_set():
            raise AnalysisCancelledError(f"analysis of {self.path} was cancelled")

    def message_kind(self, expr: ast.expr) -> MessageKind:
        self.check_cancelled()
        return self.catalog.kind_of(self.resolver.resolve_type(expr))


def first_argument(call: ast.Call, keyword: str) -> ast.expr | None:
    """Primary content argument of a call: positional 0, else ``keyword=``."""
    if call.args and not isinstance(call.args[0], ast.Starred):
        return call.args[0]
    for kw in call.keywords:
        if kw.arg == keyword:
            return kw.value
    return None
