"""Resolution oracle for Python source, built on the stdlib ``ast`` module.

One ``SourceResolver`` covers one parsed module. All scope and import tables
are built up front in ``__init__``; afterwards the resolver is only read, so a
single instance can serve every rule callback for that module.

Python has no ``const``. A name counts as a declared constant when it is
annotated ``Final``, or when it lives at module or class level and is bound
exactly once there by a plain assignment whose value is itself constant.
Function locals are only constant when annotated ``Final``.
"""

from __future__ import annotations

import ast
import builtins
import operator
import re
from dataclasses import dataclass, field
from typing import Callable, Literal

from chatmsg_lint.model import (
    Binding,
    Constant,
    FieldBinding,
    LocalBinding,
    ParameterBinding,
    PropertyBinding,
    TypeReference,
    UnknownBinding,
)

ScopeKind = Literal["module", "class", "function", "comprehension"]
Position = tuple[int, int]

_BUILTIN_NAMES = frozenset(dir(builtins))
_FINAL_NAMES = {"typing.Final", "typing_extensions.Final"}
_WRAPPER_NAMES = {
    "typing.Final",
    "typing_extensions.Final",
    "typing.Optional",
    "typing.Annotated",
    "typing_extensions.Annotated",
}
# Depth cap for alias chains and constant folding through names.
_MAX_DEPTH = 32
# Largest folded value: characters or items for sequences, bits for integers.
# Also caps field widths and precisions in format specs.
_MAX_SIZE = 100_000
_DIGITS_RE = re.compile(r"\d+")
_PERCENT_FIELD_RE = re.compile(r"%(?:\([^)]*\))?[-#0 +]*(\*|\d*)(?:\.(\*|\d*))?")

_BINOPS: dict[type[ast.operator], Callable[[object, object], object]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Mod: operator.mod,
}
_UNARYOPS: dict[type[ast.unaryop], Callable[[object], object]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
    ast.Invert: operator.invert,
}
_CONVERSIONS: dict[int, Callable[[object], str]] = {115: str, 114: repr, 97: ascii}


def _size(value: object) -> int:
    if isinstance(value, (str, bytes, tuple)):
        return len(value)
    if isinstance(value, int):
        return value.bit_length()
    return 0


def _too_large(value: object) -> bool:
    return _size(value) > _MAX_SIZE


def _exceeds(digits: str) -> bool:
    return len(digits) > len(str(_MAX_SIZE)) or int(digits) > _MAX_SIZE


def _oversized_repeat(left: object, right: object) -> bool:
    for seq, count in ((left, right), (right, left)):
        if isinstance(seq, (str, bytes, tuple)) and isinstance(count, int):
            return len(seq) * count > _MAX_SIZE
    return False


def _oversized_percent(template: object, args: object) -> bool:
    if isinstance(template, bytes):
        template = template.decode("latin-1")
    if not isinstance(template, str):
        return False
    items = args if isinstance(args, tuple) else (args,)
    if len(template) + sum(_size(item) for item in items) > _MAX_SIZE:
        return True
    for match in _PERCENT_FIELD_RE.finditer(template):
        for group in match.groups():
            if group == "*" or (group and _exceeds(group)):
                return True
    return False


def _start(node: ast.AST) -> Position:
    return (getattr(node, "lineno", 0), getattr(node, "col_offset", 0))


def _end(node: ast.AST) -> Position:
    return (
        getattr(node, "end_lineno", None) or getattr(node, "lineno", 0),
        getattr(node, "end_col_offset", None) or getattr(node, "col_offset", 0),
    )


@dataclass(frozen=True)
class _Site:
    """One place where a name gets bound."""

    end: Position
    value: ast.expr | None = None
    annotation: ast.expr | None = None
    import_target: str | None = None
    definition: bool = False


@dataclass
class _Scope:
    node: ast.AST
    kind: ScopeKind
    parent: _Scope | None
    params: dict[str, ast.arg] = field(default_factory=dict)
    sites: dict[str, list[_Site]] = field(default_factory=dict)
    declared_global: set[str] = field(default_factory=set)
    declared_nonlocal: set[str] = field(default_factory=set)

    def bind(self, name: str, site: _Site) -> None:
        self.sites.setdefault(name, []).append(site)


@dataclass(frozen=True)
class _Lookup:
    name: str
    scope: _Scope
    site: _Site | None
    param: ast.arg | None
    from_inner: bool


class _ScopeBuilder(ast.NodeVisitor):
    """Single pass that records binding sites and the scope of every node."""

    def __init__(self, tree: ast.AST) -> None:
        self.module = _Scope(tree, "module", None)
        self.scope_of: dict[ast.AST, _Scope] = {}
        self._current = self.module

    def visit(self, node: ast.AST) -> None:
        self.scope_of.setdefault(node, self._current)
        super().visit(node)

    def _visit_all(self, nodes: list) -> None:
        for node in nodes:
            if node is not None:
                self.visit(node)

    def _enter(self, node: ast.AST, kind: ScopeKind) -> _Scope:
        scope = _Scope(node, kind, self._current)
        self._current = scope
        return scope

    def _leave(self, scope: _Scope) -> None:
        self._current = scope.parent or self.module

    def _binding_scope(self) -> _Scope:
        # Walrus targets escape comprehension scopes.
        scope = self._current
        while scope.kind == "comprehension" and scope.parent is not None:
            scope = scope.parent
        return scope

    def _bind_target(
        self,
        target: ast.expr,
        end: Position,
        value: ast.expr | None,
        annotation: ast.expr | None = None,
        scope: _Scope | None = None,
    ) -> None:
        scope = scope or self._current
        if isinstance(target, ast.Name):
            scope.bind(target.id, _Site(end, value, annotation))
        elif isinstance(target, (ast.Tuple, ast.List)):
            for elt in target.elts:
                self._bind_target(elt, end, None, scope=scope)
        elif isinstance(target, ast.Starred):
            self._bind_target(target.value, end, None, scope=scope)

    @staticmethod
    def _add_params(scope: _Scope, args: ast.arguments) -> None:
        every = args.posonlyargs + args.args + args.kwonlyargs
        every += [arg for arg in (args.vararg, args.kwarg) if arg is not None]
        for arg in every:
            scope.params[arg.arg] = arg

    def _visit_arguments_outside(self, args: ast.arguments, with_annotations: bool) -> None:
        self._visit_all(args.defaults)
        self._visit_all(args.kw_defaults)
        if with_annotations:
            every = args.posonlyargs + args.args + args.kwonlyargs
            every += [arg for arg in (args.vararg, args.kwarg) if arg is not None]
            self._visit_all([arg.annotation for arg in every])

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        self._current.bind(node.name, _Site(_end(node), definition=True))
        self._visit_all(node.decorator_list)
        self._visit_arguments_outside(node.args, with_annotations=True)
        if node.returns is not None:
            self.visit(node.returns)
        scope = self._enter(node, "function")
        self._add_params(scope, node.args)
        self._visit_all(node.body)
        self._leave(scope)

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_arguments_outside(node.args, with_annotations=False)
        scope = self._enter(node, "function")
        self._add_params(scope, node.args)
        self.visit(node.body)
        self._leave(scope)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._current.bind(node.name, _Site(_end(node), definition=True))
        self._visit_all(node.decorator_list)
        self._visit_all(node.bases)
        self._visit_all([kw.value for kw in node.keywords])
        scope = self._enter(node, "class")
        self._visit_all(node.body)
        self._leave(scope)

    def _visit_comprehension(self, node: ast.ListComp | ast.SetComp | ast.DictComp | ast.GeneratorExp) -> None:
        generators = node.generators
        self.visit(generators[0].iter)
        scope = self._enter(node, "comprehension")
        for index, generator in enumerate(generators):
            if index:
                self.visit(generator.iter)
            self._bind_target(generator.target, _end(generator.target), None)
            self.visit(generator.target)
            self._visit_all(generator.ifs)
        if isinstance(node, ast.DictComp):
            self.visit(node.key)
            self.visit(node.value)
        else:
            self.visit(node.elt)
        self._leave(scope)

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            value = node.value if isinstance(target, ast.Name) else None
            self._bind_target(target, _end(node), value)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if node.value is not None:
            self._bind_target(node.target, _end(node), node.value, node.annotation)
        self.generic_visit(node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self._bind_target(node.target, _end(node), None)
        self.generic_visit(node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self._bind_target(node.target, _end(node), node.value, scope=self._binding_scope())
        self.generic_visit(node)

    def visit_For(self, node: ast.For | ast.AsyncFor) -> None:
        self._bind_target(node.target, _end(node.target), None)
        self.generic_visit(node)

    visit_AsyncFor = visit_For

    def visit_With(self, node: ast.With | ast.AsyncWith) -> None:
        for item in node.items:
            if item.optional_vars is not None:
                self._bind_target(item.optional_vars, _end(item.context_expr), None)
        self.generic_visit(node)

    visit_AsyncWith = visit_With

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self._current.bind(node.name, _Site(_start(node)))
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            if alias.asname:
                self._current.bind(alias.asname, _Site(_end(node), import_target=alias.name))
            else:
                root = alias.name.split(".", 1)[0]
                self._current.bind(root, _Site(_end(node), import_target=root))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        module = "." * (node.level or 0) + (node.module or "")
        for alias in node.names:
            if alias.name == "*":
                continue
            target = f"{module}.{alias.name}" if module else alias.name
            self._current.bind(alias.asname or alias.name, _Site(_end(node), import_target=target))

    def visit_Global(self, node: ast.Global) -> None:
        self._current.declared_global.update(node.names)

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self._current.declared_nonlocal.update(node.names)

    def visit_MatchAs(self, node: ast.MatchAs) -> None:
        if node.name:
            self._current.bind(node.name, _Site(_end(node)))
        self.generic_visit(node)

    def visit_MatchStar(self, node: ast.MatchStar) -> None:
        if node.name:
            self._current.bind(node.name, _Site(_end(node)))

    def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
        if node.rest:
            self._current.bind(node.rest, _Site(_end(node)))
        self.generic_visit(node)


class SourceResolver:
    """Answers name, type and constant queries for one parsed module."""

    def __init__(self, tree: ast.AST, source: str = "") -> None:
        builder = _ScopeBuilder(tree)
        builder.visit(tree)
        self._module = builder.module
        self._scope_of = builder.scope_of
        self._source = source

    # -- lookup ---------------------------------------------------------

    def _scope_for(self, node: ast.AST) -> tuple[_Scope, bool]:
        scope = self._scope_of.get(node)
        if scope is None:
            # Nodes that are not part of the tree (parsed string annotations).
            return self._module, True
        return scope, False

    def _binding_scope(self, name: str, start: _Scope) -> _Scope | None:
        scope: _Scope | None = start
        while scope is not None:
            if name in scope.declared_global:
                return self._module if name in self._module.sites else None
            if name in scope.declared_nonlocal:
                scope = scope.parent
                continue
            # Class bodies are not visible from the functions nested in them.
            if scope.kind == "class" and scope is not start:
                scope = scope.parent
                continue
            if name in scope.params or name in scope.sites:
                return scope
            scope = scope.parent
        return None

    def _lookup(self, node: ast.Name) -> _Lookup | None:
        use_scope, detached = self._scope_for(node)
        scope = self._binding_scope(node.id, use_scope)
        if scope is None:
            return None
        from_inner = detached or scope is not use_scope
        sites = sorted(scope.sites.get(node.id, []), key=lambda s: s.end)
        preceding = [site for site in sites if site.end <= _start(node)]
        if preceding:
            site: _Site | None = preceding[-1]
        elif from_inner and sites:
            # Enclosing-scope names are read when the inner code runs.
            site = sites[-1]
        else:
            site = None
        return _Lookup(node.id, scope, site, scope.params.get(node.id), from_inner)

    def _const_value(self, found: _Lookup, depth: int) -> Constant | None:
        site = found.site
        if site is None or site.value is None or found.param is not None:
            return None
        if not self._is_final(site.annotation):
            if found.scope.kind not in ("module", "class"):
                return None
            if len(found.scope.sites.get(found.name, [])) != 1:
                return None
        return self._evaluate(site.value, depth + 1)

    def _is_final(self, annotation: ast.expr | None) -> bool:
        if annotation is None:
            return False
        if isinstance(annotation, ast.Subscript):
            annotation = annotation.value
        return self._qualify(annotation) in _FINAL_NAMES

    # -- qualified names ------------------------------------------------

    def _qualify(self, expr: ast.expr, depth: int = 0) -> str | None:
        if depth > _MAX_DEPTH:
            return None
        if isinstance(expr, ast.Attribute):
            base = self._qualify(expr.value, depth + 1)
            return f"{base}.{expr.attr}" if base else None
        if not isinstance(expr, ast.Name):
            return None
        found = self._lookup(expr)
        if found is None:
            return f"builtins.{expr.id}" if expr.id in _BUILTIN_NAMES else None
        site = found.site
        if site is None:
            return None
        if site.import_target is not None:
            return site.import_target
        if isinstance(site.value, (ast.Name, ast.Attribute)):
            return self._qualify(site.value, depth + 1)
        return None

    def _annotation_type(self, annotation: ast.expr | None, depth: int = 0) -> TypeReference | None:
        if annotation is None or depth > _MAX_DEPTH:
            return None
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            try:
                annotation = ast.parse(annotation.value, mode="eval").body
            except SyntaxError:
                return None
        if isinstance(annotation, ast.Subscript) and self._qualify(annotation.value) in _WRAPPER_NAMES:
            inner = annotation.slice
            if isinstance(inner, ast.Tuple) and inner.elts:
                inner = inner.elts[0]
            return self._annotation_type(inner, depth + 1)
        if isinstance(annotation, ast.BinOp) and isinstance(annotation.op, ast.BitOr):
            right = annotation.right
            if isinstance(right, ast.Constant) and right.value is None:
                return self._annotation_type(annotation.left, depth + 1)
            return None
        dotted = self._qualify(annotation)
        return TypeReference.parse(dotted) if dotted else None

    # -- Resolver protocol ----------------------------------------------

    def resolve_callee(self, call: ast.Call) -> TypeReference | None:
        dotted = self._qualify(call.func)
        return TypeReference.parse(dotted) if dotted else None

    def resolve_type(self, expr: ast.expr, depth: int = 0) -> TypeReference | None:
        if depth > _MAX_DEPTH:
            return None
        if isinstance(expr, ast.Call):
            return self.resolve_callee(expr)
        if isinstance(expr, ast.NamedExpr):
            return self.resolve_type(expr.value, depth + 1)
        if not isinstance(expr, ast.Name):
            return None
        found = self._lookup(expr)
        if found is None:
            return None
        if found.site is None:
            return self._annotation_type(found.param.annotation) if found.param else None
        annotated = self._annotation_type(found.site.annotation)
        if annotated is not None and annotated.qualified_name not in _FINAL_NAMES:
            return annotated
        if found.site.value is not None:
            return self.resolve_type(found.site.value, depth + 1)
        return None

    def resolve_symbol(self, expr: ast.expr) -> Binding:
        if isinstance(expr, ast.Name):
            return self._name_binding(expr)
        if isinstance(expr, ast.Attribute):
            return self._member_binding(expr)
        return UnknownBinding()

    def _name_binding(self, expr: ast.Name) -> Binding:
        found = self._lookup(expr)
        if found is None:
            return UnknownBinding()
        site = found.site
        if site is None:
            if found.param is not None:
                return ParameterBinding(found.param.annotation)
            return LocalBinding(None, is_const=False)
        if site.import_target is not None or site.definition:
            return UnknownBinding()
        is_const = self._const_value(found, 0) is not None
        use_scope, _ = self._scope_for(expr)
        if found.scope.kind == "module" and use_scope.kind != "module":
            return FieldBinding(is_const=is_const)
        return LocalBinding(site.value, is_const=is_const)

    def _member_binding(self, expr: ast.Attribute) -> Binding:
        if self._qualify(expr.value) is not None:
            # Attribute of an imported module or class; its value lives elsewhere.
            return UnknownBinding()
        root = expr.value
        if isinstance(root, ast.Name) and root.id in ("self", "cls"):
            if isinstance(self._name_binding(root), ParameterBinding):
                return FieldBinding(is_const=False)
        return PropertyBinding()

    def evaluate_constant(self, expr: ast.expr) -> Constant | None:
        return self._evaluate(expr, 0)

    def source_segment(self, expr: ast.expr) -> str:
        return ast.get_source_segment(self._source, expr) or ast.unparse(expr)

    # -- constant folding -----------------------------------------------

    def _evaluate(self, expr: ast.expr, depth: int) -> Constant | None:
        if depth > _MAX_DEPTH:
            return None
        if isinstance(expr, ast.Constant):
            return Constant(expr.value)
        if isinstance(expr, ast.JoinedStr):
            return self._evaluate_fstring(expr, depth)
        if isinstance(expr, ast.Tuple):
            items = [self._evaluate(elt, depth + 1) for elt in expr.elts]
            if any(item is None for item in items):
                return None
            return Constant(tuple(item.value for item in items))
        if isinstance(expr, ast.UnaryOp) and type(expr.op) in _UNARYOPS:
            operand = self._evaluate(expr.operand, depth + 1)
            if operand is None:
                return None
            try:
                return Constant(_UNARYOPS[type(expr.op)](operand.value))
            except (TypeError, ValueError):
                return None
        if isinstance(expr, ast.BinOp) and type(expr.op) in _BINOPS:
            return self._evaluate_binop(expr, depth)
        if isinstance(expr, ast.Name):
            found = self._lookup(expr)
            return self._const_value(found, depth) if found is not None else None
        return None

    def _evaluate_binop(self, expr: ast.BinOp, depth: int) -> Constant | None:
        left = self._evaluate(expr.left, depth + 1)
        right = self._evaluate(expr.right, depth + 1)
        if left is None or right is None:
            return None
        if isinstance(expr.op, ast.Mult) and _oversized_repeat(left.value, right.value):
            return None
        if isinstance(expr.op, ast.Mod) and _oversized_percent(left.value, right.value):
            return None
        try:
            result = _BINOPS[type(expr.op)](left.value, right.value)
        except (TypeError, ValueError, ZeroDivisionError, OverflowError):
            return None
        return None if _too_large(result) else Constant(result)

    def _evaluate_fstring(self, expr: ast.JoinedStr, depth: int) -> Constant | None:
        parts: list[str] = []
        total = 0
        for value in expr.values:
            if isinstance(value, ast.Constant):
                parts.append(str(value.value))
                continue
            if not isinstance(value, ast.FormattedValue):
                return None
            inner = self._evaluate(value.value, depth + 1)
            if inner is None:
                return None
            spec = ""
            if value.format_spec is not None:
                folded = self._evaluate(value.format_spec, depth + 1)
                if folded is None:
                    return None
                spec = str(folded.value)
            if any(_exceeds(digits) for digits in _DIGITS_RE.findall(spec)):
                return None
            converted = inner.value
            try:
                if value.conversion in _CONVERSIONS:
                    converted = _CONVERSIONS[value.conversion](converted)
                parts.append(format(converted, spec))
            except (TypeError, ValueError):
                return None
            total += len(parts[-1])
            if total > _MAX_SIZE:
                return None
        joined = "".join(parts)
        return None if _too_large(joined) else Constant(joined)
