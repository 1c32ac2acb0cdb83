"""Tests for chatmsg_lint.python_host: the Python source resolution oracle."""

import ast
import textwrap

import pytest

from chatmsg_lint.model import (
    FieldBinding,
    LocalBinding,
    ParameterBinding,
    PropertyBinding,
    TypeReference,
    UnknownBinding,
)
from chatmsg_lint.python_host import SourceResolver


def _resolver(code: str) -> tuple[SourceResolver, ast.Module]:
    source = textwrap.dedent(code)
    tree = ast.parse(source)
    return SourceResolver(tree, source), tree


def _find(tree: ast.AST, kind: type, predicate=lambda node: True, index: int = -1):
    matches = [node for node in ast.walk(tree) if isinstance(node, kind) and predicate(node)]
    matches.sort(key=lambda node: (node.lineno, node.col_offset))
    return matches[index]


def _name(tree: ast.AST, ident: str, index: int = -1) -> ast.Name:
    return _find(
        tree,
        ast.Name,
        lambda node: node.id == ident and isinstance(node.ctx, ast.Load),
        index,
    )


SYSTEM = TypeReference("langchain_core.messages", "SystemMessage")


class TestResolveCallee:
    def test_from_import(self):
        resolver, tree = _resolver(
            """
            from langchain_core.messages import SystemMessage
            SystemMessage("x")
            """
        )
        assert resolver.resolve_callee(_find(tree, ast.Call)) == SYSTEM

    def test_from_import_with_alias(self):
        resolver, tree = _resolver(
            """
            from langchain_core.messages import SystemMessage as Sys
            Sys("x")
            """
        )
        assert resolver.resolve_callee(_find(tree, ast.Call)) == SYSTEM

    def test_module_import_attribute_chain(self):
        resolver, tree = _resolver(
            """
            import langchain_core.messages
            langchain_core.messages.SystemMessage("x")
            """
        )
        assert resolver.resolve_callee(_find(tree, ast.Call)) == SYSTEM

    def test_module_alias(self):
        resolver, tree = _resolver(
            """
            import langchain_core.messages as lc
            lc.SystemMessage("x")
            """
        )
        assert resolver.resolve_callee(_find(tree, ast.Call)) == SYSTEM

    def test_local_class_alias(self):
        resolver, tree = _resolver(
            """
            from langchain_core.messages import SystemMessage
            def build():
                Sys = SystemMessage
                return Sys("x")
            """
        )
        assert resolver.resolve_callee(_find(tree, ast.Call)) == SYSTEM

    def test_builtin(self):
        resolver, tree = _resolver("list([1])")
        assert resolver.resolve_callee(_find(tree, ast.Call)) == TypeReference("builtins", "list")

    def test_shadowed_builtin_is_unresolved(self):
        resolver, tree = _resolver(
            """
            def list(x):
                return x
            list([1])
            """
        )
        assert resolver.resolve_callee(_find(tree, ast.Call)) is None

    def test_locally_defined_class_is_unresolved(self):
        resolver, tree = _resolver(
            """
            class SystemMessage:
                pass
            SystemMessage("x")
            """
        )
        assert resolver.resolve_callee(_find(tree, ast.Call)) is None

    def test_method_on_instance_is_unresolved(self):
        resolver, tree = _resolver(
            """
            def f(client):
                return client.create("x")
            """
        )
        assert resolver.resolve_callee(_find(tree, ast.Call)) is None


class TestResolveType:
    def test_local_initialized_from_construction(self):
        resolver, tree = _resolver(
            """
            from langchain_core.messages import SystemMessage
            def f():
                msg = SystemMessage("x")
                return msg
            """
        )
        assert resolver.resolve_type(_name(tree, "msg")) == SYSTEM

    def test_annotated_parameter(self):
        resolver, tree = _resolver(
            """
            from langchain_core.messages import SystemMessage
            def f(msg: SystemMessage):
                return msg
            """
        )
        assert resolver.resolve_type(_name(tree, "msg")) == SYSTEM

    def test_string_and_optional_annotations(self):
        resolver, tree = _resolver(
            """
            from typing import Optional
            from langchain_core.messages import SystemMessage
            def f(a: "SystemMessage", b: Optional[SystemMessage], c: SystemMessage | None):
                return [a, b, c]
            """
        )
        for ident in ("a", "b", "c"):
            assert resolver.resolve_type(_name(tree, ident)) == SYSTEM, ident

    def test_unannotated_parameter(self):
        resolver, tree = _resolver(
            """
            def f(msg):
                return msg
            """
        )
        assert resolver.resolve_type(_name(tree, "msg")) is None


class TestResolveSymbol:
    def test_parameter(self):
        resolver, tree = _resolver(
            """
            def f(user_input: str):
                return user_input
            """
        )
        binding = resolver.resolve_symbol(_name(tree, "user_input"))
        assert isinstance(binding, ParameterBinding)

    def test_local_with_initializer(self):
        resolver, tree = _resolver(
            """
            def f(user_input):
                text = user_input.strip()
                return text
            """
        )
        binding = resolver.resolve_symbol(_name(tree, "text"))
        assert isinstance(binding, LocalBinding)
        assert ast.unparse(binding.initializer) == "user_input.strip()"
        assert binding.is_const is False

    def test_function_local_literal_is_not_constant(self):
        resolver, tree = _resolver(
            """
            def f():
                text = "static"
                return text
            """
        )
        binding = resolver.resolve_symbol(_name(tree, "text"))
        assert binding == LocalBinding(binding.initializer, is_const=False)

    def test_final_function_local_is_constant(self):
        resolver, tree = _resolver(
            """
            from typing import Final
            def f():
                text: Final = "static"
                return text
            """
        )
        binding = resolver.resolve_symbol(_name(tree, "text"))
        assert binding == LocalBinding(binding.initializer, is_const=True)

    def test_class_level_literal_is_constant(self):
        resolver, tree = _resolver(
            """
            class Bot:
                PROMPT = "static"
                GREETING = PROMPT
            """
        )
        binding = resolver.resolve_symbol(_name(tree, "PROMPT"))
        assert binding == LocalBinding(binding.initializer, is_const=True)

    def test_nearest_preceding_assignment_wins(self):
        resolver, tree = _resolver(
            """
            def f(a, b):
                text = a
                use(text)
                text = b
                return text
            """
        )
        first = resolver.resolve_symbol(_name(tree, "text", index=0))
        last = resolver.resolve_symbol(_name(tree, "text"))
        assert ast.unparse(first.initializer) == "a"
        assert ast.unparse(last.initializer) == "b"

    def test_loop_variable_has_no_initializer(self):
        resolver, tree = _resolver(
            """
            def f(items):
                for item in items:
                    use(item)
            """
        )
        binding = resolver.resolve_symbol(_name(tree, "item"))
        assert binding == LocalBinding(None, is_const=False)

    def test_module_name_read_from_function_is_field(self):
        resolver, tree = _resolver(
            """
            PROMPT = "You are helpful."
            current = load()
            def f():
                return PROMPT, current
            """
        )
        assert resolver.resolve_symbol(_name(tree, "PROMPT")) == FieldBinding(is_const=True)
        assert resolver.resolve_symbol(_name(tree, "current")) == FieldBinding(is_const=False)

    def test_global_defined_after_function(self):
        resolver, tree = _resolver(
            """
            def f():
                return PROMPT
            PROMPT = "late"
            """
        )
        assert resolver.resolve_symbol(_name(tree, "PROMPT")) == FieldBinding(is_const=True)

    def test_final_annotation_is_constant(self):
        resolver, tree = _resolver(
            """
            from typing import Final
            PROMPT: Final = "a"
            PROMPT: Final = "b"
            def f():
                return PROMPT
            """
        )
        assert resolver.resolve_symbol(_name(tree, "PROMPT")) == FieldBinding(is_const=True)

    def test_module_level_local(self):
        resolver, tree = _resolver(
            """
            name = input()
            print(name)
            """
        )
        binding = resolver.resolve_symbol(_name(tree, "name"))
        assert isinstance(binding, LocalBinding)
        assert ast.unparse(binding.initializer) == "input()"

    def test_imported_name_is_unknown(self):
        resolver, tree = _resolver(
            """
            from prompts import SYSTEM_PROMPT
            def f():
                return SYSTEM_PROMPT
            """
        )
        assert resolver.resolve_symbol(_name(tree, "SYSTEM_PROMPT")) == UnknownBinding()

    def test_unbound_name_is_unknown(self):
        resolver, tree = _resolver("print(mystery)")
        assert resolver.resolve_symbol(_name(tree, "mystery")) == UnknownBinding()

    def test_closure_reads_enclosing_local(self):
        resolver, tree = _resolver(
            """
            def outer(user):
                text = user
                def inner():
                    return text
                return inner
            """
        )
        binding = resolver.resolve_symbol(_name(tree, "text"))
        assert isinstance(binding, LocalBinding)
        assert ast.unparse(binding.initializer) == "user"

    def test_class_body_not_visible_from_method(self):
        resolver, tree = _resolver(
            """
            class Bot:
                prompt = "static"
                def build(self):
                    return prompt
            """
        )
        assert resolver.resolve_symbol(_name(tree, "prompt")) == UnknownBinding()

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("def f(self):\n    return self.prompt\n", FieldBinding(is_const=False)),
            ("def f(settings):\n    return settings.prompt\n", PropertyBinding()),
            ("import config\ndef f():\n    return config.PROMPT\n", UnknownBinding()),
        ],
    )
    def test_member_reads(self, code, expected):
        resolver, tree = _resolver(code)
        attribute = _find(tree, ast.Attribute)
        assert resolver.resolve_symbol(attribute) == expected


class TestEvaluateConstant:
    def test_fstring_folding(self):
        resolver, tree = _resolver(
            """
            NAME = "bot"
            f"{NAME!r:>7}|{3:03d}"
            """
        )
        value = resolver.evaluate_constant(tree.body[-1].value)
        assert value.value == "  'bot'|003"

    def test_chained_constants(self):
        resolver, tree = _resolver(
            """
            A = "x"
            B = A + "y"
            B
            """
        )
        assert resolver.evaluate_constant(tree.body[-1].value).value == "xy"

    def test_large_repetition_is_not_folded(self):
        resolver, tree = _resolver('"a" * 1000000')
        assert resolver.evaluate_constant(tree.body[-1].value) is None

    @pytest.mark.parametrize(
        "code",
        [
            '"a" * 4096 * 4096 * 4096',
            '4096 * "a" * 4096 * 4096',
            'X = "a" * 50000\nY = X + X + X\nY',
            'f"{1:>999999999}"',
            'f"{1:.999999999f}"',
            'f"{1:>{99999999}}"',
            '"%999999999s" % "a"',
            '"%*s" % (999999999, "a")',
            '"%.999999999f" % 1.0',
        ],
    )
    def test_oversized_results_are_not_folded(self, code):
        resolver, tree = _resolver(code)
        assert resolver.evaluate_constant(tree.body[-1].value) is None

    def test_moderate_sizes_still_fold(self):
        resolver, tree = _resolver('f"{\'ab\' * 100:>300}" + "%5s" % "x"')
        value = resolver.evaluate_constant(tree.body[-1].value).value
        assert len(value) == 305

    def test_chained_function_locals_are_not_constant(self):
        resolver, tree = _resolver(
            """
            def f():
                a = "x"
                return a + "y"
            """
        )
        assert resolver.evaluate_constant(tree.body[-1].body[-1].value) is None

    def test_invalid_operation_is_not_constant(self):
        resolver, tree = _resolver('"a" - 1')
        assert resolver.evaluate_constant(tree.body[-1].value) is None


class TestSourceSegment:
    def test_returns_original_text(self):
        resolver, tree = _resolver("value = compute( a,  b )\n")
        call = _find(tree, ast.Call)
        assert resolver.source_segment(call) == "compute( a,  b )"
