"""Rule registry and rule documentation (loaded from markdown)."""

import ast
import importlib.resources
from types import ModuleType

from chatmsg_lint.model import RuleDescriptor
from chatmsg_lint.rules import system_content, system_last

RULES: tuple[ModuleType, ...] = (system_content, system_last)

RULE_IDS: list[str] = [rule.DESCRIPTOR.id for rule in RULES]


def get_descriptor(rule_id: str) -> RuleDescriptor:
    for rule in RULES:
        if rule.DESCRIPTOR.id == rule_id.upper():
            return rule.DESCRIPTOR
    raise KeyError(rule_id)


def rules_by_node_type(disabled: frozenset[str] = frozenset()) -> dict[type[ast.AST], list[ModuleType]]:
    """Map each registered node type to the enabled rules interested in it."""
    table: dict[type[ast.AST], list[ModuleType]] = {}
    for rule in RULES:
        if rule.DESCRIPTOR.id in disabled:
            continue
        for node_type in rule.NODE_TYPES:
            table.setdefault(node_type, []).append(rule)
    return table


def load_rule_doc(rule_id: str) -> str:
    """Load a rule's markdown documentation from the installed package."""
    descriptor = get_descriptor(rule_id)
    ref = importlib.resources.files("chatmsg_lint.rules").joinpath("docs").joinpath(f"{descriptor.id}.md")
    return ref.read_text(encoding="utf-8")
