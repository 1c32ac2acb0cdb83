"""Value types shared by the resolver, the rules and the reporter."""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Literal, Union

MessageKind = Literal["privileged", "user", "assistant", "other", "unknown"]
Severity = Literal["warning", "info"]


@dataclass(frozen=True)
class TypeReference:
    """Namespace-qualified name of a class or function. Equality is exact."""

    namespace: str
    name: str

    @classmethod
    def parse(cls, dotted: str) -> TypeReference:
        namespace, _, name = dotted.strip().rpartition(".")
        if not name:
            raise ValueError(f"Not a dotted type name: {dotted!r}")
        return cls(namespace, name)

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name


@dataclass(frozen=True, order=True)
class Span:
    """Source range of a node: 1-based lines, 0-based columns."""

    line: int
    column: int
    end_line: int
    end_column: int

    @classmethod
    def from_node(cls, node: ast.AST) -> Span:
        line = getattr(node, "lineno", 0)
        column = getattr(node, "col_offset", 0)
        end_line = getattr(node, "end_lineno", None) or line
        end_column = getattr(node, "end_col_offset", None)
        return cls(line, column, end_line, column if end_column is None else end_column)

    def contains(self, other: Span) -> bool:
        return (self.line, self.column) <= (other.line, other.column) and (
            other.end_line,
            other.end_column,
        ) <= (self.end_line, self.end_column)


@dataclass(frozen=True)
class Segment:
    """A dynamic sub-expression extracted from message content."""

    span: Span
    source: str


@dataclass(frozen=True)
class Constant:
    """Compile-time value of an expression (wrapped so ``None`` is a value too)."""

    value: object


# Symbol bindings. The set is closed: code dispatching on a binding handles
# every one of these.


@dataclass(frozen=True)
class LocalBinding:
    initializer: ast.expr | None
    is_const: bool = False


@dataclass(frozen=True)
class ParameterBinding:
    annotation: ast.expr | None = None


@dataclass(frozen=True)
class FieldBinding:
    is_const: bool = False


@dataclass(frozen=True)
class PropertyBinding:
    pass


@dataclass(frozen=True)
class UnknownBinding:
    pass


Binding = Union[LocalBinding, ParameterBinding, FieldBinding, PropertyBinding, UnknownBinding]


@dataclass(frozen=True)
class RuleDescriptor:
    """Stable, externally visible description of a rule."""

    id: str
    title: str
    severity: Severity
    message: str
    description: str

    @property
    def help_path(self) -> str:
        return f"docs/{self.id}.md"


@dataclass(frozen=True)
class Finding:
    """One diagnostic produced by a rule."""

    rule_id: str
    severity: Severity
    span: Span
    message: str
    path: str = "<unknown>"
    segments: tuple[Segment, ...] = field(default=())

    @property
    def sort_key(self) -> tuple[str, Span, str]:
        return (self.path, self.span, self.rule_id)

    def to_dict(self) -> dict:
        return {
            "rule": self.rule_id,
            "severity": self.severity,
            "file": self.path,
            "line": self.span.line,
            "column": self.span.column,
            "end_line": self.span.end_line,
            "end_column": self.span.end_column,
            "message": self.message,
            "segments": [
                {
                    "line": seg.span.line,
                    "column": seg.span.column,
                    "end_line": seg.span.end_line,
                    "end_column": seg.span.end_column,
                    "source": seg.source,
                }
                for seg in self.segments
            ],
        }


def _refs(*dotted: str) -> tuple[TypeReference, ...]:
    return tuple(TypeReference.parse(name) for name in dotted)


DEFAULT_PRIVILEGED = _refs(
    "langchain_core.messages.SystemMessage",
    "langchain_core.messages.system.SystemMessage",
    "openai.types.chat.ChatCompletionSystemMessageParam",
    "openai.types.chat.ChatCompletionDeveloperMessageParam",
    "openai.types.chat.chat_completion_system_message_param.ChatCompletionSystemMessageParam",
    "openai.types.chat.chat_completion_developer_message_param.ChatCompletionDeveloperMessageParam",
)
DEFAULT_USER = _refs(
    "langchain_core.messages.HumanMessage",
    "langchain_core.messages.human.HumanMessage",
    "openai.types.chat.ChatCompletionUserMessageParam",
    "openai.types.chat.chat_completion_user_message_param.ChatCompletionUserMessageParam",
)
DEFAULT_ASSISTANT = _refs(
    "langchain_core.messages.AIMessage",
    "langchain_core.messages.ai.AIMessage",
    "openai.types.chat.ChatCompletionAssistantMessageParam",
    "openai.types.chat.chat_completion_assistant_message_param.ChatCompletionAssistantMessageParam",
)
DEFAULT_OTHER = _refs(
    "langchain_core.messages.ToolMessage",
    "langchain_core.messages.FunctionMessage",
    "langchain_core.messages.ChatMessage",
    "langchain_core.messages.tool.ToolMessage",
    "langchain_core.messages.function.FunctionMessage",
    "langchain_core.messages.chat.ChatMessage",
    "openai.types.chat.ChatCompletionToolMessageParam",
    "openai.types.chat.ChatCompletionFunctionMessageParam",
    "openai.types.chat.chat_completion_tool_message_param.ChatCompletionToolMessageParam",
    "openai.types.chat.chat_completion_function_message_param.ChatCompletionFunctionMessageParam",
)
DEFAULT_FACTORIES = _refs(
    "langchain_core.messages.content.create_text_block",
    "openai.types.chat.ChatCompletionContentPartTextParam",
    "openai.types.chat.chat_completion_content_part_text_param.ChatCompletionContentPartTextParam",
)
DEFAULT_CONTAINERS = _refs(
    "builtins.list",
    "builtins.tuple",
    "builtins.set",
    "builtins.frozenset",
    "builtins.dict",
)


@dataclass(frozen=True)
class MessageCatalog:
    """Types the rules recognize, matched by exact namespace and name."""

    privileged: tuple[TypeReference, ...] = DEFAULT_PRIVILEGED
    user: tuple[TypeReference, ...] = DEFAULT_USER
    assistant: tuple[TypeReference, ...] = DEFAULT_ASSISTANT
    other: tuple[TypeReference, ...] = DEFAULT_OTHER
    factories: tuple[TypeReference, ...] = DEFAULT_FACTORIES
    containers: tuple[TypeReference, ...] = DEFAULT_CONTAINERS
    content_keyword: str = "content"
    factory_keyword: str = "text"

    def kind_of(self, type_ref: TypeReference | None) -> MessageKind:
        if type_ref is None:
            return "unknown"
        if type_ref in self.privileged:
            return "privileged"
        if type_ref in self.user:
            return "user"
        if type_ref in self.assistant:
            return "assistant"
        return "other"

    def is_constructible(self, type_ref: TypeReference | None) -> bool:
        """Whether a call to ``type_ref`` is an object construction worth descending into."""
        if type_ref is None:
            return False
        return type_ref in self.containers or type_ref in (
            self.privileged + self.user + self.assistant + self.other
        )


@dataclass(frozen=True)
class AnalysisPolicy:
    """Tunable analysis knobs."""

    # Report non-constant fields and properties passed as system content even
    # without visible interpolation.
    flag_member_reads: bool = True
    max_trace_depth: int = 32
