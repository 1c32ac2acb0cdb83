"""Static checks for prompt injection risks in LLM chat message construction."""

from chatmsg_lint.config import ConfigError, LintConfig, load_config
from chatmsg_lint.engine import LintResult, analyze_paths, analyze_source, analyze_tree
from chatmsg_lint.model import Finding, MessageCatalog, Segment, Span, TypeReference
from chatmsg_lint.resolver import AnalysisCancelledError, AnalysisContext, Resolver

__all__ = [
    "AnalysisCancelledError",
    "AnalysisContext",
    "ConfigError",
    "Finding",
    "LintConfig",
    "LintResult",
    "MessageCatalog",
    "Resolver",
    "Segment",
    "Span",
    "TypeReference",
    "analyze_paths",
    "analyze_source",
    "analyze_tree",
    "load_config",
]
