"""Drive the registered rules over modules, files and directory trees."""

from __future__ import annotations

import ast
import asyncio
import os
import re
import threading
import tokenize
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from chatmsg_lint.config import LintConfig
from chatmsg_lint.model import Finding
from chatmsg_lint.python_host import SourceResolver
from chatmsg_lint.resolver import AnalysisCancelledError, AnalysisContext, CancelSignal, Resolver
from chatmsg_lint.rules import rules_by_node_type

logger = structlog.get_logger(__name__)

IGNORED_DIRS: frozenset[str] = frozenset(
    {
        ".chatmsg-lint",
        ".eggs",
        ".git",
        ".hg",
        ".mypy_cache",
        ".nox",
        ".pytest_cache",
        ".ruff_cache",
        ".tox",
        ".venv",
        "__pycache__",
        "build",
        "dist",
        "env",
        "node_modules",
        "site-packages",
        "venv",
    }
)

_NOQA_RE = re.compile(r"#\s*noqa(?::\s*(?P<codes>[A-Za-z]+[0-9]+(?:[,\s]+[A-Za-z]+[0-9]+)*))?", re.IGNORECASE)


@dataclass
class LintResult:
    """Outcome of analyzing a set of files."""

    findings: list[Finding] = field(default_factory=list)
    files: int = 0
    cancelled: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        counts = {"warning": 0, "info": 0}
        for finding in self.findings:
            counts[finding.severity] = counts.get(finding.severity, 0) + 1
        return counts


def analyze_tree(
    tree: ast.AST,
    resolver: Resolver,
    *,
    config: LintConfig | None = None,
    cancel: CancelSignal | None = None,
    path: str = "<unknown>",
) -> list[Finding]:
    """Run every enabled rule on every node it registered for.

    Raises ``AnalysisCancelledError`` if ``cancel`` is set mid-way; no
    findings from the interrupted tree are returned in that case.
    """
    config = config or LintConfig()
    extra = {"cancel": cancel} if cancel is not None else {}
    ctx = AnalysisContext(resolver, config.catalog, config.policy, path=path, **extra)
    table = rules_by_node_type(config.disabled_rules)

    findings: list[Finding] = []
    for node in ast.walk(tree):
        rules = table.get(type(node))
        if not rules:
            continue
        ctx.check_cancelled()
        for rule in rules:
            findings.extend(rule.check(node, ctx))
    return sorted(findings, key=lambda finding: finding.sort_key)


def _suppressed(finding: Finding, lines: list[str]) -> bool:
    index = finding.span.line - 1
    if not 0 <= index < len(lines):
        return False
    match = _NOQA_RE.search(lines[index])
    if match is None:
        return False
    codes = match.group("codes")
    if not codes:
        return True
    return finding.rule_id in {code.upper() for code in re.split(r"[,\s]+", codes) if code}


def analyze_source(
    source: str,
    path: str = "<unknown>",
    *,
    config: LintConfig | None = None,
    cancel: CancelSignal | None = None,
) -> list[Finding]:
    """Parse ``source`` and return its findings, honoring ``# noqa`` comments."""
    try:
        tree = ast.parse(source, filename=path)
    except (SyntaxError, ValueError) as exc:
        logger.warning("parse_failed", path=path, error=str(exc))
        return []
    resolver = SourceResolver(tree, source)
    findings = analyze_tree(tree, resolver, config=config, cancel=cancel, path=path)
    lines = source.splitlines()
    return [finding for finding in findings if not _suppressed(finding, lines)]


@dataclass
class _FileOutcome:
    path: str
    findings: list[Finding] = field(default_factory=list)
    cancelled: bool = False
    skipped: bool = False


def analyze_file(path: str, config: LintConfig, cancel: CancelSignal | None = None) -> _FileOutcome:
    try:
        with tokenize.open(path) as fh:
            source = fh.read()
    except (OSError, SyntaxError, UnicodeDecodeError) as exc:
        logger.warning("file_unreadable", path=path, error=str(exc))
        return _FileOutcome(path, skipped=True)

    try:
        findings = analyze_source(source, path, config=config, cancel=cancel)
    except AnalysisCancelledError:
        logger.warning("analysis_cancelled", path=path)
        return _FileOutcome(path, cancelled=True)
    logger.debug("file_analyzed", path=path, findings=len(findings))
    return _FileOutcome(path, findings)


def collect_files(paths: list[str]) -> list[str]:
    """Expand directories to the Python files under them, skipping build/dependency dirs."""
    results: list[str] = []
    for raw in paths:
        root = Path(raw)
        if root.is_file():
            results.append(str(root))
            continue
        if not root.is_dir():
            logger.warning("path_missing", path=raw)
            continue
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
            for filename in sorted(filenames):
                if filename.endswith(".py"):
                    results.append(str(Path(dirpath) / filename))
    return list(dict.fromkeys(results))


async def analyze_paths(
    paths: list[str],
    *,
    config: LintConfig | None = None,
    jobs: int = 8,
    timeout: float | None = None,
) -> LintResult:
    """Analyze files concurrently in worker threads.

    Each file gets its own cancel event. When ``timeout`` expires the event is
    set, the worker abandons the file at its next check, and the file is
    reported as cancelled instead of contributing partial findings.
    """
    config = config or LintConfig()
    files = collect_files(paths)
    semaphore = asyncio.Semaphore(max(jobs, 1))

    async def _one(file_path: str) -> _FileOutcome:
        async with semaphore:
            cancel = threading.Event()
            work = asyncio.to_thread(analyze_file, file_path, config, cancel)
            if timeout is None:
                return await work
            try:
                return await asyncio.wait_for(work, timeout)
            except asyncio.TimeoutError:
                cancel.set()
                logger.warning("analysis_timed_out", path=file_path, timeout=timeout)
                return _FileOutcome(file_path, cancelled=True)

    outcomes = await asyncio.gather(*(_one(file_path) for file_path in files))

    result = LintResult(files=len(files))
    for outcome in outcomes:
        if outcome.cancelled:
            result.cancelled.append(outcome.path)
        elif outcome.skipped:
            result.skipped.append(outcome.path)
        else:
            result.findings.extend(outcome.findings)
    result.findings.sort(key=lambda finding: finding.sort_key)
    return result
