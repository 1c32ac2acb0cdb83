"""Render lint results as text or JSON."""

from __future__ import annotations

import json

from chatmsg_lint.engine import LintResult
from chatmsg_lint.model import Finding
from chatmsg_lint.rules import get_descriptor


def format_finding(finding: Finding) -> str:
    help_path = get_descriptor(finding.rule_id).help_path
    return (
        f"{finding.path}:{finding.span.line}:{finding.span.column + 1}: "
        f"{finding.rule_id} [{finding.severity}] {finding.message} (see {help_path})"
    )


def render_text(result: LintResult) -> str:
    lines = [format_finding(finding) for finding in result.findings]
    for path in result.cancelled:
        lines.append(f"{path}: analysis cancelled (timeout)")
    for path in result.skipped:
        lines.append(f"{path}: skipped (unreadable)")

    counts = result.counts()
    summary = f"{result.files} file(s) checked: {counts['warning']} warning(s), {counts['info']} info"
    if result.cancelled:
        summary += f", {len(result.cancelled)} cancelled"
    lines.append(summary)
    return "\n".join(lines)


def render_json(result: LintResult) -> str:
    return json.dumps(
        {
            "files": result.files,
            "findings": [finding.to_dict() for finding in result.findings],
            "counts": result.counts(),
            "cancelled": result.cancelled,
            "skipped": result.skipped,
        },
        indent=2,
    )
