"""CLI entry point: chatmsg-lint check, rules, explain."""

import asyncio
import atexit
import datetime
import logging
import os
from pathlib import Path

import click
import structlog

from chatmsg_lint.config import CONFIG_DIR, ConfigError, load_config


def _silence_logs() -> None:
    """Suppress structlog output in CLI mode."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL),
    )


def _configure_file_logging() -> str:
    """Route structlog to a timestamped log file. Returns the log file path.

    Stdout stays clean for the report. All structlog calls go to
    .chatmsg-lint/logs/chatmsg-lint-{timestamp}.log instead.
    """
    log_dir = Path(CONFIG_DIR) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = log_dir / f"chatmsg-lint-{ts}.log"

    log_file = open(log_path, "w")
    atexit.register(log_file.close)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        logger_factory=structlog.WriteLoggerFactory(file=log_file),
    )

    return str(log_path)


@click.group()
@click.version_option(package_name="chatmsg-lint")
def main() -> None:
    """chatmsg-lint: prompt injection checks for LLM chat message construction."""
    _silence_logs()


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--format", "-f", "output_format", type=click.Choice(["text", "json"]), default="text", help="Report format.")
@click.option("--ignore", "-i", multiple=True, help="Rule id to skip (repeatable).")
@click.option("--no-member-reads", is_flag=True, help="Do not report bare attribute reads passed as system content.")
@click.option("--jobs", "-j", default=8, show_default=True, type=click.IntRange(min=1), help="Files analyzed in parallel.")
@click.option("--timeout", "-t", default=None, type=click.FloatRange(min=0, min_open=True), help="Per-file analysis timeout in seconds.")
@click.option("--log-file", is_flag=True, help="Write debug logs under .chatmsg-lint/logs/.")
def check(
    paths: tuple[str, ...],
    output_format: str,
    ignore: tuple[str, ...],
    no_member_reads: bool,
    jobs: int,
    timeout: float | None,
    log_file: bool,
) -> None:
    """Check Python files or directories. Exits 1 when a warning is reported."""
    from chatmsg_lint.engine import analyze_paths
    from chatmsg_lint.reporter import render_json, render_text
    from chatmsg_lint.rules import RULE_IDS

    log_path = _configure_file_logging() if log_file else None

    unknown = sorted({rule_id.upper() for rule_id in ignore} - set(RULE_IDS))
    if unknown:
        click.echo(f"Error: Unknown rule id(s): {', '.join(unknown)}", err=True)
        raise SystemExit(2)

    try:
        config = load_config(os.getcwd())
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(2)
    config = config.with_overrides(
        ignore=ignore,
        flag_member_reads=False if no_member_reads else None,
    )

    result = asyncio.run(analyze_paths(list(paths), config=config, jobs=jobs, timeout=timeout))

    click.echo(render_json(result) if output_format == "json" else render_text(result))
    if log_path:
        click.echo(f"\nLog: {log_path}", err=True)
    if result.counts()["warning"]:
        raise SystemExit(1)


@main.command()
def rules() -> None:
    """List the available rules."""
    from chatmsg_lint.rules import RULES

    for rule in RULES:
        descriptor = rule.DESCRIPTOR
        click.echo(f"{descriptor.id}  {descriptor.severity:<7}  {descriptor.title}")


@main.command()
@click.argument("rule_id")
def explain(rule_id: str) -> None:
    """Show the documentation for a rule."""
    from chatmsg_lint.rules import load_rule_doc

    try:
        click.echo(load_rule_doc(rule_id))
    except KeyError:
        click.echo(f"Error: Unknown rule id: {rule_id}", err=True)
        raise SystemExit(2)
