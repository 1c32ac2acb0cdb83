"""Configuration: CHATMSG_LINT_CONFIG first, then .chatmsg-lint/config.json."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

import structlog

from chatmsg_lint.model import AnalysisPolicy, MessageCatalog, TypeReference

logger = structlog.get_logger(__name__)

CONFIG_ENV_VAR = "CHATMSG_LINT_CONFIG"
CONFIG_DIR = ".chatmsg-lint"
CONFIG_FILE = "config.json"

_CATALOG_LISTS = ("privileged", "user", "assistant", "other", "factories", "containers")
_CATALOG_STRINGS = ("content_keyword", "factory_keyword")


class ConfigError(ValueError):
    """The configuration file is unreadable or has invalid values."""


@dataclass(frozen=True)
class LintConfig:
    catalog: MessageCatalog = field(default_factory=MessageCatalog)
    policy: AnalysisPolicy = field(default_factory=AnalysisPolicy)
    disabled_rules: frozenset[str] = frozenset()

    def with_overrides(
        self,
        *,
        ignore: tuple[str, ...] = (),
        flag_member_reads: bool | None = None,
    ) -> LintConfig:
        """Apply command-line overrides on top of file values."""
        policy = self.policy
        if flag_member_reads is not None:
            policy = replace(policy, flag_member_reads=flag_member_reads)
        disabled = self.disabled_rules | {rule_id.upper() for rule_id in ignore}
        return replace(self, policy=policy, disabled_rules=frozenset(disabled))


def _config_path(cwd: str | None) -> Path | None:
    """Resolve the config file: env var first, then the project dot-directory."""
    from_env = os.environ.get(CONFIG_ENV_VAR, "")
    if from_env:
        path = Path(from_env)
        if not path.is_file():
            raise ConfigError(f"{CONFIG_ENV_VAR} points to a missing file: {from_env}")
        return path
    path = Path(cwd or ".") / CONFIG_DIR / CONFIG_FILE
    return path if path.is_file() else None


def _type_list(section: str, value: object) -> tuple[TypeReference, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"catalog.{section} must be a list of dotted names")
    try:
        return tuple(TypeReference.parse(item) for item in value)
    except ValueError as exc:
        raise ConfigError(f"catalog.{section}: {exc}") from exc


def _parse_catalog(raw: object) -> MessageCatalog:
    if not isinstance(raw, dict):
        raise ConfigError("catalog must be an object")
    extend = raw.get("extend", True)
    if not isinstance(extend, bool):
        raise ConfigError("catalog.extend must be true or false")

    base = MessageCatalog()
    changes: dict[str, object] = {}
    for section in _CATALOG_LISTS:
        if section not in raw:
            continue
        refs = _type_list(section, raw[section])
        current: tuple[TypeReference, ...] = getattr(base, section)
        changes[section] = current + tuple(r for r in refs if r not in current) if extend else refs
    for key in _CATALOG_STRINGS:
        if key not in raw:
            continue
        if not isinstance(raw[key], str) or not raw[key].isidentifier():
            raise ConfigError(f"catalog.{key} must be an identifier")
        changes[key] = raw[key]
    return replace(base, **changes)


def parse_config(raw: object) -> LintConfig:
    """Validate a decoded config document."""
    if not isinstance(raw, dict):
        raise ConfigError("config must be a JSON object")

    disabled = raw.get("disabled_rules", [])
    if not isinstance(disabled, list) or not all(isinstance(item, str) for item in disabled):
        raise ConfigError("disabled_rules must be a list of rule ids")

    policy = AnalysisPolicy()
    if "flag_member_reads" in raw:
        if not isinstance(raw["flag_member_reads"], bool):
            raise ConfigError("flag_member_reads must be true or false")
        policy = replace(policy, flag_member_reads=raw["flag_member_reads"])
    if "max_trace_depth" in raw:
        depth = raw["max_trace_depth"]
        if isinstance(depth, bool) or not isinstance(depth, int) or depth < 1:
            raise ConfigError("max_trace_depth must be a positive integer")
        policy = replace(policy, max_trace_depth=depth)

    catalog = _parse_catalog(raw["catalog"]) if "catalog" in raw else MessageCatalog()
    return LintConfig(
        catalog=catalog,
        policy=policy,
        disabled_rules=frozenset(item.upper() for item in disabled),
    )


def load_config(cwd: str | None = None) -> LintConfig:
    """Load configuration, falling back to built-in defaults when none exists."""
    path = _config_path(cwd)
    if path is None:
        return LintConfig()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    config = parse_config(raw)
    logger.info("config_loaded", path=str(path), disabled_rules=sorted(config.disabled_rules))
    return config
