"""
Configuration Loader (``muster_config.loader``).

Responsibility
--------------
Reads the optional YAML file, layers environment overrides on top and
parses the result into the frozen ``muster_config.schema`` dataclasses.
Callers use ``muster_config.get_active_config()``; nothing else should call
this module directly.

Precedence, lowest to highest
-----------------------------
1. Defaults declared in ``schema.py``.
2. The YAML file (explicit path, else ``MUSTER_CONFIG``).
3. ``MUSTER_DATABASE_URL`` and ``MUSTER_LOG_LEVEL``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or out-of-range values  -> ``ValueError`` naming the key.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import yaml

from muster_config.schema import AuditConfig, EngineConfig, InviteConfig, SectionsConfig
from muster_kernel.domain.engine_settings import (
    MAX_INVITE_CODE_LENGTH,
    MAX_INVITE_LIFETIME,
    MIN_INVITE_CODE_LENGTH,
    invite_alphabet_problem,
)

CONFIG_PATH_ENV = "MUSTER_CONFIG"
DATABASE_URL_ENV = "MUSTER_DATABASE_URL"
LOG_LEVEL_ENV = "MUSTER_LOG_LEVEL"

_MAX_LIFETIME_HOURS = int(MAX_INVITE_LIFETIME.total_seconds() // 3600)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its top-level mapping.

    An empty file yields an empty dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _section(cls, data: Any, name: str):
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ValueError(f"'{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown key(s) in '{name}': {', '.join(unknown)}")
    return cls(**data)


def parse_engine_config(data: Mapping[str, Any], source: str | None = None) -> EngineConfig:
    """Build an EngineConfig from a parsed YAML mapping."""
    top_level = {"database_url", "echo_sql", "log_level", "invites", "audit", "sections"}
    unknown = sorted(set(data) - top_level)
    if unknown:
        raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")

    defaults = EngineConfig()
    return EngineConfig(
        database_url=data.get("database_url", defaults.database_url),
        echo_sql=data.get("echo_sql", defaults.echo_sql),
        log_level=data.get("log_level", defaults.log_level),
        invites=_section(InviteConfig, data.get("invites"), "invites"),
        audit=_section(AuditConfig, data.get("audit"), "audit"),
        sections=_section(SectionsConfig, data.get("sections"), "sections"),
        source=source,
    )


def apply_env_overrides(
    config: EngineConfig,
    environ: Mapping[str, str] | None = None,
) -> EngineConfig:
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    if environ.get(DATABASE_URL_ENV):
        overrides["database_url"] = environ[DATABASE_URL_ENV]
    if environ.get(LOG_LEVEL_ENV):
        overrides["log_level"] = environ[LOG_LEVEL_ENV]
    return replace(config, **overrides) if overrides else config


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: EngineConfig) -> EngineConfig:
    """
    Check every value the kernel will rely on.

    Raises:
        ValueError: describing the first offending key.
    """
    if not isinstance(config.database_url, str) or not config.database_url:
        raise ValueError("database_url must be a non-empty string")
    if not isinstance(config.echo_sql, bool):
        raise ValueError("echo_sql must be true or false")
    if not isinstance(config.log_level, str) or config.log_level.upper() not in _LOG_LEVELS:
        raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")

    invites = config.invites
    if (
        not _is_int(invites.code_length)
        or not MIN_INVITE_CODE_LENGTH <= invites.code_length <= MAX_INVITE_CODE_LENGTH
    ):
        raise ValueError(
            "invites.code_length must be an integer between "
            f"{MIN_INVITE_CODE_LENGTH} and {MAX_INVITE_CODE_LENGTH}"
        )
    alphabet_problem = invite_alphabet_problem(invites.code_alphabet)
    if alphabet_problem:
        raise ValueError(f"invites.code_alphabet {alphabet_problem}")
    if (
        not _is_int(invites.default_lifetime_hours)
        or not 0 < invites.default_lifetime_hours <= _MAX_LIFETIME_HOURS
    ):
        raise ValueError(
            f"invites.default_lifetime_hours must be between 1 and {_MAX_LIFETIME_HOURS}"
        )

    if not _is_int(config.audit.list_limit) or config.audit.list_limit < 1:
        raise ValueError("audit.list_limit must be an integer >= 1")
    if not _is_int(config.audit.retention_days) or config.audit.retention_days < 1:
        raise ValueError("audit.retention_days must be an integer >= 1")

    day = config.sections.default_meeting_day
    if not _is_int(day) or not 0 <= day <= 6:
        raise ValueError("sections.default_meeting_day must be an integer from 0 to 6")

    return config


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineConfig:
    """Defaults, then the YAML file (if any), then environment overrides."""
    environ = os.environ if environ is None else environ
    if path is None and environ.get(CONFIG_PATH_ENV):
        path = environ[CONFIG_PATH_ENV]

    if path is None:
        config = EngineConfig()
    else:
        path = Path(path)
        config = parse_engine_config(load_yaml_file(path), source=str(path))

    config = apply_env_overrides(config, environ)
    if isinstance(config.log_level, str):
        config = replace(config, log_level=config.log_level.upper())
    return validate_config(config)
