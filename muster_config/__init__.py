"""
muster_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``muster_kernel``.  The kernel MUST NEVER
    import from ``muster_config``; ``bridges`` translates an EngineConfig
    into kernel inputs (``EngineSettings``, a SQLAlchemy engine).

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Every returned config has passed ``loader.validate_config``.
    - The 7-day invite horizon is a kernel constant; configuration may only
      shorten the default lifetime, never extend it.

Failure modes:
    - ``FileNotFoundError`` -- explicit or ``MUSTER_CONFIG`` path missing.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``MUSTER_CONFIG_TRACE`` log entry naming the source file and the
    effective invite and audit limits.  The database URL is not logged.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from muster_config.loader import load_config
from muster_config.schema import AuditConfig, EngineConfig, InviteConfig, SectionsConfig

_logger = logging.getLogger("muster_kernel.config")


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to ``$MUSTER_CONFIG``; with
            neither, the built-in defaults apply.
        environ: Environment mapping for overrides.  Defaults to
            ``os.environ``.

    Returns:
        A frozen, validated ``EngineConfig``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    config = load_config(path, environ)

    _logger.info(
        "MUSTER_CONFIG_TRACE",
        extra={
            "trace_type": "MUSTER_CONFIG_TRACE",
            "config_source": config.source or "defaults",
            "log_level": config.log_level,
            "invite_code_length": config.invites.code_length,
            "invite_default_lifetime_hours": config.invites.default_lifetime_hours,
            "audit_list_limit": config.audit.list_limit,
            "default_meeting_day": config.sections.default_meeting_day,
        },
    )
    return config


__all__ = [
    "AuditConfig",
    "EngineConfig",
    "InviteConfig",
    "SectionsConfig",
    "get_active_config",
]
