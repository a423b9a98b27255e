"""
Config → Kernel Bridges.

Converts an EngineConfig into the inputs the kernel accepts.  These live in
muster_config (the producer) because the kernel must NEVER import
muster_config.

Usage:
    from muster_config import get_active_config
    from muster_config.bridges import build_engine_settings, build_engine

    config = get_active_config()
    engine = build_engine(config)
    settings = build_engine_settings(config)
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import Engine

from muster_config.schema import EngineConfig
from muster_kernel.db.engine import init_engine_from_url
from muster_kernel.domain.engine_settings import EngineSettings


def build_engine_settings(config: EngineConfig) -> EngineSettings:
    """Kernel tunables from the invite, audit and section configuration."""
    return EngineSettings(
        invite_code_length=config.invites.code_length,
        invite_code_alphabet=config.invites.code_alphabet,
        invite_default_lifetime=timedelta(hours=config.invites.default_lifetime_hours),
        audit_list_limit=config.audit.list_limit,
        default_meeting_day=config.sections.default_meeting_day,
    )


def build_engine(config: EngineConfig) -> Engine:
    """A SQLAlchemy engine for the configured store."""
    return init_engine_from_url(config.database_url, echo=config.echo_sql)
