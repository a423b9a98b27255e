"""
EngineConfig schema.

Frozen dataclasses produced by the loader.  Defaults here are the built-in
configuration; a YAML file and environment variables override them.
"""

from __future__ import annotations

import string
from dataclasses import dataclass, field

DEFAULT_DATABASE_URL = "postgresql+psycopg://muster@localhost/muster"


@dataclass(frozen=True)
class InviteConfig:
    """Invite code generation and default lifetime."""

    code_length: int = 6
    code_alphabet: str = string.ascii_uppercase + string.digits
    default_lifetime_hours: int = 168


@dataclass(frozen=True)
class AuditConfig:
    list_limit: int = 50
    # Informational: the purge job runs outside this application.
    retention_days: int = 14


@dataclass(frozen=True)
class SectionsConfig:
    default_meeting_day: int = 5  # Friday


@dataclass(frozen=True)
class EngineConfig:
    """The complete runtime configuration."""

    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    log_level: str = "INFO"
    invites: InviteConfig = field(default_factory=InviteConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    sections: SectionsConfig = field(default_factory=SectionsConfig)
    source: str | None = None
