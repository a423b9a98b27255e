"""Pure domain core: roles, sections, marks, members and access policy."""

from muster_kernel.domain.access_policy import (
    DenyReason,
    Entity,
    Operation,
    PolicyDecision,
    PolicyTarget,
    authorize,
    require,
)
from muster_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from muster_kernel.domain.engine_settings import MAX_INVITE_LIFETIME, EngineSettings
from muster_kernel.domain.identity import Actor, Identity
from muster_kernel.domain.marks import (
    CompanyMark,
    JuniorMark,
    ValidatedMarks,
    merge_marks,
    validate_marks,
)
from muster_kernel.domain.members import MemberDraft, validate_member
from muster_kernel.domain.roles import Role, at_least, hierarchy_rank, parse_role
from muster_kernel.domain.sections import Section, parse_section

__all__ = [
    "Actor",
    "Clock",
    "CompanyMark",
    "DenyReason",
    "DeterministicClock",
    "EngineSettings",
    "Entity",
    "Identity",
    "JuniorMark",
    "MAX_INVITE_LIFETIME",
    "MemberDraft",
    "Operation",
    "PolicyDecision",
    "PolicyTarget",
    "Role",
    "Section",
    "SystemClock",
    "ValidatedMarks",
    "at_least",
    "authorize",
    "hierarchy_rank",
    "merge_marks",
    "parse_role",
    "parse_section",
    "require",
    "validate_marks",
    "validate_member",
]
