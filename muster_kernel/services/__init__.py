"""Services for the muster kernel (imperative shell)."""

from muster_kernel.services.audit_recorder import AuditEntryView, AuditRecorder
from muster_kernel.services.engine import RuleEngine
from muster_kernel.services.invite_service import (
    ClaimResult,
    InviteService,
    InviteValidation,
)
from muster_kernel.services.member_service import MemberService
from muster_kernel.services.revert_service import RevertService
from muster_kernel.services.role_assignment_service import RoleAssignmentService
from muster_kernel.services.role_resolver import RoleResolver
from muster_kernel.services.settings_service import MeetingSettings, SettingsService

__all__ = [
    "AuditEntryView",
    "AuditRecorder",
    "ClaimResult",
    "InviteService",
    "InviteValidation",
    "MeetingSettings",
    "MemberService",
    "RevertService",
    "RoleAssignmentService",
    "RoleResolver",
    "RuleEngine",
    "SettingsService",
]
