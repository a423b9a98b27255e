"""Domain models for the muster kernel."""

from muster_kernel.models.audit_log import AuditAction, AuditLog, REVERTIBLE_ACTIONS
from muster_kernel.models.invite_code import InviteCode
from muster_kernel.models.member import Member
from muster_kernel.models.role_assignment import RoleAssignment
from muster_kernel.models.section_settings import SectionSettings

__all__ = [
    "AuditAction",
    "AuditLog",
    "REVERTIBLE_ACTIONS",
    "InviteCode",
    "Member",
    "RoleAssignment",
    "SectionSettings",
]
