"""
Typed Exception Hierarchy for the Muster Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (a web API, a CLI, a background sync) must react to
failures precisely. An outage must never look like an authorization failure,
and a validation message must name the member, the date and the rule so the
user can fix the input.

Every exception therefore has:
  1. A TYPED class (catch by type, not by message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. A KIND class attribute (one of five caller-facing failure kinds)
  4. Structured DATA attributes (not just a message string)

Example:
    try:
        invites.claim(code, identity)
    except InviteAlreadyUsedError as e:
        return api_response(409, code=e.code, detail=e.detail)
    except MusterKernelError as e:
        return api_response(STATUS_BY_KIND[e.kind], code=e.code, detail=e.detail)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MusterKernelError (base)
    |
    +-- AccessDeniedError                 kind=DENIED
    |
    +-- ValidationFailedError             kind=VALIDATION_FAILED
    |   +-- MarkValidationError
    |   +-- InvalidRoleError
    |   +-- InvalidSectionError
    |   +-- MemberValidationError
    |   +-- SettingsValidationError
    |   +-- InviteValidationError
    |   +-- ActionNotRevertibleError
    |
    +-- NotFoundError                     kind=NOT_FOUND
    |   +-- MemberNotFoundError
    |   +-- InviteCodeInvalidError
    |   +-- AuditLogNotFoundError
    |   +-- RoleAssignmentNotFoundError
    |
    +-- ConflictError                     kind=CONFLICT
    |   +-- InviteAlreadyUsedError
    |   +-- AlreadyRevertedError
    |   +-- RoleAlreadyAssignedError
    |   +-- ImmutabilityViolationError
    |
    +-- InfrastructureError               kind=INFRASTRUCTURE
        +-- StoreUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind            | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Denied          | ACCESS_DENIED               | Policy refused the operation
----------------|-----------------------------|-----------------------------------------
Validation      | MARK_VALIDATION_FAILED      | A mark breaks a date/score rule
                | INVALID_ROLE                | Role name not officer/captain/admin
                | INVALID_SECTION             | Section name not company/junior
                | MEMBER_VALIDATION_FAILED    | Name, squad or year is invalid
                | SETTINGS_VALIDATION_FAILED  | Meeting day outside 0-6
                | INVITE_VALIDATION_FAILED    | Expiry beyond horizon, bad role
                | ACTION_NOT_REVERTIBLE       | Audit action has no inverse
----------------|-----------------------------|-----------------------------------------
Not found       | MEMBER_NOT_FOUND            | Member id doesn't exist
                | INVITE_CODE_INVALID         | Unknown, expired or revoked code
                | AUDIT_LOG_NOT_FOUND         | Audit entry id doesn't exist
                | ROLE_ASSIGNMENT_NOT_FOUND   | Identity has no role row
----------------|-----------------------------|-----------------------------------------
Conflict        | INVITE_ALREADY_USED         | Code claimed (possibly by a racer)
                | ALREADY_REVERTED            | Audit entry was already reverted
                | ROLE_ALREADY_ASSIGNED       | Identity already holds a role
                | IMMUTABILITY_VIOLATION      | Write to an immutable row
----------------|-----------------------------|-----------------------------------------
Infrastructure  | STORE_UNAVAILABLE           | Store timeout / connection failure

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Expired, revoked and unknown invite codes share one exception
   (InviteCodeInvalidError) so a caller cannot tell them apart and codes
   cannot be enumerated. Only a lost claim race is reported distinctly.

2. AccessDeniedError carries a DenyReason rather than one subclass per rule;
   the reason set is small, fixed and already an enum in the policy module.

===============================================================================
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Caller-facing failure kinds."""

    DENIED = "denied"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INFRASTRUCTURE = "infrastructure"


class MusterKernelError(Exception):
    """
    Base exception for all muster kernel errors.

    All subclasses must have `code` and `kind` class attributes.
    """

    code: str = "MUSTER_KERNEL_ERROR"
    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    @property
    def detail(self) -> str:
        """Human-readable description of the failure."""
        return str(self)


# Denied


class AccessDeniedError(MusterKernelError):
    """The access policy refused the operation."""

    code: str = "ACCESS_DENIED"
    kind: ErrorKind = ErrorKind.DENIED

    def __init__(self, reason, entity, operation, message: str = ""):
        self.reason = reason
        self.entity = entity
        self.operation = operation
        reason_value = getattr(reason, "value", reason)
        entity_value = getattr(entity, "value", entity)
        operation_value = getattr(operation, "value", operation)
        super().__init__(
            message
            or f"Denied ({reason_value}): {operation_value} on {entity_value}"
        )


# Validation


class ValidationFailedError(MusterKernelError):
    """Base exception for rejected payloads."""

    code: str = "VALIDATION_FAILED"
    kind: ErrorKind = ErrorKind.VALIDATION_FAILED


class MarkValidationError(ValidationFailedError):
    """
    A mark in a batch broke a rule.

    The whole batch is rejected; nothing is partially accepted.
    """

    code: str = "MARK_VALIDATION_FAILED"

    def __init__(
        self,
        member_name: str,
        mark_date: str | None,
        rule: str,
        message: str,
        field: str | None = None,
    ):
        self.member_name = member_name
        self.mark_date = mark_date
        self.rule = rule
        self.field = field
        super().__init__(message)


class InvalidRoleError(ValidationFailedError):
    """A role name is not one of officer / captain / admin."""

    code: str = "INVALID_ROLE"

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown role: {value!r}")


class InvalidSectionError(ValidationFailedError):
    """A section name is not company or junior."""

    code: str = "INVALID_SECTION"

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown section: {value!r}")


class MemberValidationError(ValidationFailedError):
    """A member attribute is invalid for its section."""

    code: str = "MEMBER_VALIDATION_FAILED"

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid member {field} {value!r}: {reason}")


class SettingsValidationError(ValidationFailedError):
    """Section settings payload is invalid."""

    code: str = "SETTINGS_VALIDATION_FAILED"

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid settings {field} {value!r}: {reason}")


class InviteValidationError(ValidationFailedError):
    """Invite issuance payload is invalid."""

    code: str = "INVITE_VALIDATION_FAILED"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid invite {field}: {reason}")


class ActionNotRevertibleError(ValidationFailedError):
    """The audit entry's action type has no inverse."""

    code: str = "ACTION_NOT_REVERTIBLE"

    def __init__(self, log_id: str, action_type: str):
        self.log_id = log_id
        self.action_type = action_type
        super().__init__(f"Audit entry {log_id} ({action_type}) cannot be reverted")


# Not found


class NotFoundError(MusterKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class MemberNotFoundError(NotFoundError):
    """Member with given id was not found."""

    code: str = "MEMBER_NOT_FOUND"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member not found: {member_id}")


class InviteCodeInvalidError(NotFoundError):
    """
    Invite code is unknown, expired or revoked.

    The three cases are indistinguishable on purpose.
    """

    code: str = "INVITE_CODE_INVALID"

    def __init__(self):
        super().__init__("Invite code is not valid")


class AuditLogNotFoundError(NotFoundError):
    """Audit entry with given id was not found."""

    code: str = "AUDIT_LOG_NOT_FOUND"

    def __init__(self, log_id: str):
        self.log_id = log_id
        super().__init__(f"Audit log entry not found: {log_id}")


class RoleAssignmentNotFoundError(NotFoundError):
    """Identity has no role assignment."""

    code: str = "ROLE_ASSIGNMENT_NOT_FOUND"

    def __init__(self, identity_id: str):
        self.identity_id = identity_id
        super().__init__(f"No role assignment for identity: {identity_id}")


# Conflict


class ConflictError(MusterKernelError):
    """Base exception for state conflicts."""

    code: str = "CONFLICT"
    kind: ErrorKind = ErrorKind.CONFLICT


class InviteAlreadyUsedError(ConflictError):
    """Invite code was already claimed."""

    code: str = "INVITE_ALREADY_USED"

    def __init__(self):
        super().__init__("Invite code has already been used")


class AlreadyRevertedError(ConflictError):
    """Audit entry was already reverted."""

    code: str = "ALREADY_REVERTED"

    def __init__(self, log_id: str, reverted_by_log_id: str | None = None):
        self.log_id = log_id
        self.reverted_by_log_id = reverted_by_log_id
        super().__init__(f"Audit log entry {log_id} has already been reverted")


class RoleAlreadyAssignedError(ConflictError):
    """Identity already holds a role."""

    code: str = "ROLE_ALREADY_ASSIGNED"

    def __init__(self, identity_id: str):
        self.identity_id = identity_id
        super().__init__(f"Identity {identity_id} already has a role")


class ImmutabilityViolationError(ConflictError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Infrastructure


class InfrastructureError(MusterKernelError):
    """Base exception for failures outside business rules."""

    code: str = "INFRASTRUCTURE_ERROR"
    kind: ErrorKind = ErrorKind.INFRASTRUCTURE


class StoreUnavailableError(InfrastructureError):
    """The relational store failed (timeout, lost connection)."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, cause: str):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Store unavailable during {operation}: {cause}")
