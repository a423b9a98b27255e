"""
InviteService -- the invite code lifecycle.

Responsibility:
    Issue, validate, claim, revoke and list single-use, time-bounded invite
    codes.  A claim is the only way a role assignment comes into existence.

Architecture position:
    Kernel > Services.  ``validate`` and ``claim`` are called for identities
    that have no role yet; everything else is gated by the access policy.

Invariants enforced:
    - Issue: captains may mint officer codes only, admins officer or captain
      codes.  Expiry is in the future and at most MAX_INVITE_LIFETIME away.
    - Non-enumerability: unknown, expired and revoked codes are
      indistinguishable to ``validate`` (valid=False, nothing else) and to
      ``claim`` (InviteCodeInvalidError).  Only "already used" is distinct.
    - Exactly once: a claim marks the code used with a single conditional
      UPDATE (used_by IS NULL AND NOT revoked AND not expired).  Of any
      number of concurrent claims, the store lets exactly one row update
      succeed; the rest see zero rows and get InviteAlreadyUsedError.
    - Lazy expiry: an expired, unused, unrevoked code is marked revoked by
      the first read or write that touches it.  There is no sweeper.

Failure modes:
    - AccessDeniedError: issue/revoke/list below captain, or outside the
      actor's grantable roles (TARGET_ROLE_MISMATCH).
    - InviteValidationError: expiry in the past or beyond the horizon.
    - InviteCodeInvalidError: claim/revoke of an unknown, expired or
      revoked code.
    - InviteAlreadyUsedError: code already claimed (race loser included).
    - RoleAlreadyAssignedError: claimant already holds a role.

Audit relevance:
    GENERATE_INVITE_CODE, REVOKE_INVITE_CODE and USE_INVITE_CODE entries.
    None of them is revertible.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from muster_kernel.domain.access_policy import (
    Entity,
    Operation,
    PolicyTarget,
    authorize,
    require,
)
from muster_kernel.domain.clock import Clock
from muster_kernel.domain.engine_settings import MAX_INVITE_LIFETIME, EngineSettings
from muster_kernel.domain.identity import Actor, Identity
from muster_kernel.domain.roles import Role, parse_role
from muster_kernel.domain.sections import Section, parse_section
from muster_kernel.exceptions import (
    ConflictError,
    InviteAlreadyUsedError,
    InviteCodeInvalidError,
    InviteValidationError,
    RoleAlreadyAssignedError,
)
from muster_kernel.logging_config import LogContext, get_logger
from muster_kernel.models.audit_log import AuditAction
from muster_kernel.models.invite_code import InviteCode
from muster_kernel.models.role_assignment import RoleAssignment
from muster_kernel.services.audit_recorder import AuditRecorder
from muster_kernel.services.base import BaseService, translates_store_errors

logger = get_logger("services.invites")

_MAX_GENERATION_ATTEMPTS = 10


@dataclass(frozen=True)
class InviteValidation:
    """
    What an unauthenticated caller may learn about a code.

    For unknown, expired and revoked codes every field but ``valid`` is None.
    """

    valid: bool
    section: str | None = None
    default_role: Role | None = None
    expires_at: datetime | None = None


_INVALID = InviteValidation(valid=False)


@dataclass(frozen=True)
class ClaimResult:
    assigned_role: Role
    section: str | None


def normalize_code(code) -> str | None:
    if not isinstance(code, str):
        return None
    normalized = code.strip().upper()
    return normalized or None


class InviteService(BaseService):
    def __init__(
        self,
        session,
        clock: Clock | None = None,
        auditor: AuditRecorder | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditRecorder(session, self.clock)
        self._settings = settings or EngineSettings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find(self, code) -> InviteCode | None:
        normalized = normalize_code(code)
        if normalized is None:
            return None
        return self.session.execute(
            select(InviteCode).where(InviteCode.code == normalized)
        ).scalar_one_or_none()

    def _apply_lazy_expiry(self, invite: InviteCode, now: datetime) -> None:
        if invite.is_expired(now) and not invite.revoked and not invite.is_used:
            invite.revoked = True
            self.session.flush()
            logger.info(
                "invite_expired",
                extra={"invite_id": str(invite.id), "expires_at": invite.expires_at},
            )

    def _generate_code(self) -> str:
        alphabet = self._settings.invite_code_alphabet
        length = self._settings.invite_code_length
        for _ in range(_MAX_GENERATION_ATTEMPTS):
            candidate = "".join(secrets.choice(alphabet) for _ in range(length))
            exists = self.session.execute(
                select(InviteCode.id).where(InviteCode.code == candidate)
            ).first()
            if exists is None:
                return candidate
            logger.warning("invite_code_collision")
        raise ConflictError("Could not generate a unique invite code")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    @translates_store_errors
    def issue(
        self,
        actor: Actor,
        target_role: Role | str,
        section: Section | str | None = None,
        expires_at: datetime | None = None,
    ) -> InviteCode:
        """
        Mint a code granting ``target_role``.

        ``expires_at`` defaults to now + the configured lifetime.
        """
        target_role = parse_role(target_role)
        section = parse_section(section) if section is not None else None
        require(
            actor.role,
            Entity.INVITE_CODE,
            Operation.ISSUE,
            PolicyTarget(new_role=target_role, section=section),
            actor_id=actor.identity_id,
        )

        now = self.clock.now()
        if expires_at is None:
            expires_at = now + self._settings.invite_default_lifetime
        elif expires_at.tzinfo is None:
            raise InviteValidationError("expires_at", "must be timezone-aware")
        if expires_at <= now:
            raise InviteValidationError("expires_at", "must be in the future")
        if expires_at > now + MAX_INVITE_LIFETIME:
            raise InviteValidationError(
                "expires_at",
                f"must be within {MAX_INVITE_LIFETIME.days} days of issue",
            )

        invite = InviteCode(
            code=self._generate_code(),
            generated_by=actor.identity_id,
            generated_at=now,
            section=section.value if section else None,
            default_role=target_role.value,
            expires_at=expires_at,
            revoked=False,
        )
        self.session.add(invite)
        self.session.flush()

        with LogContext.bind(entity_id=str(invite.id)):
            self._auditor.record(
                actor,
                AuditAction.GENERATE_INVITE_CODE,
                f"Generated {target_role.value} invite code {invite.code}",
                section=section,
            )
            logger.info(
                "invite_issued",
                extra={"default_role": target_role.value, "expires_at": expires_at},
            )
        return invite

    @translates_store_errors
    def validate(self, code) -> InviteValidation:
        """Callable without a role.  Discloses only validity, role and section."""
        invite = self._find(code)
        if invite is None:
            return _INVALID

        now = self.clock.now()
        self._apply_lazy_expiry(invite, now)
        if not invite.is_claimable(now):
            return _INVALID

        return InviteValidation(
            valid=True,
            section=invite.section,
            default_role=parse_role(invite.default_role),
            expires_at=invite.expires_at,
        )

    @translates_store_errors
    def claim(self, code, identity: Identity) -> ClaimResult:
        """
        Redeem ``code`` for ``identity``: assign the code's role and mark the
        code used, atomically within the caller's transaction.
        """
        existing = self.session.execute(
            select(RoleAssignment.id).where(
                RoleAssignment.identity_id == identity.identity_id
            )
        ).first()
        if existing is not None:
            raise RoleAlreadyAssignedError(identity.identity_id)

        invite = self._find(code)
        if invite is None:
            raise InviteCodeInvalidError()

        now = self.clock.now()
        self._apply_lazy_expiry(invite, now)

        result = self.session.execute(
            update(InviteCode)
            .where(
                InviteCode.id == invite.id,
                InviteCode.used_by.is_(None),
                InviteCode.revoked.is_(False),
                InviteCode.expires_at > now,
            )
            .values(used_by=identity.identity_id, used_at=now)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(invite)

        if result.rowcount != 1:
            if invite.is_used:
                logger.warning(
                    "invite_claim_lost",
                    extra={"invite_id": str(invite.id)},
                )
                raise InviteAlreadyUsedError()
            raise InviteCodeInvalidError()

        role = parse_role(invite.default_role)
        assignment = RoleAssignment(
            identity_id=identity.identity_id,
            email=identity.email,
            role=role.value,
            created_by_id=identity.identity_id,
        )
        self.session.add(assignment)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise RoleAlreadyAssignedError(identity.identity_id) from exc

        with LogContext.bind(actor_id=identity.identity_id, entity_id=str(invite.id)):
            self._auditor.record(
                Actor.of(identity, role),
                AuditAction.USE_INVITE_CODE,
                f"{identity.email} joined as {role.value} using invite code "
                f"{invite.code}",
                section=invite.section,
            )
            logger.info("invite_claimed", extra={"assigned_role": role.value})
        return ClaimResult(assigned_role=role, section=invite.section)

    @translates_store_errors
    def revoke(self, actor: Actor, code) -> InviteCode:
        """Revoke an unused code.  Revoking a revoked code is a no-op."""
        invite = self._find(code)
        if invite is None:
            require(
                actor.role,
                Entity.INVITE_CODE,
                Operation.REVOKE,
                actor_id=actor.identity_id,
            )
            raise InviteCodeInvalidError()

        require(
            actor.role,
            Entity.INVITE_CODE,
            Operation.REVOKE,
            PolicyTarget(target_role=parse_role(invite.default_role)),
            actor_id=actor.identity_id,
        )
        self._apply_lazy_expiry(invite, self.clock.now())
        if invite.is_used:
            raise InviteAlreadyUsedError()
        if invite.revoked:
            return invite

        invite.revoked = True
        self.session.flush()

        with LogContext.bind(entity_id=str(invite.id)):
            self._auditor.record(
                actor,
                AuditAction.REVOKE_INVITE_CODE,
                f"Revoked {invite.default_role} invite code {invite.code}",
                section=invite.section,
            )
            logger.info("invite_revoked")
        return invite

    @translates_store_errors
    def list_invites(self, actor: Actor) -> list[InviteCode]:
        """Codes the actor may see, newest first."""
        require(
            actor.role,
            Entity.INVITE_CODE,
            Operation.READ,
            actor_id=actor.identity_id,
        )
        now = self.clock.now()
        rows = self.session.execute(
            select(InviteCode).order_by(InviteCode.generated_at.desc())
        ).scalars().all()

        visible = []
        for invite in rows:
            decision = authorize(
                actor.role,
                Entity.INVITE_CODE,
                Operation.READ,
                PolicyTarget(target_role=parse_role(invite.default_role)),
                actor_id=actor.identity_id,
            )
            if decision.allowed:
                self._apply_lazy_expiry(invite, now)
                visible.append(invite)
        return visible
