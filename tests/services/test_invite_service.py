"""
Invite Lifecycle Manager tests.

Issue, validate, claim, revoke and list, with lazy expiry and the
non-enumerability of unknown / expired / revoked codes.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from muster_kernel.domain.access_policy import DenyReason
from muster_kernel.domain.engine_settings import MAX_INVITE_CODE_LENGTH, EngineSettings
from muster_kernel.domain.identity import Identity
from muster_kernel.domain.roles import Role
from muster_kernel.exceptions import (
    AccessDeniedError,
    InviteAlreadyUsedError,
    InviteCodeInvalidError,
    InviteValidationError,
    RoleAlreadyAssignedError,
)
from muster_kernel.models.audit_log import AuditAction, AuditLog
from muster_kernel.models.invite_code import InviteCode
from muster_kernel.services.engine import RuleEngine
from muster_kernel.services.invite_service import InviteValidation


def _actions(session) -> list[str]:
    return list(session.execute(select(AuditLog.action_type).order_by(AuditLog.occurred_at)).scalars())


class TestIssue:
    def test_captain_issues_officer_code(self, rules, captain, clock):
        invite = rules.invites.issue(captain, Role.OFFICER, section="junior")

        assert len(invite.code) == 6
        assert invite.code.isalnum() and invite.code.upper() == invite.code
        assert invite.default_role == "officer"
        assert invite.section == "junior"
        assert invite.expires_at == clock.now() + timedelta(days=7)
        assert invite.generated_by == captain.identity_id

    def test_issue_is_audited(self, rules, session, captain):
        rules.invites.issue(captain, "officer")
        assert AuditAction.GENERATE_INVITE_CODE.value in _actions(session)

    def test_captain_cannot_issue_admin_code(self, rules, captain):
        with pytest.raises(AccessDeniedError) as exc_info:
            rules.invites.issue(captain, Role.ADMIN)
        assert exc_info.value.reason is DenyReason.TARGET_ROLE_MISMATCH

    def test_admin_issues_captain_code(self, rules, admin):
        assert rules.invites.issue(admin, Role.CAPTAIN).default_role == "captain"

    def test_officer_cannot_issue(self, rules, officer):
        with pytest.raises(AccessDeniedError) as exc_info:
            rules.invites.issue(officer, Role.OFFICER)
        assert exc_info.value.reason is DenyReason.INSUFFICIENT_ROLE

    def test_expiry_beyond_horizon_rejected(self, rules, admin, clock):
        with pytest.raises(InviteValidationError):
            rules.invites.issue(admin, Role.OFFICER, expires_at=clock.now() + timedelta(days=8))

    def test_expiry_in_past_rejected(self, rules, admin, clock):
        with pytest.raises(InviteValidationError):
            rules.invites.issue(admin, Role.OFFICER, expires_at=clock.now())

    def test_naive_expiry_rejected(self, rules, admin, clock):
        with pytest.raises(InviteValidationError):
            rules.invites.issue(admin, Role.OFFICER, expires_at=clock.now().replace(tzinfo=None))

    def test_custom_expiry_within_horizon(self, rules, admin, clock):
        expires = clock.now() + timedelta(hours=2)
        assert rules.invites.issue(admin, Role.OFFICER, expires_at=expires).expires_at == expires


class TestValidate:
    def test_valid_code_discloses_role_and_section(self, rules, captain):
        invite = rules.invites.issue(captain, Role.OFFICER, section="company")

        result = rules.invites.validate(invite.code)

        assert result.valid
        assert result.default_role is Role.OFFICER
        assert result.section == "company"

    def test_lowercase_and_whitespace_accepted(self, rules, captain):
        invite = rules.invites.issue(captain, Role.OFFICER)
        assert rules.invites.validate(f"  {invite.code.lower()} ").valid

    def test_unknown_expired_and_revoked_are_indistinguishable(self, rules, captain, clock):
        expired = rules.invites.issue(captain, Role.OFFICER, expires_at=clock.now() + timedelta(hours=1))
        revoked = rules.invites.issue(captain, Role.OFFICER)
        rules.invites.revoke(captain, revoked.code)
        clock.advance(hours=2)

        results = [
            rules.invites.validate("NOPE00"),
            rules.invites.validate(expired.code),
            rules.invites.validate(revoked.code),
        ]

        assert results == [InviteValidation(valid=False)] * 3

    def test_expired_code_is_lazily_revoked(self, rules, session, captain, clock):
        invite = rules.invites.issue(captain, Role.OFFICER, expires_at=clock.now() + timedelta(hours=1))
        clock.advance(hours=1)

        rules.invites.validate(invite.code)

        session.refresh(invite)
        assert invite.revoked

    @pytest.mark.parametrize("code", [None, 123456, "", "   "])
    def test_non_string_codes_invalid(self, rules, code):
        assert rules.invites.validate(code) == InviteValidation(valid=False)


class TestClaim:
    def test_claim_assigns_role(self, rules, captain, newcomer):
        invite = rules.invites.issue(captain, Role.OFFICER, section="junior")

        result = rules.invites.claim(invite.code, newcomer)

        assert result.assigned_role is Role.OFFICER
        assert result.section == "junior"
        assert rules.resolve_role(newcomer) is Role.OFFICER

    def test_claim_marks_code_used_and_audits(self, rules, session, captain, newcomer, clock):
        invite = rules.invites.issue(captain, Role.OFFICER)
        rules.invites.claim(invite.code, newcomer)

        session.refresh(invite)
        assert invite.used_by == newcomer.identity_id
        assert invite.used_at == clock.now()
        entry = session.execute(
            select(AuditLog).where(AuditLog.action_type == AuditAction.USE_INVITE_CODE.value)
        ).scalar_one()
        assert entry.actor_email == newcomer.email

    def test_second_claim_conflicts(self, rules, captain, newcomer):
        invite = rules.invites.issue(captain, Role.OFFICER)
        rules.invites.claim(invite.code, newcomer)

        with pytest.raises(InviteAlreadyUsedError):
            rules.invites.claim(invite.code, Identity("idp|late", "late@example.org"))

    def test_used_code_no_longer_validates(self, rules, captain, newcomer):
        invite = rules.invites.issue(captain, Role.OFFICER)
        rules.invites.claim(invite.code, newcomer)
        assert rules.invites.validate(invite.code) == InviteValidation(valid=False)

    def test_expired_code_cannot_be_claimed(self, rules, captain, newcomer, clock):
        invite = rules.invites.issue(captain, Role.OFFICER, expires_at=clock.now() + timedelta(minutes=5))
        clock.advance(seconds=300)

        with pytest.raises(InviteCodeInvalidError):
            rules.invites.claim(invite.code, newcomer)
        assert rules.resolve_role(newcomer) is None

    def test_revoked_code_cannot_be_claimed(self, rules, captain, newcomer):
        invite = rules.invites.issue(captain, Role.OFFICER)
        rules.invites.revoke(captain, invite.code)
        with pytest.raises(InviteCodeInvalidError):
            rules.invites.claim(invite.code, newcomer)

    def test_unknown_code(self, rules, newcomer):
        with pytest.raises(InviteCodeInvalidError):
            rules.invites.claim("ZZZZZZ", newcomer)

    def test_identity_with_role_cannot_claim(self, rules, captain, officer):
        invite = rules.invites.issue(captain, Role.OFFICER)
        with pytest.raises(RoleAlreadyAssignedError):
            rules.invites.claim(invite.code, officer.identity)


class TestRevokeAndList:
    def test_revoke_audited(self, rules, session, admin):
        invite = rules.invites.issue(admin, Role.CAPTAIN)
        rules.invites.revoke(admin, invite.code)
        assert invite.revoked
        assert AuditAction.REVOKE_INVITE_CODE.value in _actions(session)

    def test_revoke_twice_is_noop(self, rules, session, admin):
        invite = rules.invites.issue(admin, Role.OFFICER)
        rules.invites.revoke(admin, invite.code)
        rules.invites.revoke(admin, invite.code)
        assert _actions(session).count(AuditAction.REVOKE_INVITE_CODE.value) == 1

    def test_used_code_cannot_be_revoked(self, rules, admin, newcomer):
        invite = rules.invites.issue(admin, Role.OFFICER)
        rules.invites.claim(invite.code, newcomer)
        with pytest.raises(InviteAlreadyUsedError):
            rules.invites.revoke(admin, invite.code)

    def test_captain_cannot_revoke_captain_code(self, rules, admin, captain):
        invite = rules.invites.issue(admin, Role.CAPTAIN)
        with pytest.raises(AccessDeniedError) as exc_info:
            rules.invites.revoke(captain, invite.code)
        assert exc_info.value.reason is DenyReason.TARGET_ROLE_MISMATCH

    def test_revoke_unknown_code(self, rules, admin):
        with pytest.raises(InviteCodeInvalidError):
            rules.invites.revoke(admin, "NOPE00")

    def test_list_filters_by_role(self, rules, admin, captain, clock):
        officer_code = rules.invites.issue(admin, Role.OFFICER)
        clock.advance()
        captain_code = rules.invites.issue(admin, Role.CAPTAIN)

        admin_view = [invite.code for invite in rules.invites.list_invites(admin)]
        captain_view = [invite.code for invite in rules.invites.list_invites(captain)]

        assert admin_view == [captain_code.code, officer_code.code]
        assert captain_view == [officer_code.code]

    def test_officer_cannot_list(self, rules, officer):
        with pytest.raises(AccessDeniedError):
            rules.invites.list_invites(officer)

    def test_listing_expires_stale_codes(self, rules, admin, clock):
        invite = rules.invites.issue(admin, Role.OFFICER, expires_at=clock.now() + timedelta(hours=1))
        clock.advance(days=1)
        listed = rules.invites.list_invites(admin)
        assert listed[0].id == invite.id and listed[0].revoked


class TestCodeGeneration:
    def test_collision_retries(self, rules, admin, monkeypatch):
        first = rules.invites.issue(admin, Role.OFFICER)
        draws = iter(first.code + "BBBBBB")
        monkeypatch.setattr(
            "muster_kernel.services.invite_service.secrets.choice",
            lambda alphabet: next(draws),
        )

        second = rules.invites.issue(admin, Role.OFFICER)

        assert second.code == "BBBBBB"

    def test_codes_are_unique_rows(self, rules, session, admin):
        for _ in range(20):
            rules.invites.issue(admin, Role.OFFICER)
        codes = session.execute(select(InviteCode.code)).scalars().all()
        assert len(set(codes)) == 20

    def test_longest_configured_code_fits_its_column(self, session, clock, admin):
        settings = EngineSettings(invite_code_length=MAX_INVITE_CODE_LENGTH, invite_code_alphabet="XY7")
        rules = RuleEngine(session, clock, settings)

        invite = rules.invites.issue(admin, Role.OFFICER)

        assert len(invite.code) == MAX_INVITE_CODE_LENGTH
        assert InviteCode.__table__.c.code.type.length == MAX_INVITE_CODE_LENGTH
        assert rules.invites.validate(invite.code.lower()).valid

    @pytest.mark.parametrize(
        "overrides",
        [
            {"invite_code_length": MAX_INVITE_CODE_LENGTH + 1},
            {"invite_code_length": 5},
            {"invite_code_alphabet": "abcdefghjk"},
            {"invite_code_alphabet": "ABC-123"},
            {"invite_code_alphabet": ""},
        ],
    )
    def test_unfindable_or_oversized_codes_rejected(self, overrides):
        with pytest.raises(ValueError):
            EngineSettings(**overrides)
