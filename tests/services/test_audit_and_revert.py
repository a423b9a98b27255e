"""
Audit Recorder and revert tests.

Covers the read path (redaction, limits), revert of every supported
action, the fresh admin check at revert time, and the ORM listeners that
keep audit entries and invite transitions one-way.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from muster_kernel.domain.access_policy import DenyReason
from muster_kernel.domain.engine_settings import EngineSettings
from muster_kernel.domain.roles import Role
from muster_kernel.exceptions import (
    AccessDeniedError,
    ActionNotRevertibleError,
    AlreadyRevertedError,
    AuditLogNotFoundError,
    ImmutabilityViolationError,
    MemberNotFoundError,
)
from muster_kernel.models.audit_log import AuditAction, AuditLog
from muster_kernel.models.member import Member
from muster_kernel.models.role_assignment import RoleAssignment
from muster_kernel.services.engine import RuleEngine


def _entry(session, action: AuditAction) -> AuditLog:
    return session.execute(
        select(AuditLog)
        .where(AuditLog.action_type == action.value)
        .order_by(AuditLog.occurred_at.desc())
    ).scalars().first()


@pytest.fixture
def member(rules, session, officer, company_member_payload, clock):
    created = rules.members.create_member(officer, "company", company_member_payload)
    session.commit()
    clock.advance()
    return created


class TestRecording:
    def test_actor_email_comes_from_identity(self, rules, session, captain):
        entry = rules.audit.record(captain, AuditAction.UPDATE_SETTINGS, "changed", {"x": 1})
        assert entry.actor_email == "captain@example.org"
        assert entry.actor_id == captain.identity_id

    def test_roleless_actor_cannot_record(self, rules, roleless):
        with pytest.raises(AccessDeniedError) as exc_info:
            rules.audit.record(roleless, AuditAction.CREATE_MEMBER, "nope")
        assert exc_info.value.reason is DenyReason.NO_ROLE

    @pytest.mark.parametrize("fixture_name", ["officer", "captain"])
    def test_revert_entries_are_admin_only(self, request, rules, fixture_name):
        actor = request.getfixturevalue(fixture_name)
        with pytest.raises(AccessDeniedError):
            rules.audit.record(actor, AuditAction.REVERT_ACTION, "Reverted: something")

    def test_revert_entry_checks_stored_role(self, rules, session, admin):
        session.execute(
            RoleAssignment.__table__.update()
            .where(RoleAssignment.identity_id == admin.identity_id)
            .values(role="captain")
        )
        with pytest.raises(AccessDeniedError):
            rules.audit.record(admin, AuditAction.REVERT_ACTION, "Reverted: something")

    def test_revert_data_never_logged(self, rules, captain, captured_logs):
        rules.audit.record(captain, AuditAction.UPDATE_SETTINGS, "changed", {"secret": "payload"})
        assert all("payload" not in str(record) for record in captured_logs())


class TestReading:
    def test_officer_cannot_read(self, rules, officer, member):
        with pytest.raises(AccessDeniedError):
            rules.audit.list_entries(officer)

    def test_captain_sees_entries_without_revert_data(self, rules, captain, member):
        (view,) = rules.audit.list_entries(captain)
        assert view.action_type == "CREATE_MEMBER"
        assert view.has_revert_data
        assert view.revert_data is None

    def test_admin_sees_revert_data(self, rules, admin, member):
        (view,) = rules.audit.list_entries(admin)
        assert view.revert_data == {"member_id": str(member.id)}

    def test_newest_first_and_section_filter(self, rules, admin, officer, member, junior_member_payload):
        rules.members.create_member(officer, "junior", junior_member_payload)

        views = rules.audit.list_entries(admin)
        assert [v.section for v in views] == ["junior", "company"]
        assert [v.section for v in rules.audit.list_entries(admin, section="company")] == ["company"]

    def test_limit_capped_by_configuration(self, session, clock, admin):
        rules = RuleEngine(session, clock, EngineSettings(audit_list_limit=3))
        for day in range(5):
            rules.settings.update_settings(admin, "company", day)
            clock.advance()

        assert len(rules.audit.list_entries(admin)) == 3
        assert len(rules.audit.list_entries(admin, limit=100)) == 3
        assert len(rules.audit.list_entries(admin, limit=0)) == 1

    def test_revert_data_read_is_admin_only(self, rules, captain, admin, member):
        entry_id = rules.audit.list_entries(admin)[0].id
        assert rules.audit.get_revert_data(admin, entry_id) == {"member_id": str(member.id)}
        with pytest.raises(AccessDeniedError) as exc_info:
            rules.audit.get_revert_data(captain, entry_id)
        assert exc_info.value.reason is DenyReason.INSUFFICIENT_ROLE

    def test_unknown_entry(self, rules, admin):
        with pytest.raises(AuditLogNotFoundError):
            rules.audit.get_revert_data(admin, uuid4())


class TestRevert:
    def test_revert_create_deletes_member(self, rules, session, admin, member):
        original = _entry(session, AuditAction.CREATE_MEMBER)

        revert_entry = rules.reverts.revert(admin, original.id)

        assert session.get(Member, member.id) is None
        assert revert_entry.action_type == AuditAction.REVERT_ACTION.value
        assert revert_entry.reverts_log_id == original.id
        assert revert_entry.description == f"Reverted: {original.description}"
        assert revert_entry.revert_data is None
        assert original.reverted_by_log_id == revert_entry.id

    def test_revert_update_restores_snapshot(self, rules, session, admin, captain, member, clock):
        rules.members.update_member(captain, member.id, {"squad": 3, "name": "Alex C."})
        session.commit()
        clock.advance()

        rules.reverts.revert(admin, _entry(session, AuditAction.UPDATE_MEMBER).id)

        restored = session.get(Member, member.id)
        assert restored.squad == 2
        assert restored.name == "Alex Carter"

    def test_revert_weekly_marks_restores_every_member(self, rules, session, admin, officer, clock):
        squad = [
            rules.members.create_member(officer, "junior", {"name": name, "squad": 2, "year": "P7"})
            for name in ("Ava", "Ben")
        ]
        clock.advance()
        rules.members.record_weekly_marks(
            officer,
            "junior",
            "2025-01-17",
            {m.id: {"score": 10, "uniform_score": 6, "behaviour_score": 4} for m in squad},
        )
        session.commit()

        rules.reverts.revert(admin, _entry(session, AuditAction.UPDATE_MEMBER).id)

        assert all(session.get(Member, m.id).marks == [] for m in squad)

    def test_revert_delete_recreates_member(self, rules, session, admin, officer, member):
        member_id = member.id
        rules.members.delete_member(officer, member_id)
        session.commit()

        rules.reverts.revert(admin, _entry(session, AuditAction.DELETE_MEMBER).id)
        session.commit()

        restored = session.get(Member, member_id)
        assert restored.name == "Alex Carter"
        assert restored.marks == [{"date": "2025-01-10", "score": 7.5}]

    def test_revert_settings_restores_previous_day(self, rules, session, admin, officer):
        rules.settings.update_settings(admin, "junior", 2)
        session.commit()

        rules.reverts.revert(admin, _entry(session, AuditAction.UPDATE_SETTINGS).id)

        assert rules.settings.get_settings(officer, "junior").meeting_day == 5

    def test_revert_twice_conflicts(self, rules, session, admin, member):
        original = _entry(session, AuditAction.CREATE_MEMBER)
        rules.reverts.revert(admin, original.id)

        with pytest.raises(AlreadyRevertedError):
            rules.reverts.revert(admin, original.id)

    def test_captain_cannot_revert(self, rules, session, captain, member):
        with pytest.raises(AccessDeniedError) as exc_info:
            rules.reverts.revert(captain, _entry(session, AuditAction.CREATE_MEMBER).id)
        assert exc_info.value.reason is DenyReason.INSUFFICIENT_ROLE
        assert session.get(Member, member.id) is not None

    def test_admin_demoted_since_entry_cannot_revert(self, rules, session, admin, member):
        session.execute(
            RoleAssignment.__table__.update()
            .where(RoleAssignment.identity_id == admin.identity_id)
            .values(role="captain")
        )
        with pytest.raises(AccessDeniedError):
            rules.reverts.revert(admin, _entry(session, AuditAction.CREATE_MEMBER).id)

    def test_revert_accepts_bare_identity(self, rules, session, admin, member):
        rules.reverts.revert(admin.identity, _entry(session, AuditAction.CREATE_MEMBER).id)
        assert session.get(Member, member.id) is None

    def test_revert_entries_are_not_revertible(self, rules, session, admin, member):
        revert_entry = rules.reverts.revert(admin, _entry(session, AuditAction.CREATE_MEMBER).id)
        with pytest.raises(ActionNotRevertibleError):
            rules.reverts.revert(admin, revert_entry.id)

    def test_invite_actions_are_not_revertible(self, rules, session, admin, newcomer):
        invite = rules.invites.issue(admin, Role.OFFICER)
        rules.invites.claim(invite.code, newcomer)

        for action in (AuditAction.GENERATE_INVITE_CODE, AuditAction.USE_INVITE_CODE):
            with pytest.raises(ActionNotRevertibleError):
                rules.reverts.revert(admin, _entry(session, action).id)

    def test_unrecognised_stored_action_is_not_revertible(self, rules, session, admin, member, captured_logs):
        entry_id = _entry(session, AuditAction.CREATE_MEMBER).id
        session.execute(
            AuditLog.__table__.update()
            .where(AuditLog.id == entry_id)
            .values(action_type="ARCHIVE_MEMBER")
        )
        session.expire_all()

        with pytest.raises(ActionNotRevertibleError) as exc_info:
            rules.reverts.revert(admin, entry_id)

        assert exc_info.value.action_type == "ARCHIVE_MEMBER"
        assert any(r["message"] == "unknown_stored_action" for r in captured_logs())
        assert session.get(Member, member.id) is not None

    def test_revert_create_of_missing_member(self, rules, session, admin, officer, member, clock):
        original = _entry(session, AuditAction.CREATE_MEMBER)
        rules.members.delete_member(officer, member.id)
        clock.advance()

        with pytest.raises(MemberNotFoundError):
            rules.reverts.revert(admin, original.id)


class TestImmutability:
    def test_audit_fields_cannot_change(self, rules, session, admin, member):
        entry = _entry(session, AuditAction.CREATE_MEMBER)
        entry.description = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_audit_entries_cannot_be_deleted(self, session, member):
        session.delete(_entry(session, AuditAction.CREATE_MEMBER))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_backlink_cannot_be_rewritten(self, rules, session, admin, member):
        original = _entry(session, AuditAction.CREATE_MEMBER)
        rules.reverts.revert(admin, original.id)

        original.reverted_by_log_id = uuid4()
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_invite_cannot_be_unrevoked(self, rules, session, admin):
        invite = rules.invites.issue(admin, Role.OFFICER)
        rules.invites.revoke(admin, invite.code)

        invite.revoked = False
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_used_invite_cannot_be_reassigned(self, rules, session, admin, newcomer, clock):
        invite = rules.invites.issue(admin, Role.OFFICER, expires_at=clock.now() + timedelta(hours=1))
        rules.invites.claim(invite.code, newcomer)

        invite.used_by = "idp|someone-else"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
