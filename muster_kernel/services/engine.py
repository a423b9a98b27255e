"""
RuleEngine -- one object wiring every kernel service over one session.

Responsibility:
    Builds the role resolver, audit recorder and the five operation
    services so that they share a session, a clock and a single
    AuditRecorder.  Callers hold one RuleEngine per unit of work (a web
    request, a script, a test).

Architecture position:
    Kernel > Services -- outermost kernel seam.  The store handle is always
    passed in; the engine never opens connections or reads configuration.
    ``muster_config.bridges.build_engine_settings`` supplies ``config``.

Usage:
    engine = init_engine_from_url(url)
    factory = make_session_factory(engine)
    with session_scope(factory) as session:
        rules = RuleEngine(session, config=settings)
        actor = rules.actor(identity)
        rules.members.create_member(actor, "company", payload)
"""

from sqlalchemy.orm import Session

from muster_kernel.db.immutability import register_immutability_listeners
from muster_kernel.domain.access_policy import (
    Entity,
    Operation,
    PolicyDecision,
    PolicyTarget,
    authorize,
)
from muster_kernel.domain.clock import Clock, SystemClock
from muster_kernel.domain.engine_settings import EngineSettings
from muster_kernel.domain.identity import Actor, Identity
from muster_kernel.domain.roles import Role
from muster_kernel.services.audit_recorder import AuditRecorder
from muster_kernel.services.invite_service import InviteService
from muster_kernel.services.member_service import MemberService
from muster_kernel.services.revert_service import RevertService
from muster_kernel.services.role_assignment_service import RoleAssignmentService
from muster_kernel.services.role_resolver import RoleResolver
from muster_kernel.services.settings_service import SettingsService


class RuleEngine:
    """
    Facade over the kernel services.

    Guarantees:
        - Immutability listeners are registered before any service runs.
        - All services share one AuditRecorder, so every mutation made
          through the engine lands in the same session as its audit entry.

    Non-goals:
        - Does NOT commit.  The caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineSettings | None = None,
    ):
        register_immutability_listeners()

        self.session = session
        self.clock = clock or SystemClock()
        self.config = config or EngineSettings()

        self.roles = RoleResolver(session, self.clock)
        self.audit = AuditRecorder(
            session,
            self.clock,
            self.roles,
            list_limit=self.config.audit_list_limit,
        )
        self.settings = SettingsService(
            session,
            self.clock,
            self.audit,
            default_meeting_day=self.config.default_meeting_day,
        )
        self.members = MemberService(session, self.clock, self.audit)
        self.role_assignments = RoleAssignmentService(session, self.clock, self.audit)
        self.invites = InviteService(session, self.clock, self.audit, self.config)
        self.reverts = RevertService(
            session,
            self.clock,
            self.audit,
            self.roles,
            self.settings,
        )

    def resolve_role(self, identity: Identity) -> Role | None:
        return self.roles.resolve_role(identity)

    def actor(self, identity: Identity) -> Actor:
        """The identity with its role as currently stored."""
        return self.roles.resolve_actor(identity)

    def authorize(
        self,
        actor: Actor,
        entity: Entity,
        operation: Operation,
        target: PolicyTarget | None = None,
    ) -> PolicyDecision:
        """Ask the policy without performing the operation (UI gating)."""
        return authorize(
            actor.role,
            entity,
            operation,
            target,
            actor_id=actor.identity_id,
        )
