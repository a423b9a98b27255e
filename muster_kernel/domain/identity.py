"""
Identity and Actor value objects.

An ``Identity`` is the trusted claim handed over by the identity provider
(opaque id plus email).  The kernel never verifies authentication; it only
authorizes a given identity.  An ``Actor`` is an identity together with the
role the Role Resolver found for it.
"""

from dataclasses import dataclass

from muster_kernel.domain.roles import Role


@dataclass(frozen=True)
class Identity:
    identity_id: str
    email: str

    def __post_init__(self) -> None:
        if not self.identity_id:
            raise ValueError("identity_id is required")
        if not self.email:
            raise ValueError("email is required")


@dataclass(frozen=True)
class Actor:
    """An identity with its resolved role (``None`` means no access)."""

    identity_id: str
    email: str
    role: Role | None

    @classmethod
    def of(cls, identity: Identity, role: Role | None) -> "Actor":
        return cls(identity_id=identity.identity_id, email=identity.email, role=role)

    @property
    def identity(self) -> Identity:
        return Identity(identity_id=self.identity_id, email=self.email)
