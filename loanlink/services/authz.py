"""Request guards.

Guards are small, pure objects evaluated in order against an identity claim
before a handler runs. None of them perform I/O, so each can be exercised with
a synthetic ``IdentityClaim``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from loanlink.core.exceptions import Forbidden
from loanlink.core.permissions import STAFF_ROLES, Role
from loanlink.core.security import IdentityClaim


class Guard(Protocol):
    def check(self, identity: IdentityClaim) -> None: ...


@dataclass(frozen=True)
class RoleGate:
    allowed: frozenset[Role]

    @classmethod
    def of(cls, *roles: Role | str) -> "RoleGate":
        return cls(frozenset(Role.parse(role) for role in roles))

    def allows(self, identity: IdentityClaim) -> bool:
        return identity.role in self.allowed

    def check(self, identity: IdentityClaim) -> None:
        if not self.allows(identity):
            raise Forbidden(
                "Role not permitted for this action",
                details={"role": identity.role.value},
            )


@dataclass(frozen=True)
class OwnerGate:
    """Caller's email must equal the resource owner's email."""

    owner_email: str

    def check(self, identity: IdentityClaim) -> None:
        if not is_owner(identity, self.owner_email):
            raise Forbidden("Only the application owner may perform this action")


@dataclass(frozen=True)
class OwnerOrStaffGate:
    owner_email: str

    def check(self, identity: IdentityClaim) -> None:
        if identity.role in STAFF_ROLES:
            return
        OwnerGate(self.owner_email).check(identity)


def is_owner(identity: IdentityClaim, owner_email: str | None) -> bool:
    if not owner_email:
        return False
    return identity.email.strip().lower() == owner_email.strip().lower()


def apply_guards(identity: IdentityClaim, guards: Iterable[Guard]) -> IdentityClaim:
    for guard in guards:
        guard.check(identity)
    return identity
