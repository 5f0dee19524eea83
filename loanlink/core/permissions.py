from enum import Enum
from typing import FrozenSet, List


class Role(str, Enum):
    BORROWER = "borrower"
    MANAGER = "manager"
    ADMIN = "admin"

    @classmethod
    def list_all(cls) -> List[str]:
        return [role.value for role in cls]

    @classmethod
    def parse(cls, value: object) -> "Role":
        """Strict lookup; raises ValueError for anything outside the enum."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Unknown role: {value!r}")
        normalized = value.strip().lower()
        if normalized not in cls.list_all():
            raise ValueError(f"Unknown role: {value!r}")
        return cls(normalized)


# Role sets required per operation
STAFF_ROLES: FrozenSet[Role] = frozenset({Role.MANAGER, Role.ADMIN})
ANY_ROLE: FrozenSet[Role] = frozenset(Role)

DECIDE_APPLICATION = STAFF_ROLES
SUBMIT_APPLICATION = ANY_ROLE
CANCEL_APPLICATION = ANY_ROLE
VIEW_APPLICATION = ANY_ROLE
LIST_APPLICATIONS = ANY_ROLE
INITIATE_PAYMENT = ANY_ROLE
