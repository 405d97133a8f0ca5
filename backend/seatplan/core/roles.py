"""Staff roles and the actor identity passed into the core."""
from dataclasses import dataclass
from enum import IntEnum


class Role(IntEnum):
    """Ordered role hierarchy: a higher value includes every lower role."""

    HOST = 1
    STAFF = 2
    MANAGER = 3
    ADMIN = 4

    @classmethod
    def parse(cls, value: str) -> "Role":
        key = (value or "").strip().lower()
        aliases = {"gerente": "manager"}
        key = aliases.get(key, key)
        try:
            return cls[key.upper()]
        except KeyError:
            raise ValueError(f"Unknown role '{value}'") from None

    def at_least(self, minimum: "Role") -> bool:
        return self >= minimum


@dataclass(frozen=True)
class Actor:
    """Opaque identity of whoever triggers an operation (used for audit)."""

    id: str
    role: Role = Role.HOST


SYSTEM_ACTOR = Actor(id="system", role=Role.ADMIN)
