"""Domain models for roster members and audience policies."""

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Role of a Telegram user in the roster."""

    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, raw: object) -> "Role":
        """Map a stored role value to a Role, defaulting to USER."""
        try:
            return cls(str(raw))
        except ValueError:
            return cls.USER


ELEVATED_ROLES = frozenset({Role.ADMIN, Role.MANAGER})


@dataclass(frozen=True)
class RosterMember:
    """Telegram user known to the roster."""

    telegram_id: int
    role: Role
    verified: bool

    @property
    def is_elevated(self) -> bool:
        """Return true for verified operators and administrators."""
        return self.verified and self.role in ELEVATED_ROLES


class ManagerScope(str, Enum):
    """Which elevated users receive a notification."""

    ALL = "all"
    BY_CLIENT = "by_client"
    NONE = "none"


@dataclass(frozen=True)
class RecipientPolicy:
    """Audience rule for one shipment event."""

    managers: ManagerScope = ManagerScope.ALL
    include_client: bool = True
    excluding: frozenset[int] = field(default_factory=frozenset)

    def without(self, *actor_ids: int | None) -> "RecipientPolicy":
        """Return a copy that also excludes the given actors."""
        extra = {actor_id for actor_id in actor_ids if actor_id is not None}
        return RecipientPolicy(
            managers=self.managers,
            include_client=self.include_client,
            excluding=self.excluding | extra,
        )
