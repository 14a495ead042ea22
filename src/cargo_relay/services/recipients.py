"""Audience computation for shipment notifications."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from cargo_relay.domain.roster import (
    ELEVATED_ROLES,
    ManagerScope,
    RecipientPolicy,
    Role,
    RosterMember,
)

logger = logging.getLogger(__name__)


class RosterRepository(Protocol):
    """Read-only access to Telegram users and their roles."""

    def get_member(self, telegram_id: int) -> RosterMember | None:
        """Return the roster entry for a Telegram user, if present."""

    def roster_for_client(self, client_id: UUID) -> list[RosterMember]:
        """Return users linked to a client account."""

    def managers_all(self) -> list[RosterMember]:
        """Return every user holding an elevated role."""

    def managers_for_client(self, client_id: UUID) -> list[RosterMember]:
        """Return elevated users explicitly assigned to a client."""


@dataclass
class RecipientResolver:
    """Computes who hears about a shipment event."""

    roster: RosterRepository

    def resolve(self, client_id: UUID, policy: RecipientPolicy) -> frozenset[int]:
        """Return deduplicated Telegram ids for the client and policy."""
        clients: set[int] = set()
        if policy.include_client:
            clients = {
                member.telegram_id
                for member in self._lookup(
                    "client", lambda: self.roster.roster_for_client(client_id)
                )
                if member.verified and member.role is not Role.BLOCKED
            }
        managers = {
            member.telegram_id
            for member in self._managers(client_id, policy.managers)
            if member.verified and member.role in ELEVATED_ROLES
        }
        return frozenset((clients | managers) - policy.excluding)

    def _managers(self, client_id: UUID, scope: ManagerScope) -> list[RosterMember]:
        if scope is ManagerScope.ALL:
            return self._lookup("managers", self.roster.managers_all)
        if scope is ManagerScope.BY_CLIENT:
            return self._lookup(
                "client managers", lambda: self.roster.managers_for_client(client_id)
            )
        return []

    def _lookup(
        self, side: str, fetch: Callable[[], list[RosterMember]]
    ) -> list[RosterMember]:
        try:
            return fetch()
        except Exception:
            logger.warning("Roster lookup failed for %s recipients", side, exc_info=True)
            return []
