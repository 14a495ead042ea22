"""Supabase-backed roster repository."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from cargo_relay.domain.roster import ELEVATED_ROLES, Role, RosterMember
from cargo_relay.services.recipients import RosterRepository

_MEMBER_COLUMNS = "id, telegram_id, role, is_verified"


@dataclass
class SupabaseRosterRepository(RosterRepository):
    """Supabase implementation for Telegram user lookups."""

    client: Client

    def get_member(self, telegram_id: int) -> RosterMember | None:
        """Return the roster entry for a Telegram id, if present."""
        response = (
            self.client.table("tg_users")
            .select(_MEMBER_COLUMNS)
            .eq("telegram_id", telegram_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _member_from_row(response.data[0])

    def roster_for_client(self, client_id: UUID) -> list[RosterMember]:
        """Return users linked to a client."""
        response = (
            self.client.table("tg_users")
            .select(_MEMBER_COLUMNS)
            .eq("client_id", str(client_id))
            .execute()
        )
        return [_member_from_row(row) for row in response.data or []]

    def managers_all(self) -> list[RosterMember]:
        """Return verified managers and admins."""
        response = (
            self.client.table("tg_users")
            .select(_MEMBER_COLUMNS)
            .in_("role", sorted(role.value for role in ELEVATED_ROLES))
            .eq("is_verified", True)
            .execute()
        )
        return [_member_from_row(row) for row in response.data or []]

    def managers_for_client(self, client_id: UUID) -> list[RosterMember]:
        """Return managers assigned to a client through manager_clients."""
        links = (
            self.client.table("manager_clients")
            .select("manager_tg_user_id")
            .eq("client_id", str(client_id))
            .execute()
        )
        ids = [row["manager_tg_user_id"] for row in links.data or []]
        if not ids:
            return []
        response = (
            self.client.table("tg_users")
            .select(_MEMBER_COLUMNS)
            .in_("id", ids)
            .execute()
        )
        return [_member_from_row(row) for row in response.data or []]


def _member_from_row(row: dict) -> RosterMember:
    return RosterMember(
        telegram_id=int(row["telegram_id"]),
        role=Role.parse(row.get("role")),
        verified=bool(row.get("is_verified")),
    )
