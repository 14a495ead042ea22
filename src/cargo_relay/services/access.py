"""Role checks for shipment actions."""

from dataclasses import dataclass

from cargo_relay.services.recipients import RosterRepository


@dataclass
class AccessService:
    """Decides who may create and edit shipments."""

    roster: RosterRepository

    def can_manage(self, telegram_id: int) -> bool:
        """Return true for verified managers and admins."""
        member = self.roster.get_member(telegram_id)
        return member is not None and member.is_elevated
