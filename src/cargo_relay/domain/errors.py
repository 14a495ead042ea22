"""Domain errors surfaced to chat users."""


class UnknownClientError(LookupError):
    """Raised when a client code does not match any client."""

    def __init__(self, client_code: str) -> None:
        super().__init__(f"Client {client_code} not found")
        self.client_code = client_code


class NoActiveIntakeError(LookupError):
    """Raised when an intake action arrives without an open session."""

    def __init__(self, actor_id: int) -> None:
        super().__init__(f"No active intake for {actor_id}")
        self.actor_id = actor_id


class ShipmentNotFoundError(LookupError):
    """Raised when a shipment id does not resolve to a record."""
