"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from cargo_relay.domain.errors import ShipmentNotFoundError

if TYPE_CHECKING:
    from cargo_relay.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/correlation", dependencies=[Depends(require_admin)])
async def correlation_state(request: Request) -> dict[str, int]:
    """Return counts of in-flight bursts, prompts and intakes."""
    container: AppContainer = request.app.state.container
    return {
        "open_bursts": container.submission_correlator.open_bursts(),
        "pending_prompts": container.reply_correlator.pending(),
        "active_intakes": container.intake_service.active_count(),
    }


@router.get("/shipments/{shipment_id}", dependencies=[Depends(require_admin)])
async def shipment_detail(shipment_id: UUID, request: Request) -> dict[str, object]:
    """Return a shipment with its client and photos."""
    container: AppContainer = request.app.state.container
    try:
        summary = container.shipment_service.get_summary(shipment_id)
    except ShipmentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND) from exc
    payload = asdict(summary)
    payload["id"] = str(summary.id)
    payload["client"]["id"] = str(summary.client.id)
    payload["status"] = summary.status.value
    for key in ("created_at", "updated_at"):
        value = payload[key]
        payload[key] = value.isoformat() if value is not None else None
    return payload
