"""Tests for admin endpoints."""

from uuid import uuid4

from fastapi.testclient import TestClient

from cargo_relay.api.app import create_app
from cargo_relay.domain.prompts import PromptKind
from cargo_relay.domain.shipments import PhotoReference
from cargo_relay.services.parsing import parse_shipment_line

HEADERS = {"X-Admin-Token": "admin-token"}


def test_admin_requires_token(container) -> None:
    client = TestClient(create_app(container))

    assert client.get("/admin/health").status_code == 401
    assert client.get("/admin/health", headers={"X-Admin-Token": "nope"}).status_code == 401
    assert client.get("/admin/health", headers=HEADERS).json() == {"status": "ok"}


def test_admin_correlation_counts(container) -> None:
    client = TestClient(create_app(container))
    container.reply_correlator.register("1:1", PromptKind.EDIT_SHIPMENT, actor_id=1)
    container.intake_service.start(1, "C001")

    response = client.get("/admin/correlation", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "open_bursts": 0,
        "pending_prompts": 1,
        "active_intakes": 1,
    }


def test_admin_shipment_detail(container) -> None:
    client = TestClient(create_app(container))
    line = parse_shipment_line("C001 1 24 345.35")
    assert line is not None
    shipment_id = container.shipment_service.commit_line(
        line, actor_id=1, photo=PhotoReference(file_id="P1")
    )

    response = client.get(f"/admin/shipments/{shipment_id}", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == str(shipment_id)
    assert data["client"]["client_code"] == "C001"
    assert data["status"] == "confirmed"
    assert data["photos"][0]["file_id"] == "P1"
    assert data["created_at"].startswith("2026-03-02T09:00")


def test_admin_shipment_detail_missing(container) -> None:
    client = TestClient(create_app(container))

    response = client.get(f"/admin/shipments/{uuid4()}", headers=HEADERS)

    assert response.status_code == 404
