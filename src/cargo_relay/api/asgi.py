"""ASGI entrypoint for the shipment relay API."""

from cargo_relay.api.app import create_app
from cargo_relay.containers import build_container

app = create_app(build_container())
