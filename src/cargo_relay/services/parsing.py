"""Parsers for shipment lines typed into the chat."""

import re

from cargo_relay.domain.shipments import ShipmentLine

# Client codes look like C001, M255-D or 88880-8829A; Cyrillic letters are
# accepted because operators type on Russian keyboards.
_SHIPMENT_LINE_RE = re.compile(
    r"^([A-Za-zА-Яа-я0-9][A-Za-zА-Яа-я0-9._-]*)\s+(\d+)\s+(\d+)\s+(\d+(?:[.,]\d+)?)(?:\s|$)"
)
_INTAKE_ITEM_RE = re.compile(r"^(\d+)\s+(\d+)\s+(\d+(?:[.,]\d+)?)(?:\s|$)")
_CYRILLIC_C_PREFIX_RE = re.compile(r"^[Сс](?=\d)")
_WHITESPACE_RE = re.compile(r"\s+")


def parse_shipment_line(raw: str | None) -> ShipmentLine | None:
    """Parse `CODE PALLETS BOXES GROSS` into a ShipmentLine."""
    if not raw:
        return None
    text = _WHITESPACE_RE.sub(" ", raw.strip())
    match = _SHIPMENT_LINE_RE.match(text)
    if match is None:
        return None
    code = normalize_client_code(match.group(1))
    return ShipmentLine(
        client_code=code,
        pallets=int(match.group(2)),
        boxes=int(match.group(3)),
        gross_kg=_parse_weight(match.group(4)),
        source_text=raw.strip(),
    )


def parse_intake_item(raw: str | None) -> tuple[int, int, float] | None:
    """Parse `PALLETS BOXES GROSS` typed during an intake session."""
    if not raw:
        return None
    match = _INTAKE_ITEM_RE.match(_WHITESPACE_RE.sub(" ", raw.strip()))
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2)), _parse_weight(match.group(3))


def normalize_client_code(raw: str) -> str:
    """Uppercase a client code and fix a Cyrillic `С` typed before digits."""
    return _CYRILLIC_C_PREFIX_RE.sub("C", raw.strip()).upper()


def format_weight(gross_kg: float) -> str:
    """Format a weight with two decimals."""
    return f"{gross_kg:.2f}"


def _parse_weight(raw: str) -> float:
    return float(raw.replace(",", "."))
