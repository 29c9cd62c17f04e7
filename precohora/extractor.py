"""Turning rendered results into FuelStationRecord instances.

Two separate passes live here:

Structured pass:
    An in-page script collects raw payloads from result cards; the parsing
    below filters non-station cards, derives city/state from the address
    and reads the "R$ <number>" price.

Raw-markup pass:
    A last resort over the page's HTML source when no card qualified. Each
    price occurrence is paired with the heading occurrence of the same
    index, which can mis-pair when names and prices are not rendered in
    matching order. The records it produces are best-effort.
"""

import html
import re
from typing import Any, Iterable, Sequence

from precohora.logger import get_logger
from precohora.models import FuelStationRecord, sort_by_price

log = get_logger(__name__)

PRICE_PATTERN = re.compile(r"R\$\s*([\d,]+)")
CITY_STATE_PATTERN = re.compile(r"([^,]+),\s*([A-Z]{2})")
HEADING_PATTERN = re.compile(r"<h3[^>]*>(.*?)</h3>")
TAG_PATTERN = re.compile(r"<[^>]+>")

UNNAMED_STATION = "Posto sem nome"
UNKNOWN_ADDRESS = "Endereço não disponível"
UNKNOWN_CITY = "Cidade não disponível"

# Runs inside the page; returns one plain object per card.
CARD_SCAN_JS = """
(selector) => Array.from(document.querySelectorAll(selector)).map((card) => {
    const text = (root, sel) => {
        const el = root.querySelector(sel);
        return el ? el.textContent.trim() : null;
    };
    return {
        name: text(card, 'h3, .nome-estabelecimento, .titulo'),
        address: text(card, '.endereco, .local, address'),
        price_text: text(card, '.preco, .valor, .price'),
        latitude: card.dataset.lat || null,
        longitude: card.dataset.lng || null,
    };
})
"""


def is_station_name(name: str, keywords: Iterable[str]) -> bool:
    """Check whether a card name denotes a fuel station (case-insensitive)."""
    lowered = name.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def derive_city_state(address: str, default_state: str) -> tuple[str, str]:
    """Extract ("City", "ST") from an address containing "City, ST".

    Falls back to an unknown city and the default state.
    """
    match = CITY_STATE_PATTERN.search(address)
    if match is None:
        return UNKNOWN_CITY, default_state
    return match.group(1).strip(), match.group(2).strip()


def _to_float(digits: str) -> float | None:
    # Only the first comma is a decimal separator
    try:
        return float(digits.replace(",", ".", 1))
    except ValueError:
        return None


def parse_price(text: str | None) -> float:
    """Read the first "R$ <number>" amount; 0.0 when absent or unreadable.

    >>> parse_price("R$ 5,79")
    5.79
    """
    if not text:
        return 0.0
    match = PRICE_PATTERN.search(text)
    if match is None:
        return 0.0
    value = _to_float(match.group(1))
    return value if value is not None else 0.0


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_card(
    payload: dict[str, Any],
    fuel_type: str,
    keywords: Sequence[str],
    default_state: str,
) -> FuelStationRecord | None:
    """Build a record from one card payload.

    Args:
        payload: Raw values collected by CARD_SCAN_JS.
        fuel_type: Fuel identifier the search was for.
        keywords: Name tokens identifying a station.
        default_state: State used when the address has none.

    Returns:
        The record, or None if the card is not a fuel station.
    """
    name = (payload.get("name") or "").strip() or UNNAMED_STATION
    if not is_station_name(name, keywords):
        return None

    address = (payload.get("address") or "").strip() or UNKNOWN_ADDRESS
    city, state = derive_city_state(address, default_state)

    latitude = _optional_float(payload.get("latitude"))
    longitude = _optional_float(payload.get("longitude"))
    if latitude is None or longitude is None:
        latitude = longitude = None

    return FuelStationRecord(
        name=name,
        address=address,
        city=city,
        state=state,
        price=parse_price(payload.get("price_text")),
        fuel_type=fuel_type,
        latitude=latitude,
        longitude=longitude,
    )


def parse_cards(
    payloads: Sequence[dict[str, Any]],
    fuel_type: str,
    keywords: Sequence[str],
    default_state: str,
) -> tuple[FuelStationRecord, ...]:
    """Parse card payloads into station records sorted by price.

    Cards that are not stations are discarded. A card that fails to parse
    is logged and skipped without affecting the others.
    """
    records: list[FuelStationRecord] = []
    discarded = 0

    for idx, payload in enumerate(payloads):
        try:
            record = parse_card(payload, fuel_type, keywords, default_state)
        except Exception as exc:
            log.warning("Card parsing failed", card_index=idx, error=str(exc))
            continue

        if record is None:
            discarded += 1
            continue
        records.append(record)

    log.debug(
        "Cards parsed",
        cards=len(payloads),
        stations=len(records),
        discarded=discarded,
    )
    return sort_by_price(records)


def markup_has_prices(markup: str) -> bool:
    """Whether the raw pass has anything to work with."""
    return "R$" in markup and ("posto" in markup or "Posto" in markup)


def _heading_text(fragment: str) -> str:
    return " ".join(html.unescape(TAG_PATTERN.sub(" ", fragment)).split())


def scan_raw_markup(
    markup: str,
    fuel_type: str,
    city: str,
    state: str,
) -> tuple[FuelStationRecord, ...]:
    """Best-effort records from raw HTML price/heading pairs.

    The n-th price occurrence is paired with the n-th ``<h3>`` occurrence;
    prices beyond the last heading are dropped.

    Args:
        markup: Full rendered page source.
        fuel_type: Fuel identifier the search was for.
        city: City label attached to every record.
        state: State attached to every record.

    Returns:
        Records sorted by price; empty when the markup holds no prices.
    """
    if not markup_has_prices(markup):
        return ()

    headings = HEADING_PATTERN.finditer(markup)
    records: list[FuelStationRecord] = []

    for price_match in PRICE_PATTERN.finditer(markup):
        heading = next(headings, None)
        if heading is None:
            break

        name = _heading_text(heading.group(1))
        price = _to_float(price_match.group(1))
        if not name or price is None:
            continue

        records.append(
            FuelStationRecord(
                name=name,
                address=UNKNOWN_ADDRESS,
                city=city,
                state=state,
                price=price,
                fuel_type=fuel_type,
            )
        )

    log.info("Raw markup scan complete", stations=len(records))
    return sort_by_price(records)
