"""Pydantic value types and input validation.

Everything that crosses a component boundary is one of these models:
queries going into the extraction engine, station records coming out of it,
and the envelope handed back to callers. Records are frozen; once parsed
they are never mutated, only sorted and shared (the cache hands the same
tuple to every hit).
"""

import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from config.settings import GlobalConfig
from precohora.exceptions import QueryValidationError

POSTAL_CODE_PATTERN = re.compile(r"^\d{5}-?\d{3}$")
MIN_CITY_LENGTH = 3


class Coordinates(BaseModel):
    """Geographic point in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


# Reported in failure envelopes, where no coordinates were resolved.
ZERO_COORDINATES = Coordinates(latitude=0.0, longitude=0.0)


class SearchQuery(BaseModel):
    """Immutable description of one portal search.

    Attributes:
        latitude: Search centre latitude.
        longitude: Search centre longitude.
        fuel_type: Canonical fuel identifier (a key of the fuel catalogue).
        search_term: Portal search term for the fuel type.
        radius_km: Search radius in kilometres.
    """

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    fuel_type: str = Field(..., min_length=1)
    search_term: str = Field(..., min_length=1)
    radius_km: int = Field(..., ge=1)

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)

    def cache_params(self) -> dict[str, Any]:
        """Parameters identifying this query for the result cache."""
        return {
            "lat": self.latitude,
            "lng": self.longitude,
            "type": self.fuel_type,
            "radius": self.radius_km,
        }


class FuelStationRecord(BaseModel):
    """One station's price for one fuel type, as read from the portal.

    Serialized with camelCase keys (``fuelType``, ``lastUpdate``) to keep
    the public JSON shape stable.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1)
    address: str
    city: str
    state: str
    price: float = Field(..., ge=0.0)
    fuel_type: str
    last_update: datetime = Field(default_factory=lambda: datetime.now(UTC))
    latitude: float | None = None
    longitude: float | None = None

    @field_validator("name", "address", "city", mode="before")
    @classmethod
    def normalize_whitespace(cls, value: Any) -> Any:
        """Collapse runs of whitespace left over from DOM text."""
        if isinstance(value, str):
            return " ".join(value.split())
        return value


def sort_by_price(records: list[FuelStationRecord]) -> tuple[FuelStationRecord, ...]:
    """Order records cheapest first. Stable for equal prices."""
    return tuple(sorted(records, key=lambda record: record.price))


class ResponseMeta(BaseModel):
    """Metadata describing the query an envelope answers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    radius: int
    fuel_type: str
    coordinates: Coordinates
    cep: str | None = None
    city: str | None = None
    state: str | None = None


class StationsResponse(BaseModel):
    """Uniform envelope returned for every lookup, successful or not."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    data: list[FuelStationRecord] = Field(default_factory=list)
    meta: ResponseMeta
    error: str | None = None

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with public aliases, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def supported_fuel_types(config: GlobalConfig) -> list[str]:
    return list(config.fuel_types)


def normalize_fuel_type(value: str | None, config: GlobalConfig) -> str:
    """Resolve a caller-supplied fuel identifier to its canonical form.

    Args:
        value: Identifier or alias as supplied; None selects the default.
        config: Configuration holding the fuel catalogue.

    Returns:
        Canonical fuel identifier.

    Raises:
        QueryValidationError: If the identifier is not supported.
    """
    if value is None or not value.strip():
        return config.default_fuel_type

    fuel_type = value.strip().lower()
    fuel_type = config.fuel_type_aliases.get(fuel_type, fuel_type)

    if fuel_type not in config.fuel_types:
        supported = ", ".join(supported_fuel_types(config))
        raise QueryValidationError(
            field="type",
            value=value,
            reason=f"Invalid fuel type. Supported values: {supported}",
        )
    return fuel_type


def normalize_postal_code(value: str | None) -> str:
    """Validate a CEP and strip its hyphen.

    Raises:
        QueryValidationError: If the code is missing or malformed.
    """
    if not value or not POSTAL_CODE_PATTERN.match(value.strip()):
        raise QueryValidationError(
            field="cep",
            value=value,
            reason="Invalid CEP. Expected format: 00000-000 or 00000000",
        )
    return value.strip().replace("-", "")


def normalize_city(value: str | None) -> str:
    """Validate a city name.

    Raises:
        QueryValidationError: If the name is missing or too short.
    """
    if not value or len(value.strip()) < MIN_CITY_LENGTH:
        raise QueryValidationError(
            field="city",
            value=value,
            reason=f"Invalid city name. It must have at least {MIN_CITY_LENGTH} characters.",
        )
    return value.strip()


def normalize_state(value: str | None, config: GlobalConfig) -> str:
    if value is None or not value.strip():
        return config.default_state
    return value.strip().upper()


def parse_radius(value: int | str | None, config: GlobalConfig) -> int:
    """Parse a radius, falling back to the default for anything unusable.

    Leading digits are honoured ("10km" -> 10); missing, unparseable or
    non-positive values become the configured default.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value if value > 0 else config.default_radius_km
    if value is None:
        return config.default_radius_km

    match = re.match(r"\s*(\d+)", str(value))
    if match is None:
        return config.default_radius_km
    radius = int(match.group(1))
    return radius if radius > 0 else config.default_radius_km
