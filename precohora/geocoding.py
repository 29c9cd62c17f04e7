"""Postal code and city name to coordinate resolution.

Coordinates come from a static table of known cities. A postal code is
first turned into a city name through ViaCEP; a city name is matched
against the table exactly, then by accent-insensitive substring in either
direction. Anything unresolvable degrades to the default city - resolution
never fails outward.
"""

import unicodedata

import httpx

from config.settings import GlobalConfig, get_config
from precohora.exceptions import GeocodingError
from precohora.logger import get_logger
from precohora.models import Coordinates

log = get_logger(__name__)


def strip_accents(text: str) -> str:
    """Lowercase and drop combining marks ("Camaçari" -> "camacari")."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


class GeocodingService:
    """Resolves postal codes and city names to coordinates.

    Attributes:
        config: GlobalConfig holding the city table and lookup endpoint.
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.
            client: Optional shared HTTP client; a short-lived one is
                created per lookup otherwise.
        """
        self.config = config or get_config()
        self._client = client
        self._table = {
            strip_accents(name): Coordinates(latitude=c.latitude, longitude=c.longitude)
            for name, c in self.config.cities.items()
        }

    @property
    def default_coordinates(self) -> Coordinates:
        return self._table[strip_accents(self.config.default_city)]

    def match_city(self, city: str) -> Coordinates | None:
        """Exact, then substring match against the city table.

        Returns:
            Coordinates of the matched city, or None.
        """
        normalized = strip_accents(city.strip())
        if not normalized:
            return None

        if normalized in self._table:
            log.info("City coordinates found", city=normalized)
            return self._table[normalized]

        for name, coords in self._table.items():
            if name in normalized or normalized in name:
                log.info("Approximate city coordinates found", city=normalized, matched=name)
                return coords

        return None

    def resolve_by_city_state(self, city: str, state: str) -> Coordinates:
        """Coordinates for a city; the default city's when unknown.

        The state is informational only; the table holds one state's cities.
        """
        log.info("Resolving city coordinates", city=city, state=state)

        coords = self.match_city(city)
        if coords is None:
            log.warning(
                "City not in coordinate table, using default city",
                city=city,
                default_city=self.config.default_city,
            )
            return self.default_coordinates
        return coords

    async def resolve_by_postal_code(self, code: str) -> Coordinates:
        """Coordinates for a CEP; the default city's on any failure."""
        clean_code = code.replace("-", "")
        log.info("Resolving postal code", cep=clean_code)

        try:
            city, state = await self._lookup_city(clean_code)
        except GeocodingError as exc:
            log.error("Postal code lookup failed, using default city", error=exc.message)
            return self.default_coordinates

        log.info("Postal code resolved", cep=clean_code, city=city, state=state)
        return self.resolve_by_city_state(city, state)

    async def _lookup_city(self, code: str) -> tuple[str, str]:
        """Ask ViaCEP which city a postal code belongs to.

        Raises:
            GeocodingError: On transport errors, bad responses or unknown codes.
        """
        url = self.config.geocoding_url.format(cep=code)

        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.config.geocoding_timeout_sec)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, timeout=self.config.geocoding_timeout_sec)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise GeocodingError(query=code, reason=str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise GeocodingError(query=code, reason=f"Invalid JSON: {exc}") from exc

        if not isinstance(payload, dict) or payload.get("erro"):
            raise GeocodingError(query=code, reason="Postal code not found")

        city = payload.get("localidade")
        if not isinstance(city, str) or not city.strip():
            raise GeocodingError(query=code, reason="Response has no city")

        state = payload.get("uf")
        if not isinstance(state, str) or not state.strip():
            state = self.config.default_state
        return city, state

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
