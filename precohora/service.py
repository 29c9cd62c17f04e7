"""Lookup flows combining geocoding, cache, browser and extraction.

Both public flows share one path once coordinates are known:

    cache lookup -> (miss) borrow tab -> extract -> cache store -> close tab

and both answer with a StationsResponse envelope. Input validation runs
first and raises QueryValidationError before any browser work. A browser
that cannot be launched propagates as BrowserInitializationError; every
other failure is caught here and reported as ``success: false``.
"""

from typing import Any

from config.settings import GlobalConfig, get_config
from precohora.browser import SessionManager
from precohora.cache import ResultCache
from precohora.exceptions import BrowserInitializationError, PrecoHoraError
from precohora.geocoding import GeocodingService
from precohora.logger import get_logger
from precohora.models import (
    ZERO_COORDINATES,
    Coordinates,
    FuelStationRecord,
    ResponseMeta,
    SearchQuery,
    StationsResponse,
    normalize_city,
    normalize_fuel_type,
    normalize_postal_code,
    normalize_state,
    parse_radius,
)
from precohora.scraper import ExtractionEngine

log = get_logger(__name__)

CACHE_SCOPE = "coordinates"


class AcquisitionOrchestrator:
    """Answers station lookups by postal code or by city.

    Attributes:
        config: GlobalConfig instance for runtime configuration.
        session: SessionManager lending tabs.
        cache: ResultCache shared by all requests.
        geocoder: GeocodingService resolving coordinates.
        engine: ExtractionEngine driving the portal.

    Example:
        orchestrator = AcquisitionOrchestrator(config, session=session)
        envelope = await orchestrator.by_postal_code("40000-000", "gasolina")
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        session: SessionManager | None = None,
        cache: ResultCache | None = None,
        geocoder: GeocodingService | None = None,
        engine: ExtractionEngine | None = None,
    ) -> None:
        self.config = config or get_config()
        self.session = session or SessionManager(self.config)
        self.cache = cache or ResultCache(enabled=self.config.cache_enabled)
        self.geocoder = geocoder or GeocodingService(self.config)
        self.engine = engine or ExtractionEngine(self.config)

    async def by_postal_code(
        self,
        code: str | None,
        fuel_type: str | None = None,
        radius: int | str | None = None,
    ) -> StationsResponse:
        """Stations around the city of a postal code.

        Raises:
            QueryValidationError: If the postal code or fuel type is invalid.
            BrowserInitializationError: If no browser can be launched.
        """
        cep = normalize_postal_code(code)
        fuel = normalize_fuel_type(fuel_type, self.config)
        radius_km = parse_radius(radius, self.config)

        log.info("Station lookup by postal code", cep=cep, fuel_type=fuel, radius_km=radius_km)
        query_fields = {"cep": cep}

        try:
            coordinates = await self.geocoder.resolve_by_postal_code(cep)
            stations = await self.fetch_stations(coordinates, fuel, radius_km)
        except BrowserInitializationError:
            raise
        except Exception as exc:
            return self._failure(exc, fuel, radius_km, query_fields)

        return self._success(stations, coordinates, fuel, radius_km, query_fields)

    async def by_city(
        self,
        city: str | None,
        state: str | None = None,
        fuel_type: str | None = None,
        radius: int | str | None = None,
    ) -> StationsResponse:
        """Stations around a named city.

        Raises:
            QueryValidationError: If the city name or fuel type is invalid.
            BrowserInitializationError: If no browser can be launched.
        """
        city_name = normalize_city(city)
        state_code = normalize_state(state, self.config)
        fuel = normalize_fuel_type(fuel_type, self.config)
        radius_km = parse_radius(radius, self.config)

        log.info(
            "Station lookup by city",
            city=city_name,
            state=state_code,
            fuel_type=fuel,
            radius_km=radius_km,
        )
        query_fields = {"city": city_name, "state": state_code}

        try:
            coordinates = self.geocoder.resolve_by_city_state(city_name, state_code)
            stations = await self.fetch_stations(coordinates, fuel, radius_km)
        except BrowserInitializationError:
            raise
        except Exception as exc:
            return self._failure(exc, fuel, radius_km, query_fields)

        return self._success(stations, coordinates, fuel, radius_km, query_fields)

    async def fetch_stations(
        self,
        coordinates: Coordinates,
        fuel_type: str,
        radius_km: int,
    ) -> tuple[FuelStationRecord, ...]:
        """Cached extraction for one coordinate query.

        Raises:
            NavigationError: If the portal cannot be navigated.
            BrowserInitializationError: If no browser is available.
        """
        query = SearchQuery(
            latitude=coordinates.latitude,
            longitude=coordinates.longitude,
            fuel_type=fuel_type,
            search_term=self.config.fuel_types[fuel_type].search_term,
            radius_km=radius_km,
        )
        key = ResultCache.build_key(CACHE_SCOPE, query.cache_params())

        cached = self.cache.get(key)
        if cached is not None:
            log.info("Returning cached stations", key=key, total=len(cached))
            return cached

        tab = await self.session.acquire_tab()
        try:
            stations = await self.engine.extract(tab, query)
        finally:
            await tab.close()

        log.info("Stations extracted", total=len(stations), key=key)

        if stations:
            self.cache.put(key, stations, self.config.cache_ttl_seconds)
        return stations

    def _success(
        self,
        stations: tuple[FuelStationRecord, ...],
        coordinates: Coordinates,
        fuel_type: str,
        radius_km: int,
        query_fields: dict[str, Any],
    ) -> StationsResponse:
        return StationsResponse(
            success=True,
            data=list(stations),
            meta=ResponseMeta(
                total=len(stations),
                radius=radius_km,
                fuel_type=fuel_type,
                coordinates=coordinates,
                **query_fields,
            ),
        )

    def _failure(
        self,
        exc: Exception,
        fuel_type: str,
        radius_km: int,
        query_fields: dict[str, Any],
    ) -> StationsResponse:
        message = exc.message if isinstance(exc, PrecoHoraError) else str(exc)
        log.error(
            "Station lookup failed",
            error_type=type(exc).__name__,
            error=message,
            **query_fields,
        )
        return StationsResponse(
            success=False,
            data=[],
            meta=ResponseMeta(
                total=0,
                radius=radius_km,
                fuel_type=fuel_type,
                coordinates=ZERO_COORDINATES,
                **query_fields,
            ),
            error=f"Failed to fetch stations: {message}",
        )

    async def shutdown(self) -> None:
        await self.geocoder.aclose()
        await self.session.shutdown()
