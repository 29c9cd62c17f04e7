"""Environment-driven settings for the acquisition service.

Every tunable (portal URLs, DOM selectors, timeouts, the fuel catalogue,
the Bahia city table, cache TTLs) is a typed field on ``GlobalConfig``
and can be overridden through environment variables or a ``.env`` file.
``get_config()`` caches a single validated instance per process.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FuelTypeSpec(BaseModel):
    """Catalogue entry for a supported fuel type.

    Attributes:
        name: Human-readable label.
        search_term: Term typed into the portal search when this fuel is requested.
    """

    name: str
    search_term: str


class CityCoordinates(BaseModel):
    """Static coordinates for a known city."""

    latitude: float
    longitude: float


class GlobalConfig(BaseSettings):
    """Service settings bound to environment variables.

    Defaults target the public Bahia portal and a local development
    run; deployments override them through the environment or ``.env``.

    Attributes:
        app_name: Application identifier for logging and telemetry.
        environment: Deployment environment.
        debug: Enable verbose debugging output.
        host: Interface the HTTP API binds to.
        port: Port the HTTP API listens on.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
        headless: Run the browser without a visible window.
        portal_base_url: Landing page of the pricing portal.
        portal_search_url: Results page of the pricing portal.
        navigation_timeout_ms: Ceiling for a single navigation.
        selector_timeout_ms: Ceiling for clicking or filling a located control.
        human_scroll_max_px: Upper bound of the random scroll distance.
        human_delay_min_ms: Lower bound of the random behavioural delay.
        human_delay_max_ms: Upper bound of the random behavioural delay.
        step_settle_ms: Pause after opening the fuel selector.
        results_settle_ms: Pause for client-side rendering of results.
        cache_enabled: Whether result caching is active at startup.
        cache_ttl_seconds: Lifetime of a cached result list.
        default_radius_km: Radius used when none (or an invalid one) is given.
        default_state: State used when none is given or none can be derived.
        default_fuel_type: Fuel type used when none is given.
        geocoding_url: Postal code lookup endpoint template.
        geocoding_timeout_sec: Timeout for postal code lookups.
        default_city: City whose coordinates are used when resolution fails.
        fallback_city: City label attached to raw-markup fallback records.
        user_agents: Rotating user-agent strings for stealth.
        blocked_resource_types: Request resource types aborted in every tab.
        station_keywords: Tokens a card name must contain to count as a station.
        css_selector_station_card: Combined selector for result cards.
        cities: Static city table used for coordinate resolution.
        fuel_types: Supported fuel catalogue keyed by identifier.
        fuel_type_aliases: Alternative identifiers accepted on input.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="PrecoHora-API", description="Application identifier")
    app_version: str = Field(default="1.0.0", description="Reported API version")
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP port")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Browser Configuration
    headless: bool = Field(default=True, description="Run browser in headless mode")
    navigation_timeout_ms: int = Field(
        default=30000, ge=1000, le=120000, description="Navigation timeout in milliseconds"
    )
    selector_timeout_ms: int = Field(
        default=5000, ge=100, le=60000, description="Click/fill timeout in milliseconds"
    )

    # Target Configuration
    portal_base_url: str = Field(
        default="https://precodahora.ba.gov.br/",
        description="Portal landing page",
    )
    portal_search_url: str = Field(
        default="https://precodahora.ba.gov.br/produtos/",
        description="Portal results page",
    )

    # Behavioural Timings
    human_scroll_max_px: int = Field(default=500, ge=0, description="Max random scroll")
    human_delay_min_ms: int = Field(default=500, ge=0, description="Min random delay")
    human_delay_max_ms: int = Field(default=2000, ge=0, description="Max random delay")
    step_settle_ms: int = Field(default=1000, ge=0, description="Pause after selector step")
    results_settle_ms: int = Field(default=3000, ge=0, description="Pause for results render")

    # Cache Configuration
    cache_enabled: bool = Field(default=True, description="Enable result caching")
    cache_ttl_seconds: int = Field(default=3600, ge=1, description="Cache TTL in seconds")

    # Query Defaults
    default_radius_km: int = Field(default=5, ge=1, le=100, description="Default radius")
    default_state: str = Field(default="BA", min_length=2, max_length=2)
    default_fuel_type: str = Field(default="gasolina", description="Default fuel type")

    # Geocoding
    geocoding_url: str = Field(
        default="https://viacep.com.br/ws/{cep}/json/",
        description="Postal code lookup endpoint template",
    )
    geocoding_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    default_city: str = Field(default="salvador", description="Fallback city key")
    fallback_city: str = Field(default="Salvador", description="City label for raw records")

    # Stealth Configuration - User Agent Rotation Pool
    user_agents: list[str] = Field(
        default=[
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
        ],
        min_length=1,
        description="User-agent rotation pool for stealth",
    )
    blocked_resource_types: list[str] = Field(
        default=["image", "font", "media"],
        description="Resource types aborted by the tab request filter",
    )

    # Extraction (Target: precodahora.ba.gov.br)
    station_keywords: list[str] = Field(
        default=["posto", "ipiranga", "shell", "petrobras", "br", "combustivel", "combustível"],
        min_length=1,
        description="Name tokens identifying a fuel station card",
    )
    css_selector_station_card: str = Field(
        default=".card-estabelecimento, .estabelecimento-card, .posto-card, .resultado-item",
        description="Result card selector",
    )

    cities: dict[str, CityCoordinates] = Field(
        default={
            "salvador": CityCoordinates(latitude=-12.9714, longitude=-38.5014),
            "feira de santana": CityCoordinates(latitude=-12.2667, longitude=-38.9667),
            "vitoria da conquista": CityCoordinates(latitude=-14.8611, longitude=-40.8442),
            "camaçari": CityCoordinates(latitude=-12.6996, longitude=-38.3263),
            "itabuna": CityCoordinates(latitude=-14.7856, longitude=-39.2803),
            "juazeiro": CityCoordinates(latitude=-9.4117, longitude=-40.5089),
            "lauro de freitas": CityCoordinates(latitude=-12.8978, longitude=-38.3269),
            "ilhéus": CityCoordinates(latitude=-14.7933, longitude=-39.0465),
            "jequié": CityCoordinates(latitude=-13.8511, longitude=-40.0828),
            "teixeira de freitas": CityCoordinates(latitude=-17.5399, longitude=-39.7428),
            "barreiras": CityCoordinates(latitude=-12.1522, longitude=-44.9976),
            "alagoinhas": CityCoordinates(latitude=-12.1353, longitude=-38.4208),
            "porto seguro": CityCoordinates(latitude=-16.4497, longitude=-39.0647),
            "simões filho": CityCoordinates(latitude=-12.7866, longitude=-38.4029),
            "paulo afonso": CityCoordinates(latitude=-9.3983, longitude=-38.2142),
            "eunápolis": CityCoordinates(latitude=-16.3717, longitude=-39.5839),
            "santo antônio de jesus": CityCoordinates(latitude=-12.9683, longitude=-39.2586),
            "valença": CityCoordinates(latitude=-13.3669, longitude=-39.073),
            "candeias": CityCoordinates(latitude=-12.6717, longitude=-38.5472),
            "guanambi": CityCoordinates(latitude=-14.2231, longitude=-42.7799),
        },
        description="Known city coordinates (lowercase keys)",
    )

    fuel_types: dict[str, FuelTypeSpec] = Field(
        default={
            "gasolina": FuelTypeSpec(name="Gasolina Comum", search_term="gasolina comum"),
            "gasolina_aditivada": FuelTypeSpec(
                name="Gasolina Aditivada", search_term="gasolina aditivada"
            ),
            "etanol": FuelTypeSpec(name="Etanol", search_term="etanol"),
            "diesel": FuelTypeSpec(name="Diesel", search_term="diesel"),
            "gnv": FuelTypeSpec(name="GNV", search_term="gnv"),
        },
        min_length=1,
        description="Supported fuel catalogue",
    )
    fuel_type_aliases: dict[str, str] = Field(
        default={
            "common-gasoline": "gasolina",
            "additized-gasoline": "gasolina_aditivada",
            "ethanol": "etanol",
            "compressed-natural-gas": "gnv",
        },
        description="Alternative fuel identifiers accepted on input",
    )

    @field_validator("log_dir", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    @field_validator("portal_base_url", "portal_search_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Ensure portal URLs end with trailing slash for consistent URL joining."""
        return value if value.endswith("/") else f"{value}/"

    @field_validator("default_state")
    @classmethod
    def upper_state(cls, value: str) -> str:
        return value.upper()

    @field_validator("cities", mode="after")
    @classmethod
    def lowercase_city_keys(cls, value: dict[str, CityCoordinates]) -> dict[str, CityCoordinates]:
        """City lookups are case-insensitive; store keys lowercased."""
        return {name.lower(): coords for name, coords in value.items()}

    @model_validator(mode="after")
    def validate_references(self) -> "GlobalConfig":
        """Cross-check fields that reference other tables."""
        if self.default_city not in self.cities:
            raise ValueError(f"default_city '{self.default_city}' is not in cities")
        if self.default_fuel_type not in self.fuel_types:
            raise ValueError(f"default_fuel_type '{self.default_fuel_type}' is not in fuel_types")
        for alias, target in self.fuel_type_aliases.items():
            if target not in self.fuel_types:
                raise ValueError(f"fuel alias '{alias}' points to unknown type '{target}'")
        if self.human_delay_min_ms > self.human_delay_max_ms:
            raise ValueError("human_delay_min_ms must not exceed human_delay_max_ms")
        return self


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Retrieve the singleton GlobalConfig instance.

    Uses LRU cache to ensure single instantiation across the application lifecycle.

    Returns:
        GlobalConfig: The validated configuration instance.
    """
    return GlobalConfig()
