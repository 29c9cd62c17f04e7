"""Navigation and extraction engine for precodahora.ba.gov.br.

Drives one tab from the portal's landing page to a rendered results page
and reads station records off it. Every step that depends on markup has
an ordered list of strategies and a soft fallback:

    Landing -> humanization -> open fuel selector -> select fuel type
    -> fill coordinates/radius -> submit -> await results -> extract

The last rung of the submit step navigates straight to the results URL,
bypassing every markup assumption. When extraction finds no station
cards, the engine searches again with the generic "posto" term and,
failing that, scans the raw page markup for prices.

Only navigation failures propagate (as NavigationError). Selector misses
and empty results advance the ladder instead.
"""

import asyncio
import random
from typing import Any
from urllib.parse import urlencode

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from config.settings import GlobalConfig, get_config
from precohora.browser import Tab
from precohora.exceptions import EmptyResultError, SelectorNotFoundError
from precohora.extractor import CARD_SCAN_JS, parse_cards, scan_raw_markup
from precohora.logger import get_logger
from precohora.models import FuelStationRecord, SearchQuery
from precohora.strategies import (
    SEARCH_BOX,
    click_first,
    fuel_selector_strategies,
    fuel_type_strategies,
    submit_strategies,
)

log = get_logger(__name__)

GENERIC_SEARCH_TERM = "posto"

FILL_COORDINATES_JS = """
({ lat, lng }) => {
    const latField = document.querySelector('input[name="latitude"]');
    const lngField = document.querySelector('input[name="longitude"]');
    if (latField && lngField) {
        latField.value = lat;
        lngField.value = lng;
        return 'fields';
    }
    window.latitude = lat;
    window.longitude = lng;
    return 'globals';
}
"""

FILL_RADIUS_JS = """
(radius) => {
    const radiusField = document.querySelector('input[name="raio"]');
    if (radiusField) {
        radiusField.value = radius;
        return 'fields';
    }
    window.raio = radius;
    return 'globals';
}
"""


def build_search_url(search_url: str, search_term: str, query: SearchQuery) -> str:
    """Results URL for a search, sorted by price ascending."""
    params = {
        "termo": search_term,
        "latitude": query.latitude,
        "longitude": query.longitude,
        "raio": query.radius_km,
        "ordem": "preco",
        "tipo_ordem": "ASC",
    }
    return f"{search_url}?{urlencode(params)}"


class ExtractionEngine:
    """Runs the portal flow on a borrowed tab.

    The engine holds no per-request state; one instance can serve any
    number of interleaved requests, each with its own tab.

    Attributes:
        config: GlobalConfig with portal URLs, timings and extraction settings.

    Example:
        engine = ExtractionEngine(config)
        stations = await engine.extract(tab, query)
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()

    async def extract(self, tab: Tab, query: SearchQuery) -> tuple[FuelStationRecord, ...]:
        """Drive the portal and return stations sorted by price.

        Args:
            tab: Tab owned by the calling request.
            query: What to search for.

        Returns:
            Station records, cheapest first. Possibly empty.

        Raises:
            NavigationError: If any navigation fails.
        """
        log.info(
            "Starting extraction",
            latitude=query.latitude,
            longitude=query.longitude,
            fuel_type=query.fuel_type,
            radius_km=query.radius_km,
        )
        page = tab.page

        await tab.navigate(self.config.portal_base_url, wait_until="networkidle")
        await self._humanize(page)

        await self._open_fuel_selector(tab)
        await self._select_fuel_type(page, query)
        await self._fill_search_parameters(page, query)
        await self._submit_search(tab, query)

        await self._settle(self.config.results_settle_ms)

        try:
            return await self._extract_cards(page, query)
        except EmptyResultError as exc:
            log.warning("No stations found, trying generic search", search_term=exc.search_term)

        return await self._fallback_extract(tab, query)

    async def _humanize(self, page: Page) -> None:
        """Random scroll and pause."""
        scroll = random.randint(0, self.config.human_scroll_max_px)
        try:
            await page.evaluate("(amount) => window.scrollBy(0, amount)", scroll)
        except PlaywrightError as exc:
            log.debug("Scroll failed", error=str(exc))

        delay_ms = random.randint(self.config.human_delay_min_ms, self.config.human_delay_max_ms)
        await asyncio.sleep(delay_ms / 1000)

    async def _settle(self, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)

    async def _open_fuel_selector(self, tab: Tab) -> None:
        found = await click_first(
            tab.page,
            fuel_selector_strategies(),
            step="open_fuel_selector",
            timeout_ms=self.config.selector_timeout_ms,
        )
        if found is None:
            log.warning("Fuel selector not found, going to search page directly")
            await tab.navigate(self.config.portal_search_url, wait_until="networkidle")

        await self._settle(self.config.step_settle_ms)

    async def _select_fuel_type(self, page: Page, query: SearchQuery) -> None:
        found = await click_first(
            page,
            fuel_type_strategies(query.fuel_type, query.search_term),
            step="select_fuel_type",
            timeout_ms=self.config.selector_timeout_ms,
        )
        if found is not None:
            return

        log.warning("Fuel type control not found, typing search term", fuel_type=query.fuel_type)
        try:
            search_box = await SEARCH_BOX.locate(page)
            await search_box.fill(query.search_term, timeout=self.config.selector_timeout_ms)
        except SelectorNotFoundError:
            log.warning("No search box available", selector=str(SEARCH_BOX))
        except PlaywrightError as exc:
            log.warning("Search box not fillable", error=str(exc))

    async def _fill_search_parameters(self, page: Page, query: SearchQuery) -> None:
        """Inject coordinates and radius into the form or the page's globals."""
        try:
            target = await page.evaluate(
                FILL_COORDINATES_JS, {"lat": query.latitude, "lng": query.longitude}
            )
            log.debug("Coordinates set", target=target)

            target = await page.evaluate(FILL_RADIUS_JS, query.radius_km)
            log.debug("Radius set", target=target, radius_km=query.radius_km)
        except PlaywrightError as exc:
            log.warning("Could not set search parameters in page", error=str(exc))

    async def _submit_search(self, tab: Tab, query: SearchQuery) -> None:
        found = await click_first(
            tab.page,
            submit_strategies(),
            step="submit_search",
            timeout_ms=self.config.selector_timeout_ms,
        )
        if found is not None:
            return

        log.warning("Submit control not found, navigating to results URL")
        url = build_search_url(self.config.portal_search_url, query.search_term, query)
        await tab.navigate(url, wait_until="networkidle")

    async def _scan_cards(self, page: Page) -> list[dict[str, Any]]:
        try:
            payloads = await page.evaluate(CARD_SCAN_JS, self.config.css_selector_station_card)
        except PlaywrightError as exc:
            log.warning("Card scan failed", error=str(exc))
            return []
        return payloads or []

    async def _extract_cards(
        self, page: Page, query: SearchQuery, search_term: str | None = None
    ) -> tuple[FuelStationRecord, ...]:
        """Structured extraction from the rendered result cards.

        Raises:
            EmptyResultError: If no card qualifies as a fuel station.
        """
        payloads = await self._scan_cards(page)
        records = parse_cards(
            payloads,
            fuel_type=query.fuel_type,
            keywords=self.config.station_keywords,
            default_state=self.config.default_state,
        )

        log.info("Structured extraction complete", cards=len(payloads), stations=len(records))

        if not records:
            raise EmptyResultError(
                selector=self.config.css_selector_station_card,
                url=page.url,
                search_term=search_term or query.search_term,
            )
        return records

    async def _fallback_extract(self, tab: Tab, query: SearchQuery) -> tuple[FuelStationRecord, ...]:
        """Generic-term search, then raw markup scan.

        Raises:
            NavigationError: If the generic search cannot be loaded.
        """
        url = build_search_url(self.config.portal_search_url, GENERIC_SEARCH_TERM, query)
        await tab.navigate(url, wait_until="networkidle")
        await self._settle(self.config.results_settle_ms)

        try:
            return await self._extract_cards(tab.page, query, search_term=GENERIC_SEARCH_TERM)
        except EmptyResultError:
            log.warning("Generic search found no stations, scanning raw markup")

        try:
            markup = await tab.page.content()
        except PlaywrightError as exc:
            log.warning("Page content unavailable", error=str(exc))
            return ()

        return scan_raw_markup(
            markup,
            fuel_type=query.fuel_type,
            city=self.config.fallback_city,
            state=self.config.default_state,
        )
