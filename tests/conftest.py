"""Pytest configuration and shared fixtures for the test suite.

This module provides hermetic test infrastructure:
- No external network requests (Playwright and ViaCEP are mocked)
- No real waiting (all behavioural delays configured to zero)
- Isolated state (configuration singleton cleared around each test)

The page factory builds a Playwright Page double whose DOM is described
declaratively: which selectors exist, which card payloads successive card
scans return, and what the raw markup looks like.
"""

from pathlib import Path
from typing import Any, Callable, Iterable, Sequence
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from config.settings import GlobalConfig
from precohora.browser import Tab
from precohora.extractor import CARD_SCAN_JS


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GlobalConfig:
    """Provide isolated GlobalConfig with safe test defaults.

    Overrides the lru_cache singleton to prevent state leakage between tests.

    Example:
        def test_something(mock_config: GlobalConfig) -> None:
            assert mock_config.results_settle_ms == 0
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    log_dir.mkdir()

    test_env = {
        "APP_NAME": "PrecoHora-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "HEADLESS": "true",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "PORTAL_BASE_URL": "https://portal.test/",
        "PORTAL_SEARCH_URL": "https://portal.test/produtos/",
        "NAVIGATION_TIMEOUT_MS": "5000",
        "SELECTOR_TIMEOUT_MS": "100",
        "HUMAN_DELAY_MIN_MS": "0",
        "HUMAN_DELAY_MAX_MS": "0",
        "STEP_SETTLE_MS": "0",
        "RESULTS_SETTLE_MS": "0",
        "CACHE_ENABLED": "true",
        "CACHE_TTL_SECONDS": "60",
        "GEOCODING_URL": "https://geo.test/ws/{cep}/json/",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


@pytest.fixture
def card_factory() -> Callable[..., dict[str, Any]]:
    """Factory for raw card payloads as returned by the in-page card scan.

    Example:
        card = card_factory("Posto Ipiranga Centro", price="R$ 5,79")
    """

    def _card(
        name: str | None = "Posto Shell Barra",
        address: str | None = "Av. Oceânica, 100 - Barra, Salvador, BA",
        price: str | None = "R$ 5,89",
        latitude: str | None = None,
        longitude: str | None = None,
    ) -> dict[str, Any]:
        return {
            "name": name,
            "address": address,
            "price_text": price,
            "latitude": latitude,
            "longitude": longitude,
        }

    return _card


@pytest.fixture
def page_factory(mocker: MockerFixture) -> Callable[..., MagicMock]:
    """Factory for Playwright Page doubles.

    Args (of the returned factory):
        present: Selectors that match one element each; all others match none.
        card_scans: Successive return values of the card scan script.
        markup: Value returned by page.content().
        goto_status: HTTP status of every navigation.

    Returns:
        MagicMock Page. Clicked selectors are recorded in ``page.clicked``.
    """

    def _page(
        present: Iterable[str] = (),
        card_scans: Sequence[list[dict[str, Any]]] = ([],),
        markup: str = "<html><body></body></html>",
        goto_status: int = 200,
    ) -> MagicMock:
        present = set(present)
        scans = list(card_scans)

        page = mocker.MagicMock()
        page.url = "https://portal.test/"
        page.clicked = []
        page.filled = []
        page.goto = mocker.AsyncMock(return_value=mocker.MagicMock(status=goto_status))
        page.content = mocker.AsyncMock(return_value=markup)

        def locator(selector: str) -> MagicMock:
            loc = mocker.MagicMock()
            loc.count = mocker.AsyncMock(return_value=1 if selector in present else 0)
            loc.first.click = mocker.AsyncMock(
                side_effect=lambda **kwargs: page.clicked.append(selector)
            )
            loc.first.fill = mocker.AsyncMock(
                side_effect=lambda value, **kwargs: page.filled.append((selector, value))
            )
            return loc

        async def evaluate(script: str, arg: Any = None) -> Any:
            if script == CARD_SCAN_JS:
                return scans.pop(0) if len(scans) > 1 else scans[0]
            return "fields"

        page.locator = mocker.MagicMock(side_effect=locator)
        page.evaluate = mocker.AsyncMock(side_effect=evaluate)
        return page

    return _page


@pytest.fixture
def tab_factory(mock_config: GlobalConfig, mocker: MockerFixture) -> Callable[[MagicMock], Tab]:
    """Wrap a Page double into a real Tab with a mocked context."""

    def _tab(page: MagicMock) -> Tab:
        context = mocker.MagicMock()
        context.close = mocker.AsyncMock()
        return Tab(context, page, "Mozilla/5.0 (Test)", mock_config)

    return _tab


# Pytest configuration
def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring full stack",
    )
