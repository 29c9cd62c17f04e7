"""Selector strategies for locating the portal's controls.

The portal's markup is not contractually stable, so every control is
described by an ordered list of strategies. The cascade tries them in
order; the first one that locates an element wins and the rest are
skipped. A strategy that finds nothing raises SelectorNotFoundError,
which the cascade treats as "try the next one".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from precohora.exceptions import SelectorNotFoundError
from precohora.logger import get_logger

log = get_logger(__name__)


class SelectorStrategy(ABC):
    """One way of locating a control on the page."""

    @property
    @abstractmethod
    def selector(self) -> str:
        """Playwright selector string this strategy evaluates."""
        ...

    async def locate(self, page: Page) -> Locator:
        """Return the first element matched by this strategy.

        Raises:
            SelectorNotFoundError: If nothing on the page matches.
        """
        locator = page.locator(self.selector)
        if await locator.count() == 0:
            raise SelectorNotFoundError(selector=self.selector, url=page.url)
        return locator.first

    def __str__(self) -> str:
        return self.selector


@dataclass(frozen=True)
class CssStrategy(SelectorStrategy):
    """Match by CSS selector, typically an attribute match."""

    css: str

    @property
    def selector(self) -> str:
        return self.css


@dataclass(frozen=True)
class TextStrategy(SelectorStrategy):
    """Match an element of the given tag whose text contains a phrase."""

    tag: str
    text: str

    @property
    def selector(self) -> str:
        escaped = self.text.replace('"', '\\"')
        return f'{self.tag}:has-text("{escaped}")'


@dataclass(frozen=True)
class ClassStrategy(SelectorStrategy):
    """Match by a structural class name."""

    class_name: str

    @property
    def selector(self) -> str:
        return f".{self.class_name}"


async def click_first(
    page: Page,
    strategies: Sequence[SelectorStrategy],
    step: str,
    timeout_ms: int,
) -> SelectorStrategy | None:
    """Click the first control any strategy can locate.

    A strategy whose element is found but cannot be clicked (detached,
    hidden, click timeout) counts as not found.

    Args:
        page: Page to search.
        strategies: Candidates in priority order.
        step: Step name for logging.
        timeout_ms: Click timeout per candidate.

    Returns:
        The strategy that succeeded, or None when all were exhausted.
    """
    for strategy in strategies:
        try:
            element = await strategy.locate(page)
            await element.click(timeout=timeout_ms)
        except SelectorNotFoundError:
            continue
        except PlaywrightError as exc:
            log.debug("Located control not clickable", step=step, selector=str(strategy), error=str(exc))
            continue

        log.info("Control activated", step=step, selector=str(strategy))
        return strategy

    log.warning("No selector strategy matched", step=step, tried=len(strategies))
    return None


def fuel_selector_strategies() -> list[SelectorStrategy]:
    """Candidates for the control opening the fuel category."""
    return [
        CssStrategy(".btn-combustivel"),
        CssStrategy('a[href*="combustivel"]'),
        TextStrategy("button", "Combustível"),
        TextStrategy("a", "Combustível"),
        ClassStrategy("card-combustivel"),
    ]


def fuel_type_strategies(fuel_type: str, search_term: str) -> list[SelectorStrategy]:
    """Candidates for the control selecting one fuel type."""
    return [
        CssStrategy(f'input[value="{fuel_type}"]'),
        CssStrategy(f'input[name="combustivel"][value="{fuel_type}"]'),
        TextStrategy("label", search_term),
        CssStrategy(f'div[data-combustivel="{fuel_type}"]'),
    ]


def submit_strategies() -> list[SelectorStrategy]:
    """Candidates for the control submitting the search."""
    return [
        CssStrategy('button[type="submit"]'),
        CssStrategy('input[type="submit"]'),
        CssStrategy("button.search-button"),
        TextStrategy("button", "Buscar"),
        TextStrategy("a", "Buscar"),
    ]


SEARCH_BOX = CssStrategy('input[type="search"], input[name="termo"]')
