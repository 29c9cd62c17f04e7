"""Browser session ownership and per-request tab provisioning.

One Playwright browser serves the whole process. Requests never share a
page: each borrows a Tab (a fresh browser context plus page) configured with
- a user-agent drawn from the configured rotation pool
- a randomized desktop viewport and stealth init script
- a navigation timeout ceiling
- a request filter aborting images, fonts and media

The SessionManager is the only component that launches or closes the
browser. Tabs are handed to the caller, who must close them.
"""

import asyncio
import random
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator, Self

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Route,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config.settings import GlobalConfig, get_config
from precohora.exceptions import BrowserInitializationError, NavigationError
from precohora.logger import get_logger

log = get_logger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]

STEALTH_JS = """
// Override navigator.webdriver
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined,
});

// Override navigator.plugins to appear non-empty
Object.defineProperty(navigator, 'plugins', {
    get: () => [1, 2, 3, 4, 5],
});

Object.defineProperty(navigator, 'languages', {
    get: () => ['pt-BR', 'pt', 'en-US'],
});

window.chrome = {
    runtime: {},
};
"""


def should_block_request(resource_type: str, blocked: frozenset[str] | set[str]) -> bool:
    """Decide whether an outgoing request is aborted.

    Args:
        resource_type: Playwright resource type of the request.
        blocked: Resource types that are never loaded.

    Returns:
        True if the request must be aborted.
    """
    return resource_type in blocked


class Tab:
    """A browser context and page exclusively owned by one request.

    Attributes:
        page: Playwright Page to drive.
        user_agent: Identity string this tab presents.
    """

    def __init__(self, context: BrowserContext, page: Page, user_agent: str, config: GlobalConfig) -> None:
        self._context = context
        self.page = page
        self.user_agent = user_agent
        self.config = config
        self._closed = False

    async def navigate(self, url: str, wait_until: str = "networkidle") -> None:
        """Navigate to URL with error translation.

        Args:
            url: Target URL to navigate to.
            wait_until: Navigation wait condition (load, domcontentloaded, networkidle).

        Raises:
            NavigationError: If navigation fails, times out, or returns HTTP >= 400.
        """
        log.debug("Navigating to URL", url=url, wait_until=wait_until)

        try:
            response = await self.page.goto(url, wait_until=wait_until)
        except (PlaywrightTimeoutError, TimeoutError) as exc:
            raise NavigationError(
                url=url,
                reason=f"Navigation timeout after {self.config.navigation_timeout_ms}ms",
            ) from exc
        except Exception as exc:
            raise NavigationError(url=url, reason=str(exc)) from exc

        if response is None:
            raise NavigationError(url=url, reason="No response received")

        if response.status >= 400:
            raise NavigationError(
                url=url,
                reason=f"HTTP {response.status}",
                status_code=response.status,
            )

        log.info("Navigation successful", url=url, status_code=response.status)

    async def close(self) -> None:
        """Close the tab's context (and with it the page). Safe to repeat."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._context.close()
        except Exception as exc:
            log.warning("Error closing tab", error=str(exc))
        else:
            log.debug("Tab closed")

    @property
    def closed(self) -> bool:
        return self._closed


class SessionManager:
    """Owns the process-wide browser and hands out isolated tabs.

    Initialization is lazy and race-guarded: concurrent first callers all
    await the same pending launch, so at most one browser is ever started.

    Attributes:
        config: GlobalConfig instance for runtime configuration.

    Example:
        session = SessionManager(config)
        tab = await session.acquire_tab()
        try:
            await tab.navigate(config.portal_base_url)
        finally:
            await tab.close()
        await session.shutdown()
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._launch_task: asyncio.Task[Browser] | None = None
        self._blocked_types = frozenset(self.config.blocked_resource_types)

    @classmethod
    @asynccontextmanager
    async def create(cls, config: GlobalConfig | None = None) -> AsyncGenerator[Self, None]:
        """Yield an initialized SessionManager and shut it down on exit.

        Raises:
            BrowserInitializationError: If browser launch fails.
        """
        instance = cls(config)
        try:
            await instance.initialize()
            yield instance
        finally:
            await instance.shutdown()

    async def initialize(self) -> Browser:
        """Return the live browser, launching it on first use.

        Returns:
            The shared Browser instance.

        Raises:
            BrowserInitializationError: If the launch fails. State is reset,
                so a later call attempts a fresh launch.
        """
        if self._browser is not None:
            return self._browser

        if self._launch_task is None:
            self._launch_task = asyncio.ensure_future(self._launch())

        # Shielded so one cancelled caller does not abort the shared launch.
        return await asyncio.shield(self._launch_task)

    async def _launch(self) -> Browser:
        log.info("Launching browser", headless=self.config.headless)

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=LAUNCH_ARGS,
            )
        except Exception as exc:
            log.error("Browser launch failed", error=str(exc))
            await self._release()
            raise BrowserInitializationError(reason=str(exc), browser_type="chromium") from exc
        finally:
            self._launch_task = None

        log.info("Browser launched successfully")
        return self._browser

    def _select_user_agent(self) -> str:
        return random.choice(self.config.user_agents)

    async def acquire_tab(self) -> Tab:
        """Open a new hardened tab.

        The returned tab is not tracked; the caller must close it on every
        exit path.

        Returns:
            Tab ready for navigation.

        Raises:
            BrowserInitializationError: If the browser cannot be launched.
        """
        browser = await self.initialize()
        user_agent = self._select_user_agent()

        context = await browser.new_context(
            user_agent=user_agent,
            viewport={
                "width": random.randint(1280, 1920),
                "height": random.randint(720, 1080),
            },
            locale="pt-BR",
            timezone_id="America/Bahia",
            java_script_enabled=True,
        )

        try:
            await context.add_init_script(STEALTH_JS)
            page = await context.new_page()
            page.set_default_navigation_timeout(self.config.navigation_timeout_ms)
            await page.route("**/*", self._filter_request)
        except Exception:
            await context.close()
            raise

        log.debug("Tab opened", user_agent=user_agent[:50] + "...")
        return Tab(context, page, user_agent, self.config)

    async def _filter_request(self, route: Route) -> None:
        if should_block_request(route.request.resource_type, self._blocked_types):
            await route.abort()
        else:
            await route.continue_()

    async def shutdown(self) -> None:
        """Close the browser if one is running. Idempotent."""
        if self._launch_task is not None:
            with suppress(BrowserInitializationError):
                await asyncio.shield(self._launch_task)

        if self._browser is None and self._playwright is None:
            return

        log.info("Shutting down browser")
        await self._release()

    async def _release(self) -> None:
        """Clean up browser resources in reverse initialization order."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:
                log.warning("Error closing browser", error=str(exc))
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                log.warning("Error stopping playwright", error=str(exc))
            self._playwright = None

    @property
    def is_initialized(self) -> bool:
        return self._browser is not None
