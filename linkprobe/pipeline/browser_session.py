"""Scoped acquisition of an isolated Chromium session."""

import base64
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass

from playwright.async_api import BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from linkprobe.pipeline.models.config import BrowserConfig
from linkprobe.pipeline.models.worker_protocol import RawCookie

logger = logging.getLogger(__name__)


@dataclass
class BrowserSession:
    """Browsing context and page owned by a single run."""

    context: BrowserContext
    page: Page


SessionFactory = Callable[[BrowserConfig], AbstractAsyncContextManager[BrowserSession]]


@asynccontextmanager
async def open_browser_session(config: BrowserConfig) -> AsyncIterator[BrowserSession]:
    """Launch a fresh browser, context and page, releasing all three on exit.

    Release happens on every exit path, including cancellation by a timeout.
    Sessions share nothing, so concurrent runs each call this separately.
    """
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(
            headless=config.headless, args=config.launch_args
        )
        try:
            context = await browser.new_context(
                viewport={
                    "width": config.viewport_width,
                    "height": config.viewport_height,
                },
                user_agent=config.user_agent,
            )
            try:
                page = await context.new_page()
                try:
                    yield BrowserSession(context=context, page=page)
                finally:
                    await _release(page.close, "page")
            finally:
                await _release(context.close, "context")
        finally:
            await _release(browser.close, "browser")


async def _release(close: Callable[[], Awaitable[None]], resource: str) -> None:
    """Close a browser resource, logging instead of masking the original error."""
    try:
        await close()
    except PlaywrightError as e:
        logger.warning(f"Failed to close browser {resource}: {e}")


async def capture_cookies(context: BrowserContext) -> list[RawCookie]:
    """Snapshot the full cookie jar of the browsing context."""
    cookies = await context.cookies()
    return [RawCookie.model_validate(cookie) for cookie in cookies]


async def capture_screenshot(page: Page) -> str:
    """Capture the current viewport as a base64 PNG."""
    data = await page.screenshot(type="png", full_page=False)
    return base64.b64encode(data).decode("ascii")
