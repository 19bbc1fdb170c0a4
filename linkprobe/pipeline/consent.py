"""Consent banner detection and best-effort acceptance."""

import asyncio
import logging
import re
from collections.abc import Sequence

from playwright.async_api import BrowserContext, Locator, Page
from playwright.async_api import Error as PlaywrightError

from linkprobe.pipeline.browser_session import capture_cookies, capture_screenshot
from linkprobe.pipeline.models.report import ConsentCookie
from linkprobe.pipeline.models.rules import (
    DEFAULT_ACCEPT_SELECTORS,
    DEFAULT_ACCEPT_TEXTS,
    DEFAULT_BANNER_SELECTORS,
    DetectionRules,
)
from linkprobe.pipeline.models.worker_protocol import RawCmpResult, RawCookie

logger = logging.getLogger(__name__)


def visible_locator(page: Page, selector: str) -> Locator:
    """First visible element matching selector, skipping hidden earlier ones."""
    return page.locator(f"{selector} >> visible=true").first


def diff_new_cookies(
    before: Sequence[RawCookie], after: Sequence[RawCookie]
) -> list[ConsentCookie]:
    """Cookies whose name appears only in the after jar, without values."""
    before_names = {cookie.name for cookie in before}
    return [
        ConsentCookie(
            name=cookie.name,
            domain=cookie.domain,
            http_only=cookie.http_only,
            secure=cookie.secure,
        )
        for cookie in after
        if cookie.name not in before_names
    ]


def _accept_text_pattern(texts: Sequence[str]) -> re.Pattern[str] | None:
    if not texts:
        return None
    alternatives = "|".join(re.escape(text) for text in texts)
    return re.compile(rf"^\s*({alternatives})\s*$", re.IGNORECASE)


class ConsentEngine:
    """Detects a consent banner on a page and tries to accept it."""

    def __init__(
        self,
        banner_selectors: Sequence[str] = DEFAULT_BANNER_SELECTORS,
        accept_selectors: Sequence[str] = DEFAULT_ACCEPT_SELECTORS,
        accept_texts: Sequence[str] = DEFAULT_ACCEPT_TEXTS,
        settle_delay: float = 2.0,
        click_timeout: float = 3.0,
    ) -> None:
        """Initialize engine with immutable selector tables."""
        self.banner_selectors = tuple(banner_selectors)
        self.accept_selectors = tuple(accept_selectors)
        self.accept_texts = tuple(accept_texts)
        self.settle_delay = settle_delay
        self.click_timeout = click_timeout
        self._accept_pattern = _accept_text_pattern(self.accept_texts)

    @classmethod
    def from_rules(
        cls, rules: DetectionRules, settle_delay: float = 2.0
    ) -> "ConsentEngine":
        """Create an engine from loaded detection rules."""
        return cls(
            banner_selectors=rules.banner_selectors,
            accept_selectors=rules.accept_selectors,
            accept_texts=rules.accept_texts,
            settle_delay=settle_delay,
        )

    async def find_visible_selector(
        self, page: Page, selectors: Sequence[str]
    ) -> str | None:
        """Return the first selector matching a visible element, if any."""
        for selector in selectors:
            if await self._is_visible(visible_locator(page, selector), selector):
                return selector
        return None

    async def detect_banner(self, page: Page) -> str | None:
        """Return the selector of the visible consent banner, if any."""
        selector = await self.find_visible_selector(page, self.banner_selectors)
        if selector is None:
            logger.info("No consent banner detected")
        else:
            logger.info(f"Consent banner detected: {selector}")
        return selector

    async def click_accept(self, page: Page) -> bool:
        """Click the first visible accept control.

        Known accept selectors are tried before buttons matched by label.

        Returns:
            True if a click was performed

        """
        selector = await self.find_visible_selector(page, self.accept_selectors)
        if selector is not None and await self._click(
            visible_locator(page, selector), selector
        ):
            return True

        if self._accept_pattern is None:
            return False

        button = page.get_by_role("button", name=self._accept_pattern).first
        if await self._is_visible(button, "accept button by label"):
            return await self._click(button, "accept button by label")
        return False

    async def interact(self, page: Page, context: BrowserContext) -> RawCmpResult:
        """Detect, snapshot, accept, snapshot again and diff cookies."""
        selector = await self.detect_banner(page)

        cookies_before = await capture_cookies(context)
        screenshot_before = await capture_screenshot(page)

        accepted = False
        if selector is not None:
            accepted = await self.click_accept(page)
            if accepted:
                logger.info(
                    f"Consent accepted, waiting {self.settle_delay}s for scripts"
                )
                await asyncio.sleep(self.settle_delay)
            else:
                logger.info("No visible accept control found")

        cookies_after = await capture_cookies(context)
        screenshot_after = await capture_screenshot(page)

        return RawCmpResult(
            detected=selector is not None,
            selector=selector,
            accept_attempted=selector is not None,
            consent_accepted=accepted,
            cookies_before=cookies_before,
            cookies_after=cookies_after,
            new_cookies=diff_new_cookies(cookies_before, cookies_after),
            screenshot_before=screenshot_before,
            screenshot_after=screenshot_after,
        )

    async def _is_visible(self, locator: Locator, description: str) -> bool:
        try:
            return await locator.count() > 0 and await locator.is_visible()
        except PlaywrightError as e:
            logger.debug(f"Probe failed for {description}: {e}")
            return False

    async def _click(self, locator: Locator, description: str) -> bool:
        try:
            await locator.click(timeout=self.click_timeout * 1000)
        except PlaywrightError as e:
            logger.info(f"Click failed for {description}: {e}")
            return False
        logger.info(f"Clicked {description}")
        return True
