"""Playwright-backed provisioning client.

Drives the third-party site in headless Chromium: open the invite link,
register, sign in, create a project and publish it. One browser is
launched per task session; every attempt gets a fresh browser context so
cookies from a failed attempt never leak into a retry.
"""

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from creditflow.providers.errors import (
    FatalProvisioningError,
    PermanentProvisioningError,
    ProvisioningError,
    TransientProvisioningError,
)
from creditflow.providers.provisioning.base import (
    ProvisioningClient,
    ProvisioningOutcome,
    ProvisioningRequest,
)
from creditflow.providers.retry import is_retryable

logger = logging.getLogger(__name__)

_EMAIL_INPUT = 'input[type="email"], input[name="email"]'
_PASSWORD_INPUT = 'input[type="password"], input[name="password"]'
_PROJECT_NAME_INPUT = (
    'input[type="text"], input[name="name"], input[placeholder*="project" i]'
)
_LOGGED_IN_MARKER = '[data-testid="user-menu"], .user-profile, [aria-label="User menu"]'
_ALERT = '[role="alert"]'

_REGISTER_LABELS = ("register", "sign up", "criar")
_LOGIN_LABELS = ("login", "sign in", "entrar")
_NEW_PROJECT_LABELS = ("new", "create", "novo")
_CONFIRM_PROJECT_LABELS = ("create", "confirm", "criar")
_PUBLISH_LABELS = ("publish", "deploy", "publicar")

_PROJECT_ID_RE = re.compile(r"project/([a-zA-Z0-9]+)")

# Settle time after actions that trigger client-side navigation.
_SETTLE_MS = 2000


def classify_error(error: Exception) -> ProvisioningError:
    """Map a raw automation exception to a tagged provisioning error.

    Args:
        error: Exception raised while driving the page.

    Returns:
        A ProvisioningError carrying the matching ErrorKind.
    """
    if isinstance(error, ProvisioningError):
        return error
    message = str(error) or error.__class__.__name__
    if isinstance(error, PlaywrightTimeoutError):
        return TransientProvisioningError(message)
    if "executable doesn't exist" in message.lower():
        return FatalProvisioningError(message)
    if is_retryable(error):
        return TransientProvisioningError(message)
    return PermanentProvisioningError(message)


class PlaywrightProvisioningClient(ProvisioningClient):
    """Provisioning client driving a real browser.

    Attributes:
        headless: Launch Chromium without a window.
        timeout_ms: Default timeout for every page operation.
    """

    def __init__(self, *, headless: bool = True, timeout_ms: int = 30000) -> None:
        self.headless = headless
        self.timeout_ms = timeout_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator["PlaywrightProvisioningClient"]:
        """Launch Chromium for the duration of one task.

        Raises:
            FatalProvisioningError: If the browser cannot be launched.
        """
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless
            )
        except PlaywrightError as e:
            await self._shutdown()
            raise FatalProvisioningError(f"Browser launch failed: {e}") from e

        try:
            yield self
        finally:
            await self._shutdown()

    async def attempt(self, request: ProvisioningRequest) -> ProvisioningOutcome:
        if self._browser is None:
            raise FatalProvisioningError("attempt() called outside session()")

        context = await self._browser.new_context()
        context.set_default_timeout(self.timeout_ms)
        try:
            page = await context.new_page()
            await self._open_invite(page, request)
            await self._register(page, request)
            await self._login(page, request)
            project_id = await self._create_project(page, request)
            project_url = await self._publish(page)
            return ProvisioningOutcome(
                success=True,
                project_id=project_id,
                project_url=project_url,
            )
        except PlaywrightError as e:
            raise classify_error(e) from e
        finally:
            await context.close()

    # =========================================================================
    # Page steps
    # =========================================================================

    async def _open_invite(self, page: Page, request: ProvisioningRequest) -> None:
        logger.debug(
            "Opening invite link for account %d", request.account_number
        )
        await page.goto(request.invite_link, wait_until="networkidle")

    async def _register(self, page: Page, request: ProvisioningRequest) -> None:
        await page.wait_for_selector(_EMAIL_INPUT)
        await page.locator(_EMAIL_INPUT).first.fill(request.email)
        await page.locator(_PASSWORD_INPUT).first.fill(request.password)
        if not await _click_labelled(page, _REGISTER_LABELS):
            await page.locator("button").first.click()
        await _settle(page)

        alert = page.locator(_ALERT)
        if await alert.count() > 0:
            text = (await alert.first.text_content() or "").strip()
            if text:
                raise PermanentProvisioningError(f"Registration rejected: {text}")

    async def _login(self, page: Page, request: ProvisioningRequest) -> None:
        if await page.locator(_LOGGED_IN_MARKER).count() > 0:
            return
        if await page.locator(_EMAIL_INPUT).count() > 0:
            await page.locator(_EMAIL_INPUT).first.fill(request.email)
        if await page.locator(_PASSWORD_INPUT).count() > 0:
            await page.locator(_PASSWORD_INPUT).first.fill(request.password)
        await _click_labelled(page, _LOGIN_LABELS)
        await _settle(page)

    async def _create_project(
        self, page: Page, request: ProvisioningRequest
    ) -> str | None:
        if not await _click_labelled(page, _NEW_PROJECT_LABELS):
            await page.locator("button").first.click()
        await page.wait_for_timeout(_SETTLE_MS)

        name_input = page.locator(_PROJECT_NAME_INPUT)
        if await name_input.count() > 0:
            await name_input.first.fill(request.project_name)
        await _click_labelled(page, _CONFIRM_PROJECT_LABELS)
        await _settle(page)

        match = _PROJECT_ID_RE.search(page.url)
        return match.group(1) if match else None

    async def _publish(self, page: Page) -> str:
        if not await _click_labelled(page, _PUBLISH_LABELS):
            logger.info("Publish button not found, keeping current URL")
        await page.wait_for_timeout(_SETTLE_MS)
        return page.url

    async def _shutdown(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


async def _click_labelled(page: Page, labels: tuple[str, ...]) -> bool:
    """Click the first button whose text contains any label."""
    buttons = page.locator("button")
    for index in range(await buttons.count()):
        button = buttons.nth(index)
        text = (await button.text_content() or "").lower()
        if any(label in text for label in labels):
            await button.click()
            return True
    return False


async def _settle(page: Page) -> None:
    try:
        await page.wait_for_load_state("networkidle")
    except PlaywrightTimeoutError:
        logger.debug("Page did not reach networkidle, continuing")
    await page.wait_for_timeout(_SETTLE_MS)
