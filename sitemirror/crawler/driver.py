"""
Page driver capability: navigation, extraction and login through a headless browser.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .errors import AuthenticationError, NavigationError
from .parser import filter_links


@dataclass
class RenderedPage:
    """Handle to a page after navigation."""
    url: str
    final_url: str
    status_code: Optional[int] = None
    handle: Any = None


@dataclass
class FormField:
    type: str
    name: Optional[str] = None
    id: Optional[str] = None
    css_class: Optional[str] = None


@dataclass
class InteractiveElement:
    """Button, form or modal found on a page."""
    type: str
    id: Optional[str] = None
    css_class: Optional[str] = None
    text: Optional[str] = None
    href: Optional[str] = None
    action: Optional[str] = None
    method: Optional[str] = None
    content: Optional[str] = None
    fields: List[FormField] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InteractiveElement':
        fields = [FormField(**f) for f in data.get('fields') or []]
        return cls(
            type=data['type'],
            id=data.get('id') or None,
            css_class=data.get('css_class') or None,
            text=data.get('text') or None,
            href=data.get('href') or None,
            action=data.get('action') or None,
            method=data.get('method') or None,
            content=data.get('content') or None,
            fields=fields
        )


@dataclass
class LoginCredentials:
    """Form login performed once before crawling."""
    login_url: str
    username: str
    password: str
    username_selector: str = 'input[name="username"]'
    password_selector: str = 'input[name="password"]'
    submit_selector: str = 'button[type="submit"]'


@dataclass
class ProxySettings:
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def server(self) -> str:
        return f"http://{self.host}:{self.port}"


class PageDriver:
    """
    Abstract browser capability consumed by the crawler core.
    Implementations are async context managers; release() must be idempotent.
    """

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()

    async def start(self):
        raise NotImplementedError

    async def navigate(self, url: str) -> RenderedPage:
        raise NotImplementedError

    async def dismiss_overlays(self, page: RenderedPage):
        raise NotImplementedError

    async def extract_content(self, page: RenderedPage) -> str:
        raise NotImplementedError

    async def extract_resources(self, page: RenderedPage) -> List[str]:
        raise NotImplementedError

    async def extract_links(self, page: RenderedPage) -> List[str]:
        raise NotImplementedError

    async def extract_interactive_elements(self, page: RenderedPage) -> List[InteractiveElement]:
        return []

    async def authenticate(self, credentials: LoginCredentials):
        raise NotImplementedError

    async def release(self):
        raise NotImplementedError


OVERLAY_CLOSE_SELECTORS = '.close, .dismiss, .modal-close, .popup-close, .btn-close'

_DISMISS_OVERLAYS_JS = """(selectors) => {
    document.querySelectorAll(selectors).forEach(button => button.click());
}"""

_RESOURCES_JS = """() => {
    const urls = [];
    document.querySelectorAll('img, script, link').forEach(el => {
        if (el.src) urls.push(el.src);
        if (el.href) urls.push(el.href);
    });
    return urls;
}"""

_LINKS_JS = """() => Array.from(document.querySelectorAll('a'))
    .map(anchor => anchor.href)
    .filter(href => href.startsWith('http'))"""

_INTERACTIVE_JS = """() => {
    const elements = [];
    document.querySelectorAll('button, input[type="button"], a.btn').forEach(el => {
        elements.push({type: 'button', text: el.innerText || el.value, id: el.id,
                       css_class: el.className, href: el.href});
    });
    document.querySelectorAll('form').forEach(form => {
        const fields = [];
        form.querySelectorAll('input, select, textarea').forEach(f => {
            fields.push({type: f.type || f.tagName.toLowerCase(), name: f.name,
                         id: f.id, css_class: f.className});
        });
        elements.push({type: 'form', id: form.id, css_class: form.className,
                       action: form.action, method: form.method, fields: fields});
    });
    document.querySelectorAll('.modal, .popup, [class*="modal"], [class*="popup"]').forEach(el => {
        elements.push({type: 'modal', id: el.id, css_class: String(el.className),
                       content: el.innerHTML});
    });
    return elements;
}"""


class PlaywrightPageDriver(PageDriver):
    """
    Chromium driver reusing a single page for every URL of a session.
    """

    def __init__(self, user_agent: str, headless: bool = True,
                 navigation_timeout: float = 60.0, profile_path: Optional[str] = None,
                 proxy: Optional[ProxySettings] = None,
                 viewport: Optional[Dict[str, int]] = None,
                 overlay_pause: float = 1.0, keystroke_delay: int = 100):
        self.user_agent = user_agent
        self.headless = headless
        self.navigation_timeout = navigation_timeout
        self.profile_path = profile_path
        self.proxy = proxy
        self.viewport = viewport or {'width': 1280, 'height': 800}
        self.overlay_pause = overlay_pause
        self.keystroke_delay = keystroke_delay

        self.logger = logging.getLogger(__name__)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def _timeout_ms(self) -> float:
        return self.navigation_timeout * 1000

    def _proxy_options(self) -> Optional[Dict[str, str]]:
        if not self.proxy:
            return None
        options = {'server': self.proxy.server}
        if self.proxy.username and self.proxy.password:
            options['username'] = self.proxy.username
            options['password'] = self.proxy.password
        return options

    async def start(self):
        """Launch the browser and open the page reused for the whole session."""
        if self._page is not None:
            return

        self._playwright = await async_playwright().start()
        launch_args = ['--no-sandbox', '--disable-dev-shm-usage', '--disable-gpu']
        context_options = {
            'user_agent': self.user_agent,
            'viewport': self.viewport,
            'ignore_https_errors': True
        }

        try:
            if self.profile_path:
                self._context = await self._playwright.chromium.launch_persistent_context(
                    self.profile_path,
                    headless=self.headless,
                    args=launch_args,
                    proxy=self._proxy_options(),
                    **context_options
                )
            else:
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=launch_args,
                    proxy=self._proxy_options()
                )
                self._context = await self._browser.new_context(**context_options)

            self._page = await self._context.new_page()
            self._page.set_default_timeout(self._timeout_ms)
            self.logger.info("Browser launched successfully")

        except Exception:
            await self.release()
            raise

    async def navigate(self, url: str) -> RenderedPage:
        """Go to URL and wait until the network is idle."""
        if self._page is None:
            raise NavigationError(url, "Driver not started")
        try:
            response = await self._page.goto(
                url, wait_until='networkidle', timeout=self._timeout_ms
            )
        except PlaywrightError as e:
            raise NavigationError(url, f"Navigation to {url} failed: {e}") from e

        return RenderedPage(
            url=url,
            final_url=self._page.url,
            status_code=response.status if response else None,
            handle=self._page
        )

    async def dismiss_overlays(self, page: RenderedPage):
        try:
            await page.handle.evaluate(_DISMISS_OVERLAYS_JS, OVERLAY_CLOSE_SELECTORS)
            await asyncio.sleep(self.overlay_pause)
        except Exception as e:
            self.logger.warning(f"Error closing pop-ups on {page.url}: {e}")

    async def extract_content(self, page: RenderedPage) -> str:
        return await page.handle.content()

    async def extract_resources(self, page: RenderedPage) -> List[str]:
        try:
            return list(await page.handle.evaluate(_RESOURCES_JS))
        except Exception as e:
            self.logger.error(f"Error collecting page resources for {page.url}: {e}")
            return []

    async def extract_links(self, page: RenderedPage) -> List[str]:
        try:
            return filter_links(await page.handle.evaluate(_LINKS_JS))
        except Exception as e:
            self.logger.error(f"Error collecting page links for {page.url}: {e}")
            return []

    async def extract_interactive_elements(self, page: RenderedPage) -> List[InteractiveElement]:
        raw_elements = await page.handle.evaluate(_INTERACTIVE_JS)
        return [InteractiveElement.from_dict(item) for item in raw_elements]

    async def authenticate(self, credentials: LoginCredentials):
        """Fill and submit the login form."""
        if self._page is None:
            raise AuthenticationError("Driver not started")
        page = self._page
        try:
            await page.goto(credentials.login_url, wait_until='networkidle',
                            timeout=self._timeout_ms)
            await page.locator(credentials.username_selector).press_sequentially(
                credentials.username, delay=self.keystroke_delay
            )
            await page.locator(credentials.password_selector).press_sequentially(
                credentials.password, delay=self.keystroke_delay
            )
            async with page.expect_navigation(wait_until='networkidle',
                                              timeout=self._timeout_ms):
                await page.click(credentials.submit_selector)
        except PlaywrightError as e:
            raise AuthenticationError(f"Login at {credentials.login_url} failed: {e}") from e

        self.logger.info(f"Logged in at {credentials.login_url}")

    async def release(self):
        """Close page, context, browser and Playwright. Safe to call twice."""
        for name in ('_page', '_context', '_browser'):
            resource = getattr(self, name)
            setattr(self, name, None)
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                self.logger.error(f"Error closing browser {name.strip('_')}: {e}")

        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            try:
                await playwright.stop()
            except Exception as e:
                self.logger.error(f"Error stopping Playwright: {e}")
            self.logger.info("Browser closed")
