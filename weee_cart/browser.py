from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable
from urllib.parse import urlparse

from playwright.sync_api import Browser, BrowserContext, Error as PlaywrightError, Page, sync_playwright

from .errors import BrowserConnectionError, RateLimited

log = logging.getLogger(__name__)

# Stable across runs; do not randomize.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_4) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121 Safari/537.36"
)

CONNECT_TIMEOUT_MS = 30_000

# Playwright only reports the websocket handshake status inside the error text,
# e.g. "WebSocket error: ... 429 Too Many Requests".
_HANDSHAKE_429_RE = re.compile(r"\b429\b|too many requests", re.IGNORECASE)


def normalize_ws_endpoint(url: str, *, token: str | None = None) -> str:
    """Turn a configured Browserless address into a connectable websocket URL.

    Accepts any of:
    - ws://host:port
    - http(s)://host:port            (scheme rewritten to ws/wss)
    - wss://host/playwright?token=.. (legacy path suffix dropped)

    A token is appended only when one is given and the URL has none yet.
    """
    base = url.strip()
    if base.startswith("http://"):
        base = "ws://" + base.removeprefix("http://")
    if base.startswith("https://"):
        base = "wss://" + base.removeprefix("https://")

    base = re.sub(r"/playwright(\?|$)", r"\1", base)

    if not token or "token=" in base:
        return base
    if "?" in base:
        return base + "&token=" + token
    return base + "?token=" + token


def classify_connect_error(exc: BaseException) -> RateLimited | None:
    """Map a failed connect into a RateLimited signal, or None for anything else."""
    if isinstance(exc, RateLimited):
        return exc
    if _HANDSHAKE_429_RE.search(str(exc)):
        return RateLimited(f"Browserless refused the connection: {exc}", status=429)
    return None


class BrowserConnection:
    """One remote browser, its context and the page used for a whole batch.

    Usage::

        with connect(ws) as conn:
            conn.page.goto(...)

    ``close`` is safe to call more than once; only the first call does work.
    """

    def __init__(self, pw: Any, browser: Browser, context: BrowserContext, page: Page):
        self._pw = pw
        self.browser = browser
        self.context = context
        self.page = page
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        _shutdown(self.browser, self._pw)

    def __enter__(self) -> "BrowserConnection":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def connect(
    ws_endpoint: str,
    *,
    attempts: int = 3,
    backoff_s: float = 0.5,
    user_agent: str = DEFAULT_USER_AGENT,
    sleep: Callable[[float], None] = time.sleep,
    playwright_factory: Callable[[], Any] = sync_playwright,
) -> BrowserConnection:
    """Open a Browserless session and a fresh context/page in it.

    Raises BrowserConnectionError when every attempt failed, or at once when a
    failure is not rate limiting.
    """
    ws = normalize_ws_endpoint(ws_endpoint)
    pw = playwright_factory().start()
    browser = None
    try:
        browser = _open_browser(pw.chromium, ws, attempts=attempts, backoff_s=backoff_s, sleep=sleep)
        context = browser.new_context(user_agent=user_agent)
        page = context.new_page()
    except BaseException:
        _shutdown(browser, pw)
        raise
    log.info("Connected to Browserless at %s", urlparse(ws).netloc)
    return BrowserConnection(pw, browser, context, page)


def _open_browser(chromium: Any, ws: str, *, attempts: int, backoff_s: float, sleep: Callable[[float], None]) -> Browser:
    last_err: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            return chromium.connect(ws, timeout=CONNECT_TIMEOUT_MS)
        except PlaywrightError as primary:
            log.debug("Playwright protocol connect failed (%s); trying CDP", primary)
            try:
                return chromium.connect_over_cdp(ws, timeout=CONNECT_TIMEOUT_MS)
            except PlaywrightError as fallback:
                last_err = fallback
                limited = classify_connect_error(primary) or classify_connect_error(fallback)
                if limited is None:
                    raise BrowserConnectionError(f"Could not connect to Browserless: {fallback}") from fallback

        if attempt < attempts:
            delay = backoff_s * attempt
            log.warning("Browserless rate limited (attempt %d/%d); retrying in %.1fs", attempt, attempts, delay)
            sleep(delay)

    raise BrowserConnectionError(
        f"Browserless still rate limited after {attempts} attempts: {last_err}"
    ) from last_err


def _shutdown(browser: Any, pw: Any) -> None:
    try:
        if browser is not None:
            browser.close()
    finally:
        if pw is not None:
            pw.stop()


def health_check(ws_endpoint: str, **connect_kwargs: Any) -> dict[str, Any]:
    """Connect, load about:blank and disconnect; no cart is touched."""
    ws = normalize_ws_endpoint(ws_endpoint)
    connect_kwargs.setdefault("attempts", 1)
    try:
        with connect(ws, **connect_kwargs) as conn:
            conn.page.goto("about:blank")
    except (BrowserConnectionError, PlaywrightError) as e:
        return {"ok": False, "error": str(e)}
    return {"ok": True, "ws_host": urlparse(ws).netloc}
