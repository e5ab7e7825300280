from __future__ import annotations

import logging
from urllib.parse import urlparse

from playwright.sync_api import Error as PlaywrightError, Page, Response, TimeoutError as PlaywrightTimeout

from .errors import RateLimited
from .match import choose_entry
from .models import Added, CartRequestItem, Failed, ItemResult, NotFound

log = logging.getLogger(__name__)

# Weee UI changes often; keep selectors broad.
SEARCH_INPUT = 'input[placeholder*="Search"]'
RESULT_ENTRY = '[data-testid*="product-card"]'
ADD_BUTTON = '[data-testid="btn-atc-plus"], [aria-label="add-to-cart"]'
QTY_INCREASE = 'button[aria-label*="increase"]'
PRODUCT_TITLE = '[data-testid="product-title"]'
FALLBACK_TITLE = "h1:visible"
SUBTOTAL = ':text("Subtotal")'

NAV_TIMEOUT_MS = 45_000
SEARCH_TIMEOUT_MS = 15_000
RESULTS_TIMEOUT_MS = 8_000
ADD_TIMEOUT_MS = 5_000
INCREASE_TIMEOUT_MS = 1_000
TITLE_TIMEOUT_MS = 2_000
QTY_SETTLE_MS = 120

# Only the first few cards are worth reading; Weee renders dozens.
MAX_ENTRIES = 20


class ItemResolver:
    """Search → pick → add → bump quantity, for one item at a time.

    Every per-item problem comes back as a NotFound/Failed result. The one
    exception is rate limiting: any 429 the site sends while an item is being
    searched or opened raises RateLimited so the caller can cool down and retry.
    Once the add-to-cart click went through the item is never retried, since
    that would put it in the cart twice.
    """

    def __init__(self, page: Page, *, home_url: str):
        self.page = page
        self.home_url = home_url
        self.site_domain = _site_domain(home_url)
        self._throttled = False
        page.on("response", self._on_response)

    def close(self) -> None:
        self.page.remove_listener("response", self._on_response)

    def _on_response(self, response: Response) -> None:
        # Analytics and ad hosts throttle on their own schedule; ignore them.
        if response.status == 429 and _same_site(response.url, self.site_domain):
            self._throttled = True

    def _checkpoint(self, state: str, query: str) -> None:
        if self._throttled:
            raise RateLimited(f"Weee returned 429 while {state} {query!r}")

    def resolve(self, item: CartRequestItem) -> ItemResult:
        query = item.query
        self._throttled = False
        try:
            return self._resolve(query, item.qty)
        except PlaywrightError as e:
            self._checkpoint("processing", query)
            log.warning("  %s: %s", query, e)
            return Failed(query=query, error=str(e))

    def _resolve(self, query: str, qty: int) -> ItemResult:
        page = self.page

        # ---- SEARCHING ----
        try:
            resp = page.goto(self.home_url, wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
            if resp is not None and resp.status == 429:
                self._throttled = True
            self._checkpoint("searching", query)
            page.wait_for_selector(SEARCH_INPUT, timeout=SEARCH_TIMEOUT_MS)
            page.fill(SEARCH_INPUT, query)
            page.keyboard.press("Enter")
            page.wait_for_load_state("domcontentloaded", timeout=SEARCH_TIMEOUT_MS)
        except PlaywrightTimeout:
            self._checkpoint("searching", query)
            return Failed(query=query, error="search timeout")

        try:
            page.wait_for_selector(RESULT_ENTRY, timeout=RESULTS_TIMEOUT_MS)
        except PlaywrightTimeout:
            # An empty result page never shows a card; counted as zero below.
            log.debug("  no result cards appeared for %r", query)

        # ---- MATCHING ----
        self._checkpoint("matching", query)
        entries = page.locator(RESULT_ENTRY)
        count = min(entries.count(), MAX_ENTRIES)
        texts = [entries.nth(i).inner_text() for i in range(count)]
        idx = choose_entry(query, texts)
        if idx is None:
            return NotFound(query=query, reason="No results")
        log.debug("  picked result %d of %d for %r", idx + 1, count, query)

        # ---- ADDING ----
        entries.nth(idx).click(timeout=ADD_TIMEOUT_MS)
        page.wait_for_load_state("domcontentloaded", timeout=NAV_TIMEOUT_MS)
        self._checkpoint("opening", query)
        try:
            page.locator(ADD_BUTTON).first.click(timeout=ADD_TIMEOUT_MS)
        except PlaywrightError as e:
            self._checkpoint("adding", query)
            log.info("  add control unavailable for %r: %s", query, e)
            return Failed(query=query, error="add control unavailable")

        # ---- ADJUSTING_QTY ----
        achieved = 1
        if qty > 1:
            achieved += self._increase_qty(qty - 1)

        return Added(query=query, title=read_title(page, fallback=query), qty=achieved)

    def _increase_qty(self, times: int) -> int:
        """Click the + control up to *times* times; returns how many landed."""
        plus = self.page.locator(QTY_INCREASE).first
        done = 0
        for _ in range(times):
            try:
                plus.click(timeout=INCREASE_TIMEOUT_MS)
            except PlaywrightError as e:
                log.info("  quantity stopped at %d of %d increments: %s", done, times, e)
                break
            done += 1
            self.page.wait_for_timeout(QTY_SETTLE_MS)
        return done


def _site_domain(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _same_site(url: str, domain: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return bool(domain) and (host == domain or host.endswith("." + domain))


def read_title(page: Page, *, fallback: str) -> str:
    for sel in (PRODUCT_TITLE, FALLBACK_TITLE):
        try:
            text = page.locator(sel).first.text_content(timeout=TITLE_TIMEOUT_MS)
        except PlaywrightError:
            continue
        if text and text.strip():
            return text.strip()
    return fallback


def peek_subtotal(page: Page, cart_url: str) -> str | None:
    """Best-effort read of the cart subtotal line; None when it can't be seen."""
    try:
        page.goto(cart_url, wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
        text = page.locator(SUBTOTAL).first.text_content(timeout=TITLE_TIMEOUT_MS)
    except PlaywrightError as e:
        log.info("Could not read cart subtotal: %s", e)
        return None
    return text.strip() if text else None
