from __future__ import annotations

import logging
import re
from typing import Any

from playwright.sync_api import BrowserContext, Page

from .errors import RateLimited, SessionExpiredError

log = logging.getLogger(__name__)

SAME_SITE_VALUES = ("Strict", "Lax", "None")

_LOGIN_URL_RE = re.compile(r"login|signin|sign-in", re.IGNORECASE)

NAV_TIMEOUT_MS = 45_000


def normalize_cookies(cookies: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Copy a cookie export, forcing sameSite into a value Playwright accepts.

    Browser extensions export "lax", "no_restriction", "unspecified" and the
    like. Only an exact Strict/Lax/None survives; everything else, lowercase
    spellings included, becomes Lax.
    """
    out: list[dict[str, Any]] = []
    for c in cookies:
        cookie = dict(c)
        if cookie.get("sameSite") not in SAME_SITE_VALUES:
            cookie["sameSite"] = "Lax"
        out.append(cookie)
    return out


def apply_session_cookies(context: BrowserContext, cookies: list[dict[str, Any]] | None) -> bool:
    """Install the stored login cookies. Returns True when any were installed."""
    if not cookies:
        log.info("No stored session cookie configured; continuing unauthenticated")
        return False
    # One call so the context never holds half of the set.
    context.add_cookies(normalize_cookies(cookies))
    log.info("Applied %d session cookies", len(cookies))
    return True


def ensure_logged_in(page: Page, home_url: str) -> None:
    """Open the home page and fail if the site bounced us to a login screen."""
    resp = page.goto(home_url, wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
    if resp is not None and resp.status == 429:
        raise RateLimited(f"Weee returned 429 for {home_url}")
    url = page.url or ""
    if _LOGIN_URL_RE.search(url):
        raise SessionExpiredError(url)


def initialize_session(conn: Any, cookies: list[dict[str, Any]] | None, *, home_url: str) -> bool:
    """Cookie injection followed by the one login check a batch gets."""
    applied = apply_session_cookies(conn.context, cookies)
    ensure_logged_in(conn.page, home_url)
    return applied
