from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Sequence

from playwright.sync_api import Error as PlaywrightError

from .browser import BrowserConnection, connect, normalize_ws_endpoint
from .config import Config
from .errors import BrowserConnectionError, CartError, RateLimited, SessionError, ValidationError
from .models import (
    BatchComplete,
    BatchEvent,
    BatchPause,
    BatchProgress,
    CartRequestItem,
    Failed,
    ItemResult,
)
from .report import BatchReport, build_report
from .session import initialize_session
from .weee import ItemResolver, peek_subtotal

log = logging.getLogger(__name__)


class CartBatch:
    """Adds one caller request to the cart over a single browser connection.

    Usage::

        batch = CartBatch(cfg)
        for event in batch.run(items):   # streaming
            ...
        report = CartBatch(cfg).add_items(items)   # all at once

    Items go strictly one after another on the shared page. The connection is
    closed exactly once whichever way the run ends, including the consumer
    dropping the event iterator half way.
    """

    def __init__(
        self,
        cfg: Config,
        *,
        peek_cart: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        connector: Callable[..., BrowserConnection] = connect,
    ):
        self.cfg = cfg
        self.peek_cart = peek_cart
        self._sleep = sleep
        self._connect = connector

    def run(self, items: Sequence[CartRequestItem]) -> Iterator[BatchEvent]:
        """Validate now, then return the lazy event stream for the batch."""
        items = list(items)
        if not items:
            raise ValidationError("items[] required")
        return self._run(items)

    def add_items(self, items: Sequence[CartRequestItem]) -> BatchReport:
        results: list[ItemResult] = []
        done: BatchComplete | None = None
        for event in self.run(items):
            if isinstance(event, BatchProgress):
                results.append(event.result)
            elif isinstance(event, BatchComplete):
                done = event
        if done is None:
            raise CartError("Batch ended without a completion record")
        return build_report(results, cookie_applied=done.cookie_applied, subtotal=done.subtotal)

    def _run(self, items: list[CartRequestItem]) -> Iterator[BatchEvent]:
        cfg = self.cfg
        pacing = cfg.pacing
        total = len(items)

        ws = normalize_ws_endpoint(cfg.browserless_ws, token=cfg.browserless_token)
        try:
            conn = self._connect(
                ws,
                attempts=pacing.connect_attempts,
                backoff_s=pacing.connect_backoff_s,
                sleep=self._sleep,
            )
        except PlaywrightError as e:
            raise BrowserConnectionError(f"Could not open a browser page: {e}") from e
        resolver: ItemResolver | None = None
        try:
            try:
                cookie_applied = initialize_session(conn, cfg.session_cookies, home_url=cfg.home_url)
            except RateLimited as e:
                raise BrowserConnectionError(f"Weee rate limited the session check: {e}") from e
            except PlaywrightError as e:
                raise SessionError(f"Could not set up the Weee session: {e}") from e

            resolver = ItemResolver(conn.page, home_url=cfg.home_url)
            log.info("Adding %d items to the cart", total)

            for n, item in enumerate(items, 1):
                log.info("→ [%d/%d] %s (qty %d)", n, total, item.query, item.qty)
                result = self._process(resolver, item)
                log.info("  %s", type(result).__name__)
                yield BatchProgress(processed=n, total=total, query=item.query, result=result)

                if n == total:
                    break
                self._sleep(pacing.item_delay_s)
                if n % pacing.batch_size == 0:
                    log.info("Processed %d/%d; pausing %.0fs", n, total, pacing.batch_pause_s)
                    yield BatchPause(processed=n, total=total, seconds=pacing.batch_pause_s)
                    self._sleep(pacing.batch_pause_s)

            subtotal = peek_subtotal(conn.page, cfg.cart_url) if self.peek_cart else None
            yield BatchComplete(
                status="ok",
                total=total,
                processed=total,
                cookie_applied=cookie_applied,
                subtotal=subtotal,
            )
        finally:
            _release(conn, resolver)

    def _process(self, resolver: ItemResolver, item: CartRequestItem) -> ItemResult:
        try:
            return resolver.resolve(item)
        except RateLimited as e:
            cooldown = self.cfg.pacing.rate_limit_cooldown_s
            log.warning("  rate limited on %r (%s); cooling down %.0fs", item.query, e, cooldown)
            self._sleep(cooldown)

        try:
            return resolver.resolve(item)
        except RateLimited as e:
            log.warning("  still rate limited on %r; giving up on it", item.query)
            return Failed(query=item.query, error=str(e))


def _release(conn: BrowserConnection, resolver: ItemResolver | None) -> None:
    """Close the connection; problems here never replace the run's outcome."""
    try:
        if resolver is not None:
            resolver.close()
    except Exception:
        log.warning("Could not detach page listener", exc_info=True)
    try:
        conn.close()
    except Exception:
        log.warning("Error while closing browser connection (ignored)", exc_info=True)
