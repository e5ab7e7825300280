"""Hand-rolled stand-ins for the slice of the Playwright sync API we drive."""

from __future__ import annotations

from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from weee_cart import weee


class FakeResponse:
    def __init__(self, status: int = 200, url: str = "https://www.sayweee.com/en"):
        self.status = status
        self.url = url


class FakeKeyboard:
    def __init__(self, page: "FakePage"):
        self.page = page

    def press(self, key: str) -> None:
        self.page.pressed.append(key)


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str, index: int = 0):
        self.page = page
        self.selector = selector
        self.index = index

    def count(self) -> int:
        if self.selector == weee.RESULT_ENTRY:
            return len(self.page.entries)
        return 1

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self.page, self.selector, index)

    @property
    def first(self) -> "FakeLocator":
        return self.nth(0)

    def inner_text(self, timeout: float | None = None) -> str:
        return self.page.entries[self.index]

    def click(self, timeout: float | None = None) -> None:
        self.page._click(self.selector, self.index)

    def text_content(self, timeout: float | None = None) -> str | None:
        return self.page._text(self.selector)


class FakePage:
    """A Weee page whose behaviour is set through constructor flags.

    ``statuses`` is consumed one per ``goto``; missing entries mean 200.
    ``increase_ok`` caps how many "+" clicks succeed (None = all of them).
    ``side_responses`` are (status, url) pairs the page also "loads" on every
    ``goto``, e.g. analytics beacons. ``goto_error`` is raised from ``goto``.
    """

    def __init__(
        self,
        *,
        entries: list[str] | None = None,
        statuses: list[int] | None = None,
        search_ok: bool = True,
        add_ok: bool = True,
        increase_ok: int | None = None,
        title: str | None = "Weee Product",
        h1: str | None = None,
        subtotal: str | None = None,
        landing_url: str | None = None,
        side_responses: list[tuple[int, str]] | None = None,
        goto_error: Exception | None = None,
    ):
        self.entries = list(entries or [])
        self.statuses = list(statuses or [])
        self.search_ok = search_ok
        self.add_ok = add_ok
        self.increase_ok = increase_ok
        self.title = title
        self.h1 = h1
        self.subtotal = subtotal
        self.landing_url = landing_url
        self.side_responses = list(side_responses or [])
        self.goto_error = goto_error

        self.url = "about:blank"
        self.keyboard = FakeKeyboard(self)
        self.listeners: list = []
        self.gotos: list[str] = []
        self.fills: list[tuple[str, str]] = []
        self.pressed: list[str] = []
        self.opened: list[int] = []
        self.add_clicks = 0
        self.increase_attempts = 0
        self.increase_clicks = 0
        self.settles: list[int] = []

    # --- navigation -----------------------------------------------------
    def goto(self, url: str, **kwargs) -> FakeResponse:
        self.gotos.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        status = self.statuses.pop(0) if self.statuses else 200
        resp = FakeResponse(status, url)
        for r in [resp] + [FakeResponse(s, u) for s, u in self.side_responses]:
            for fn in list(self.listeners):
                fn(r)
        self.url = self.landing_url or url
        return resp

    def on(self, event: str, fn) -> None:
        assert event == "response"
        self.listeners.append(fn)

    def remove_listener(self, event: str, fn) -> None:
        self.listeners.remove(fn)

    def wait_for_load_state(self, state: str = "load", timeout: float | None = None) -> None:
        pass

    def wait_for_timeout(self, ms: int) -> None:
        self.settles.append(ms)

    def wait_for_selector(self, selector: str, timeout: float | None = None):
        if selector == weee.SEARCH_INPUT and not self.search_ok:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for {selector}")
        if selector == weee.RESULT_ENTRY and not self.entries:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return FakeLocator(self, selector)

    def fill(self, selector: str, value: str) -> None:
        self.fills.append((selector, value))

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    # --- element behaviour ----------------------------------------------
    def _click(self, selector: str, index: int) -> None:
        if selector == weee.RESULT_ENTRY:
            self.opened.append(index)
        elif selector == weee.ADD_BUTTON:
            if not self.add_ok:
                raise PlaywrightTimeout("Timeout 5000ms exceeded waiting for add button")
            self.add_clicks += 1
        elif selector == weee.QTY_INCREASE:
            self.increase_attempts += 1
            if self.increase_ok is not None and self.increase_clicks >= self.increase_ok:
                raise PlaywrightError("Element is not attached to the DOM")
            self.increase_clicks += 1

    def _text(self, selector: str) -> str | None:
        value = {
            weee.PRODUCT_TITLE: self.title,
            weee.FALLBACK_TITLE: self.h1,
            weee.SUBTOTAL: self.subtotal,
        }.get(selector)
        if value is None:
            raise PlaywrightTimeout(f"Timeout waiting for {selector}")
        return value


class FakeContext:
    def __init__(self, page: FakePage | None = None, user_agent: str | None = None):
        self.page = page or FakePage()
        self.user_agent = user_agent
        self.cookie_calls: list[list[dict]] = []

    def add_cookies(self, cookies: list[dict]) -> None:
        self.cookie_calls.append(cookies)

    def new_page(self) -> FakePage:
        return self.page


class FakeConnection:
    """Stands in for browser.BrowserConnection inside orchestrator tests."""

    def __init__(self, page: FakePage, *, close_error: Exception | None = None):
        self.page = page
        self.context = FakeContext(page)
        self.close_calls = 0
        self.close_error = close_error

    def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


class FakeConnector:
    def __init__(self, conn: FakeConnection | None = None, *, error: Exception | None = None):
        self.conn = conn
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, ws: str, **kwargs) -> FakeConnection:
        self.calls.append((ws, kwargs))
        if self.error is not None:
            raise self.error
        return self.conn


# --- playwright driver fakes for browser.connect ---------------------------


class FakeBrowser:
    def __init__(self):
        self.contexts: list[FakeContext] = []
        self.closed = 0

    def new_context(self, **kwargs) -> FakeContext:
        ctx = FakeContext(user_agent=kwargs.get("user_agent"))
        self.contexts.append(ctx)
        return ctx

    def close(self) -> None:
        self.closed += 1


class FakeChromium:
    """``connect_errors``/``cdp_errors``: one entry per attempt, None = succeed."""

    def __init__(self, connect_errors=None, cdp_errors=None):
        self.connect_errors = list(connect_errors or [])
        self.cdp_errors = list(cdp_errors or [])
        self.calls: list[str] = []
        self.browser = FakeBrowser()

    def _attempt(self, kind: str, errors: list):
        self.calls.append(kind)
        err = errors.pop(0) if errors else None
        if err is not None:
            raise err
        return self.browser

    def connect(self, ws: str, timeout: float | None = None):
        return self._attempt("connect", self.connect_errors)

    def connect_over_cdp(self, ws: str, timeout: float | None = None):
        return self._attempt("cdp", self.cdp_errors)


class FakePlaywright:
    def __init__(self, chromium: FakeChromium):
        self.chromium = chromium
        self.stopped = 0

    def start(self) -> "FakePlaywright":
        return self

    def stop(self) -> None:
        self.stopped += 1
