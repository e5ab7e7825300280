from __future__ import annotations


class CartError(RuntimeError):
    """Base class for failures that end a cart run with an error document."""

    label = "Automation failed"


class ConfigurationError(CartError):
    label = "Configuration error"


class ValidationError(CartError):
    label = "Invalid request"


class BrowserConnectionError(CartError):
    label = "Browser connection failed"


class SessionExpiredError(CartError):
    """The stored Weee session cookie no longer logs us in."""

    label = "Session expired"

    def __init__(self, url: str):
        super().__init__(
            "Weee session is not logged in (cookie expired or invalid). "
            f"Landed on {url}. Update WEEE_SESSION_COOKIE."
        )
        self.url = url


class RateLimited(CartError):
    """Too many requests, either from Browserless or from the site itself."""

    label = "Rate limited"

    def __init__(self, message: str = "Too many requests", *, status: int | None = 429):
        super().__init__(message)
        self.status = status


class SessionError(CartError):
    """The one-time cookie install or home-page check failed in the browser."""

    label = "Session setup failed"
