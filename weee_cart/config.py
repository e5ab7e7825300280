from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import ConfigurationError


REQUIRED_KEYS = [
    "BROWSERLESS_WS",
    "ACTIONS_BEARER_TOKEN",
]

OPTIONAL_KEYS = [
    "BROWSERLESS_TOKEN",
    "WEEE_SESSION_COOKIE",
    "WEEE_BASE_URL",
    "WEEE_CART_ALLOW_UNAUTHENTICATED",
    "WEEE_ITEM_DELAY_S",
    "WEEE_BATCH_SIZE",
    "WEEE_BATCH_PAUSE_S",
    "WEEE_RATE_LIMIT_COOLDOWN_S",
    "WEEE_CART_LOG_LEVEL",
]

DEFAULT_BASE_URL = "https://www.sayweee.com"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Pacing:
    """Delays (seconds) the orchestrator waits between steps."""

    item_delay_s: float = 3.0
    batch_size: int = 3
    batch_pause_s: float = 10.0
    rate_limit_cooldown_s: float = 30.0
    connect_attempts: int = 3
    connect_backoff_s: float = 0.5


@dataclass(frozen=True)
class Config:
    browserless_ws: str
    bearer_token: str | None = None
    browserless_token: str | None = None
    # Parsed WEEE_SESSION_COOKIE; None when not configured.
    session_cookies: list[dict[str, Any]] | None = None
    base_url: str = DEFAULT_BASE_URL
    # Must be opted into explicitly; an unset secret never means "open".
    allow_unauthenticated: bool = False
    pacing: Pacing = field(default_factory=Pacing)

    @property
    def home_url(self) -> str:
        return self.base_url + "/en"

    @property
    def cart_url(self) -> str:
        return self.base_url + "/en/cart"

    @staticmethod
    def from_env(environ: Mapping[str, str] | None = None) -> "Config":
        env = os.environ if environ is None else environ

        ws = _clean(env.get("BROWSERLESS_WS"))
        if not ws:
            raise ConfigurationError("Missing BROWSERLESS_WS")

        allow_unauth = _clean(env.get("WEEE_CART_ALLOW_UNAUTHENTICATED")).lower() in _TRUTHY
        token = _clean(env.get("ACTIONS_BEARER_TOKEN")) or None
        if token is None and not allow_unauth:
            raise ConfigurationError(
                "Missing ACTIONS_BEARER_TOKEN "
                "(set WEEE_CART_ALLOW_UNAUTHENTICATED=true to run without one)"
            )

        defaults = Pacing()
        pacing = Pacing(
            item_delay_s=_float(env, "WEEE_ITEM_DELAY_S", defaults.item_delay_s),
            batch_size=int(_float(env, "WEEE_BATCH_SIZE", defaults.batch_size)),
            batch_pause_s=_float(env, "WEEE_BATCH_PAUSE_S", defaults.batch_pause_s),
            rate_limit_cooldown_s=_float(
                env, "WEEE_RATE_LIMIT_COOLDOWN_S", defaults.rate_limit_cooldown_s
            ),
        )
        if pacing.batch_size < 1:
            raise ConfigurationError("WEEE_BATCH_SIZE must be at least 1")

        return Config(
            browserless_ws=ws,
            bearer_token=token,
            browserless_token=_clean(env.get("BROWSERLESS_TOKEN")) or None,
            session_cookies=parse_cookie_json(env.get("WEEE_SESSION_COOKIE")),
            base_url=(_clean(env.get("WEEE_BASE_URL")) or DEFAULT_BASE_URL).rstrip("/"),
            allow_unauthenticated=allow_unauth,
            pacing=pacing,
        )


def parse_cookie_json(raw: str | None) -> list[dict[str, Any]] | None:
    """Parse a serialized cookie export (a JSON array of cookie objects)."""
    if raw is None or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"WEEE_SESSION_COOKIE is not valid JSON: {e.msg}") from e
    if not isinstance(data, list) or not all(isinstance(c, dict) for c in data):
        raise ConfigurationError("WEEE_SESSION_COOKIE must be a JSON array of cookie objects")
    return data


def _clean(val: str | None) -> str:
    return (val or "").strip()


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _clean(env.get(key))
    if not raw:
        return default
    try:
        val = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")
    if not math.isfinite(val):
        raise ConfigurationError(f"{key} must be a finite number, got {raw!r}")
    if val < 0:
        raise ConfigurationError(f"{key} must not be negative")
    return val
