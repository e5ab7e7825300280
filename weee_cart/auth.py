from __future__ import annotations

import hmac
import re

from .config import Config

_BEARER_RE = re.compile(r"^Bearer\s+", re.IGNORECASE)


def strip_bearer(header: str | None) -> str:
    """Token part of an Authorization value; tolerates a doubled "Bearer Bearer"."""
    token = (header or "").strip()
    while _BEARER_RE.match(token):
        token = _BEARER_RE.sub("", token, count=1).strip()
    return token


def is_authorized(header: str | None, cfg: Config) -> bool:
    if cfg.bearer_token is None:
        # Only reachable when WEEE_CART_ALLOW_UNAUTHENTICATED was set.
        return cfg.allow_unauthenticated
    presented = strip_bearer(header)
    if not presented:
        return False
    return hmac.compare_digest(presented.encode(), cfg.bearer_token.encode())
