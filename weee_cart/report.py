from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .errors import CartError
from .models import (
    Added,
    BatchComplete,
    BatchEvent,
    BatchPause,
    BatchProgress,
    Failed,
    ItemResult,
    NotFound,
)


def result_to_dict(result: ItemResult) -> dict[str, Any]:
    if isinstance(result, Added):
        return {"status": "added", "added": True, "query": result.query, "title": result.title, "qty": result.qty}
    if isinstance(result, NotFound):
        return {"status": "not_found", "added": False, "query": result.query, "reason": result.reason}
    if isinstance(result, Failed):
        return {"status": "failed", "added": False, "query": result.query, "error": result.error}
    raise TypeError(f"Unknown item result: {result!r}")


def event_to_dict(event: BatchEvent) -> dict[str, Any]:
    if isinstance(event, BatchProgress):
        return {
            "type": "progress",
            "processed": event.processed,
            "total": event.total,
            "query": event.query,
            "result": result_to_dict(event.result),
        }
    if isinstance(event, BatchPause):
        return {"type": "pause", "processed": event.processed, "total": event.total, "seconds": event.seconds}
    if isinstance(event, BatchComplete):
        out: dict[str, Any] = {
            "type": "complete",
            "status": event.status,
            "total": event.total,
            "processed": event.processed,
            "cookie_applied": event.cookie_applied,
        }
        if event.subtotal is not None:
            out["subtotal"] = event.subtotal
        return out
    raise TypeError(f"Unknown batch event: {event!r}")


def error_to_dict(exc: CartError) -> dict[str, Any]:
    return {"error": exc.label, "detail": str(exc)}


def unexpected_error_to_dict(exc: BaseException) -> dict[str, Any]:
    return {"error": CartError.label, "detail": str(exc) or type(exc).__name__}


def ndjson_line(record: dict[str, Any]) -> str:
    """One newline-terminated JSON record for the progress stream."""
    return json.dumps(record, ensure_ascii=False) + "\n"


@dataclass
class BatchReport:
    timestamp: str
    status: str
    cookie_applied: bool
    items: list[ItemResult] = field(default_factory=list)
    subtotal: str | None = None

    @property
    def added(self) -> int:
        return sum(1 for r in self.items if isinstance(r, Added))

    @property
    def not_found(self) -> int:
        return sum(1 for r in self.items if isinstance(r, NotFound))

    @property
    def failed(self) -> int:
        return sum(1 for r in self.items if isinstance(r, Failed))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "status": self.status,
            "engine": "playwright",
            "cookie_applied": self.cookie_applied,
            "items": [result_to_dict(r) for r in self.items],
            "summary": {
                "timestamp": self.timestamp,
                "total": len(self.items),
                "added": self.added,
                "not_found": self.not_found,
                "failed": self.failed,
            },
        }
        if self.subtotal is not None:
            out["subtotal"] = self.subtotal
        return out

    def summary_text(self) -> str:
        lines = [
            f"Run: {self.timestamp}  (cookie_applied={self.cookie_applied})",
            f"Total: {len(self.items)}  Added: {self.added}  Not found: {self.not_found}  Failed: {self.failed}",
            "",
        ]
        for i, r in enumerate(self.items, 1):
            if isinstance(r, Added):
                lines.append(f"  {i}. [ADDED x{r.qty}] {r.query}")
                lines.append(f"     → {r.title}")
            elif isinstance(r, NotFound):
                lines.append(f"  {i}. [NOT_FOUND] {r.query}  ({r.reason})")
            else:
                lines.append(f"  {i}. [FAILED] {r.query}  ({r.error})")
        if self.subtotal:
            lines.append("")
            lines.append(self.subtotal)
        return "\n".join(lines)

    def write_json(self, path: str = "artifacts/cart_report.json") -> str:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(self.to_dict(), indent=2))
        return str(out)


def build_report(items: list[ItemResult], *, cookie_applied: bool, subtotal: str | None = None) -> BatchReport:
    return BatchReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        status="ok",
        cookie_applied=cookie_applied,
        items=list(items),
        subtotal=subtotal,
    )
