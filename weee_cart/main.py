from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from .auth import is_authorized
from .browser import health_check, normalize_ws_endpoint
from .config import OPTIONAL_KEYS, REQUIRED_KEYS, Config
from .errors import CartError, ValidationError
from .log import setup_logging
from .models import parse_items
from .orchestrator import CartBatch
from .report import error_to_dict, event_to_dict, ndjson_line, unexpected_error_to_dict

log = logging.getLogger(__name__)

__version__ = "0.1.0"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="weee-cart")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument(
        "--log-level",
        default=os.environ.get("WEEE_CART_LOG_LEVEL", "INFO"),
        help="Logging level for stderr output",
    )

    sub = p.add_subparsers(dest="cmd", required=False)

    p_config = sub.add_parser("config", help="Config commands")
    sub_config = p_config.add_subparsers(dest="config_cmd", required=True)
    sub_config.add_parser("keys", help="List the environment variables read")
    sub_config.add_parser("check", help="Validate the environment configuration")

    p_browserless = sub.add_parser("browserless", help="Browserless commands")
    sub_browserless = p_browserless.add_subparsers(dest="browserless_cmd", required=True)
    sub_browserless.add_parser("health", help="Connect to Browserless and disconnect again")

    p_cart = sub.add_parser("cart", help="Cart commands")
    sub_cart = p_cart.add_subparsers(dest="cart_cmd", required=True)

    p_add = sub_cart.add_parser("add", help="Add items to the Weee cart")
    src = p_add.add_mutually_exclusive_group(required=True)
    src.add_argument("--items", help='JSON array, e.g. \'[{"name": "milk", "qty": 2}]\'')
    src.add_argument("--file", help="Path to a JSON file with the items")
    p_add.add_argument("--stream", action="store_true", help="Print newline-delimited progress records")
    p_add.add_argument("--peek-cart", action="store_true", help="Read the cart subtotal when done")
    p_add.add_argument("--report", default=None, help="Also write the JSON report to this path")
    p_add.add_argument(
        "--auth",
        default=os.environ.get("WEEE_CART_AUTH"),
        help="Bearer credential (defaults to $WEEE_CART_AUTH)",
    )

    p_reminder = sub.add_parser("reminder", help="Reminder commands")
    sub_reminder = p_reminder.add_subparsers(dest="reminder_cmd", required=True)
    p_create = sub_reminder.add_parser("create", help="Accept a reminder (no delivery yet)")
    p_create.add_argument("--when", required=True)
    p_create.add_argument("--message", required=True)

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    if args.cmd is None:
        p.print_help()
        return 0

    setup_logging(args.log_level)

    try:
        return _dispatch(args)
    except CartError as e:
        _print_json(error_to_dict(e))
        return 1
    except Exception as e:
        log.exception("Automation failed")
        _print_json(unexpected_error_to_dict(e))
        return 1


def _dispatch(args) -> int:
    if args.cmd == "config":
        if args.config_cmd == "keys":
            for k in REQUIRED_KEYS:
                print(k)
            for k in OPTIONAL_KEYS:
                print(f"{k} (optional)")
            return 0

        if args.config_cmd == "check":
            # Intentionally do not print secret values
            cfg = Config.from_env()
            print(f"OK: config present (cookie set: {'yes' if cfg.session_cookies else 'no'})")
            return 0

    if args.cmd == "browserless":
        cfg = Config.from_env()
        ws = normalize_ws_endpoint(cfg.browserless_ws, token=cfg.browserless_token)

        if args.browserless_cmd == "health":
            result = health_check(ws)
            _print_json(result)
            return 0 if result["ok"] else 1

    if args.cmd == "cart":
        if args.cart_cmd == "add":
            return _run_add(args)

    if args.cmd == "reminder":
        if args.reminder_cmd == "create":
            _print_json({"scheduled": True, "when": args.when, "message": args.message})
            return 0

    raise RuntimeError("unreachable")


def _run_add(args) -> int:
    cfg = Config.from_env()
    if not is_authorized(args.auth, cfg):
        _print_json({"error": "Unauthorized"})
        return 2

    items = parse_items(_load_items(args))
    batch = CartBatch(cfg, peek_cart=args.peek_cart)

    if args.stream:
        return _stream(batch, items)

    report = batch.add_items(items)
    _print_json(report.to_dict())
    print(report.summary_text(), file=sys.stderr)
    if args.report:
        path = report.write_json(args.report)
        print(f"Report written to {path}", file=sys.stderr)
    return 0


def _stream(batch: CartBatch, items) -> int:
    events = batch.run(items)
    try:
        for event in events:
            sys.stdout.write(ndjson_line(event_to_dict(event)))
            sys.stdout.flush()
    except CartError as e:
        sys.stdout.write(ndjson_line({"type": "error", **error_to_dict(e)}))
        return 1
    except Exception as e:
        log.exception("Automation failed")
        sys.stdout.write(ndjson_line({"type": "error", **unexpected_error_to_dict(e)}))
        return 1
    finally:
        events.close()
    return 0


def _load_items(args) -> Any:
    raw = Path(args.file).read_text() if args.file else args.items
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Items are not valid JSON: {e.msg}") from e
    if isinstance(data, dict):
        data = data.get("items")
    return data


def _print_json(doc: dict[str, Any]) -> None:
    print(json.dumps(doc, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    raise SystemExit(main())
