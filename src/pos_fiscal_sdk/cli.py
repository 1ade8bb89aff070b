from __future__ import annotations

import argparse
import getpass
import json
import logging
from datetime import date
from pathlib import Path

from .client import PosClient
from .config import ConfigError, load_config
from .exceptions import ApiError
from .qr_payload import encode, render_svg


def _client(args: argparse.Namespace) -> PosClient:
    return PosClient(config=load_config(args.env_file))


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_login(args: argparse.Namespace) -> None:
    client = _client(args)
    password = getpass.getpass("Password: ")
    session = client.session_manager.login(args.email, password)
    _print({"user": session.user.model_dump(mode="json"), "expires_at": session.expires_at})


def cmd_logout(args: argparse.Namespace) -> None:
    client = _client(args)
    client.session_manager.logout()
    _print({"logged_out": True})


def cmd_whoami(args: argparse.Namespace) -> None:
    client = _client(args)
    session = client.session_manager.rehydrate()
    if session is None:
        _print({"authenticated": False})
        raise SystemExit(1)
    if args.verify:
        session = client.session_manager.verify()
    _print(
        {
            "authenticated": True,
            "verified": session.verified,
            "user": session.user.model_dump(mode="json"),
            "expires_at": session.expires_at,
        }
    )


def cmd_sales_report(args: argparse.Namespace) -> None:
    ledger = _client(args).sales_ledger
    if args.employee:
        end = args.to_date or date.today().isoformat()
        start = args.from_date or end
        aggregate = ledger.aggregate(args.employee, start, end)
        _print({"employee_id": args.employee, "from": start, "to": end, **aggregate.model_dump(mode="json")})
        return
    today = date.today()
    daily = ledger.daily_summary(today)
    monthly = ledger.monthly_summary(today.year, today.month)
    _print(
        {
            "today": today.isoformat(),
            "month": today.strftime("%Y-%m"),
            "employees": {
                employee_id: {
                    "today": daily[employee_id].model_dump(mode="json") if employee_id in daily else None,
                    "month": summary.model_dump(mode="json"),
                }
                for employee_id, summary in monthly.items()
            },
        }
    )


def cmd_qr(args: argparse.Namespace) -> None:
    fiscal_response = json.loads(Path(args.file).read_text(encoding="utf-8"))
    payload = encode(fiscal_response)
    if args.svg:
        Path(args.svg).write_bytes(render_svg(payload))
    _print({"qr_payload": payload, "svg": args.svg})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pos-fiscal", description="Point-of-sale fiscal client")
    parser.add_argument("--env-file", default=None)
    parser.add_argument("--log-level", default="WARNING")
    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login")
    login_parser.add_argument("--email", required=True)
    login_parser.set_defaults(func=cmd_login)

    logout_parser = subparsers.add_parser("logout")
    logout_parser.set_defaults(func=cmd_logout)

    whoami_parser = subparsers.add_parser("whoami")
    whoami_parser.add_argument("--verify", action="store_true")
    whoami_parser.set_defaults(func=cmd_whoami)

    report_parser = subparsers.add_parser("sales-report")
    report_parser.add_argument("--employee")
    report_parser.add_argument("--from", dest="from_date")
    report_parser.add_argument("--to", dest="to_date")
    report_parser.set_defaults(func=cmd_sales_report)

    qr_parser = subparsers.add_parser("qr")
    qr_parser.add_argument("--file", required=True)
    qr_parser.add_argument("--svg")
    qr_parser.set_defaults(func=cmd_qr)
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    try:
        args.func(args)
    except ApiError as exc:
        _print({"error": exc.code, "message": exc.message, "trace_id": exc.trace_id})
        raise SystemExit(1) from exc
    except ConfigError as exc:
        _print({"error": "CONFIG_ERROR", "message": str(exc)})
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()
