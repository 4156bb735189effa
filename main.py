#!/usr/bin/env python3
"""
Gatekeeper -- operator CLI for the authorization core.

Runs against the same database the API uses (DATABASE_URL) without starting
the server.

Usage:
  python main.py resolve GET /api/v1/users
  python main.py check --roles ADMIN GET /api/v1/users/3f2a...
  python main.py check --roles SUPPORT,BILLING DELETE /api/v1/roles/4 --json
  python main.py bootstrap
  python main.py sweep

Exit codes:
  0  success (check: allowed)
  1  check: denied
  2  configuration error (e.g. SECRET_KEY missing outside DEBUG mode)

Environment variables:
  DATABASE_URL  SQLAlchemy URL (default sqlite:///gatekeeper.db)
  SECRET_KEY    Required unless DEBUG=true
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Optional

from pydantic import ValidationError

from api.container import Container, build_container
from core.config import get_settings
from rbac.resolver import strip_api_version


def _print(data: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(data, indent=2))
        return
    for key, value in data.items():
        print(f"  {key:<18} {value}")


def _cmd_resolve(container: Container, args: argparse.Namespace) -> int:
    method = args.method.upper()
    action = container.resolver.resolve(method, args.path)
    registered = container.catalog.resolve_action(method, strip_api_version(args.path)) is not None
    _print({"method": method, "path": args.path, "action": action, "registered": registered}, args.json)
    return 0


def _cmd_check(container: Container, args: argparse.Namespace) -> int:
    roles = [r.strip() for r in args.roles.split(",") if r.strip()]
    decision = container.engine.decide(roles, args.method, args.path)
    _print(
        {
            "roles": ",".join(roles) or "-",
            "method": decision.method,
            "path": args.path,
            "action": decision.action,
            "decision": "ALLOW" if decision.allowed else "DENY",
        },
        args.json,
    )
    return 0 if decision.allowed else 1


def _cmd_bootstrap(container: Container, args: argparse.Namespace) -> int:
    _print(asdict(container.bootstrap()), args.json)
    return 0


def _cmd_sweep(container: Container, args: argparse.Namespace) -> int:
    _print(container.sweep(), args.json)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description="Inspect and maintain the Gatekeeper authorization core.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py resolve GET /api/v1/users/42
  python main.py check --roles ADMIN POST /api/v1/roles
  python main.py bootstrap --json
        """,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--json", action="store_true", help="Print results as JSON")
    common.add_argument("--verbose", "-v", action="store_true", help="Show service log output")
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", parents=[common], help="Show which action a request maps to")
    resolve.add_argument("method", help="HTTP method, e.g. GET")
    resolve.add_argument("path", help="Request path, e.g. /api/v1/users/42")
    resolve.set_defaults(handler=_cmd_resolve)

    check = sub.add_parser("check", parents=[common], help="Evaluate an authorization decision for a set of roles")
    check.add_argument("--roles", default="", help="Comma-separated role names (default: none)")
    check.add_argument("method", help="HTTP method, e.g. DELETE")
    check.add_argument("path", help="Request path, e.g. /api/v1/roles/4")
    check.set_defaults(handler=_cmd_check)

    bootstrap = sub.add_parser(
        "bootstrap", parents=[common], help="Seed the ADMIN role, admin user and admin permissions"
    )
    bootstrap.set_defaults(handler=_cmd_bootstrap)

    sweep = sub.add_parser("sweep", parents=[common], help="Purge expired revoked tokens and invitation tokens")
    sweep.set_defaults(handler=_cmd_sweep)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"  [!] Configuration error: {e}", file=sys.stderr)
        return 2

    container = build_container(settings)
    try:
        return args.handler(container, args)
    finally:
        container.close()


if __name__ == "__main__":
    sys.exit(main())
