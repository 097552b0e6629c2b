#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
from datetime import date, datetime
from typing import Any, Dict

import requests


def _env(name: str) -> str | None:
    value = os.getenv(name)
    return value.strip() if value else None


def _parse_date(value: str) -> date:
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d/%m/%y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unsupported date format: {value}")


def _fetch_report(base_url: str, user: str, password: str, as_of: date | None) -> Dict[str, Any]:
    params = {"as_of": as_of.isoformat()} if as_of else None
    resp = requests.get(
        f"{base_url.rstrip('/')}/reports/aging",
        auth=(user, password),
        headers={"Accept": "application/json"},
        params=params,
        timeout=30,
    )
    resp.raise_for_status()
    return resp.json()["report"]


def _print_table(report: Dict[str, Any]) -> None:
    print(f"Aging report as of {report['report_date']} ({report['currency']})")
    for bracket in report["brackets"]:
        print(
            f"  {bracket['bracket']:>6}  {bracket['count']:>5}  "
            f"{bracket['total_amount']:>18,.2f}  {bracket['percentage']:>6.2f}%"
        )
    print(f"  {'total':>6}  {report['total_count']:>5}  {report['total_amount']:>18,.2f}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Fetch the accounts payable aging report.")
    parser.add_argument("--base-url", default=_env("AP_SERVICE_URL"))
    parser.add_argument("--as-of", help="Report date (YYYY-MM-DD or DD/MM/YYYY)")
    parser.add_argument("--json", action="store_true", help="Print the raw report JSON")
    args = parser.parse_args()

    user = _env("BASIC_USER")
    password = _env("BASIC_PASS")
    if not args.base_url or not user or not password:
        raise SystemExit("Missing AP_SERVICE_URL/--base-url or BASIC_USER/BASIC_PASS")

    as_of = _parse_date(args.as_of) if args.as_of else None
    report = _fetch_report(args.base_url, user, password, as_of)
    if args.json:
        print(json.dumps(report, indent=2))
    else:
        _print_table(report)


if __name__ == "__main__":
    main()
