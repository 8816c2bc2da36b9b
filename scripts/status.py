#!/usr/bin/env python3
"""Terminal status view for a running monitor's web dashboard.

Usage::

    # One-shot report
    python scripts/status.py --url http://127.0.0.1:8080

    # Live refresh every 5 seconds
    python scripts/status.py --watch 5
"""

from __future__ import annotations

import argparse
import re
import sys
import time
from datetime import datetime, timezone
from typing import Any

import httpx

# ── ANSI Color Codes ──────────────────────────────────────────────


class C:
    """ANSI color/style codes."""
    RESET   = "\033[0m"
    BOLD    = "\033[1m"
    DIM     = "\033[2m"

    WHITE   = "\033[97m"
    CYAN    = "\033[96m"
    GREEN   = "\033[92m"
    RED     = "\033[91m"
    YELLOW  = "\033[93m"
    MAGENTA = "\033[95m"


WIDTH = 72

HEALTH_COLORS = {
    "healthy": C.GREEN,
    "degraded": C.YELLOW,
    "warning": C.MAGENTA,
    "critical": C.RED,
}

SEVERITY_COLORS = {
    "low": C.CYAN,
    "medium": C.YELLOW,
    "high": C.MAGENTA,
    "critical": C.RED,
}


def _strip_ansi(s: str) -> str:
    return re.sub(r"\033\[[0-9;]*m", "", s)


def _row(content: str) -> str:
    pad = max(0, WIDTH - 4 - len(_strip_ansi(content)))
    return f"{C.DIM}│{C.RESET} {content}{' ' * pad} {C.DIM}│{C.RESET}"


def _rule(left: str = "├", right: str = "┤") -> str:
    return C.DIM + left + "─" * (WIDTH - 2) + right + C.RESET


def _kv(key: str, value: str, key_width: int = 24) -> str:
    return f"{C.DIM}{key:<{key_width}}{C.RESET}{C.BOLD}{C.WHITE}{value}{C.RESET}"


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:,.2f}"
    return str(value)


# ── Section Renderers ─────────────────────────────────────────────


def render_header(report: dict[str, Any]) -> list[str]:
    overall = str(report.get("overall_health", "healthy"))
    color = HEALTH_COLORS.get(overall, C.WHITE)
    generated = datetime.fromtimestamp(
        float(report.get("generated_at", time.time())), tz=timezone.utc,
    ).strftime("%Y-%m-%d %H:%M:%S UTC")
    return [
        _rule("┌", "┐"),
        _row(f"{C.BOLD}{C.CYAN}PULSEWATCH{C.RESET}  {color}{C.BOLD}{overall.upper()}{C.RESET}"),
        _row(f"{C.DIM}{generated}  uptime {report.get('uptime_secs', 0):.0f}s{C.RESET}"),
    ]


def render_dashboard(report: dict[str, Any]) -> list[str]:
    snap = report.get("dashboard_snapshot") or {}
    skip = {"system_health", "alerts", "last_updated"}
    lines = [_rule(), _row(f"{C.BOLD}Dashboard{C.RESET}")]
    for key, value in snap.items():
        if key not in skip:
            lines.append(_row(_kv(key, _fmt(value))))
    return lines


def render_alerts(report: dict[str, Any]) -> list[str]:
    active = report.get("active_alerts") or []
    lines = [_rule(), _row(f"{C.BOLD}Active alerts ({len(active)}){C.RESET}")]
    if not active:
        lines.append(_row(f"{C.DIM}none{C.RESET}"))
    for alert in active:
        sev = str(alert.get("severity", ""))
        color = SEVERITY_COLORS.get(sev, C.WHITE)
        ack = " ack" if alert.get("acknowledged") else ""
        lines.append(_row(f"{color}{sev:<9}{C.RESET}{alert.get('name', '')}{C.DIM}{ack}{C.RESET}"))
    return lines


def render_health(report: dict[str, Any]) -> list[str]:
    checks = report.get("health_check_summary") or {}
    lines = [_rule(), _row(f"{C.BOLD}Health checks{C.RESET}")]
    for name, summary in sorted(checks.items()):
        status = str(summary.get("status", "unknown"))
        color = C.GREEN if status == "healthy" else C.RED if status == "unhealthy" else C.DIM
        detail = f"  {C.DIM}{summary.get('error')}{C.RESET}" if summary.get("error") else ""
        lines.append(_row(f"{name:<24}{color}{status}{C.RESET}{detail}"))
    return lines


def render_breakers(report: dict[str, Any]) -> list[str]:
    breakers = report.get("circuit_breaker_states") or {}
    lines = [_rule(), _row(f"{C.BOLD}Circuit breakers{C.RESET}")]
    for name, snap in sorted(breakers.items()):
        state = str(snap.get("state", "closed"))
        color = C.GREEN if state == "closed" else C.YELLOW if state == "half-open" else C.RED
        failures = snap.get("failure_count", 0)
        lines.append(_row(f"{name:<24}{color}{state}{C.RESET}  {C.DIM}failures={failures}{C.RESET}"))
    return lines


def render_report(report: dict[str, Any]) -> str:
    lines = [
        *render_header(report),
        *render_dashboard(report),
        *render_alerts(report),
        *render_health(report),
        *render_breakers(report),
        _rule("└", "┘"),
    ]
    return "\n".join(lines)


def fetch_report(client: httpx.Client, base_url: str) -> dict[str, Any]:
    resp = client.get(f"{base_url.rstrip('/')}/api/report")
    resp.raise_for_status()
    return resp.json()


def main() -> None:
    parser = argparse.ArgumentParser(description="Show the monitoring report.")
    parser.add_argument("--url", default="http://127.0.0.1:8080", help="Dashboard base URL")
    parser.add_argument(
        "--watch", type=float, default=0.0, help="Refresh interval in seconds (0 = once)",
    )
    args = parser.parse_args()

    with httpx.Client(timeout=5.0) as client:
        while True:
            try:
                report = fetch_report(client, args.url)
            except httpx.HTTPError as exc:
                print(f"{C.RED}Failed to fetch report: {exc}{C.RESET}", file=sys.stderr)
                sys.exit(1)
            if args.watch > 0:
                sys.stdout.write("\033[2J\033[H")
            print(render_report(report))
            if args.watch <= 0:
                break
            try:
                time.sleep(args.watch)
            except KeyboardInterrupt:
                break


if __name__ == "__main__":
    main()
