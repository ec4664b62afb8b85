#!/usr/bin/env python3
"""
Staff Portal Monitor: polls the portal API's /health and /metrics endpoints
and surfaces Planday upstream trouble (errors, retries, token churn).

Usage:
    python scripts/portal_monitor.py              # One-shot scan
    python scripts/portal_monitor.py --watch      # Continuous monitoring (30s interval)
    python scripts/portal_monitor.py --watch 10   # Continuous monitoring (10s interval)
"""

import os
import sys
import time
from datetime import datetime

import requests

# Force UTF-8 output on Windows
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    try:
        sys.stdout.reconfigure(encoding="utf-8")
    except Exception:
        pass

# ── Configuration ──────────────────────────────────────────────────────
PORTAL_URL = os.getenv("PORTAL_URL", "http://localhost:8000").rstrip("/")
ERROR_RATE_WARN = float(os.getenv("PORTAL_ERROR_RATE_WARN", "0.05"))

# ANSI colors
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
CYAN = "\033[96m"
BOLD = "\033[1m"
RESET = "\033[0m"
DIM = "\033[2m"

_session = requests.Session()
_session.headers.update({"Accept": "application/json"})


def fetch(path: str) -> dict:
    """GET a JSON endpoint on the portal; failures come back as {"error": ...}."""
    try:
        resp = _session.get(f"{PORTAL_URL}{path}", timeout=10)
        resp.raise_for_status()
        return resp.json()
    except requests.HTTPError as e:
        return {"error": f"HTTP {e.response.status_code}: {e.response.text[:200]}"}
    except (requests.RequestException, ValueError) as e:
        return {"error": str(e)}


def format_uptime(seconds) -> str:
    if not isinstance(seconds, (int, float)):
        return "N/A"
    mins = int(seconds // 60)
    if mins < 1:
        return f"{int(seconds)}s"
    elif mins < 60:
        return f"{mins}m"
    elif mins < 1440:
        return f"{mins // 60}h {mins % 60}m"
    return f"{mins // 1440}d {(mins % 1440) // 60}h"


def find_problems(metrics: dict) -> list:
    """Return human-readable warnings for the upstream counters in ``metrics``."""
    problems = []
    calls = metrics.get("upstream_calls", 0) or 0
    errors = metrics.get("upstream_errors", 0) or 0
    if calls and errors / calls > ERROR_RATE_WARN:
        problems.append(f"upstream error rate {errors}/{calls} ({errors / calls:.0%})")
    invalidations = metrics.get("token_invalidations", 0) or 0
    if invalidations:
        problems.append(f"{invalidations} access token(s) rejected by Planday")
    for path, count in sorted((metrics.get("errors_by_path") or {}).items(), key=lambda kv: -kv[1]):
        problems.append(f"{count} failed call(s) to {path}")
    return problems


def print_separator():
    print(f"{DIM}{'-' * 70}{RESET}")


def run_scan() -> bool:
    """Execute one scan; returns True when the portal looks healthy."""
    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"\n{BOLD}{CYAN}+{'=' * 62}+{RESET}")
    print(f"{BOLD}{CYAN}|  STAFF PORTAL MONITOR -- {PORTAL_URL[:36]:<36}|{RESET}")
    print(f"{BOLD}{CYAN}|  Scan: {now}                              |{RESET}")
    print(f"{BOLD}{CYAN}+{'=' * 62}+{RESET}")

    health = fetch("/health")
    if "error" in health:
        print(f"\n{RED}Health check failed: {health['error'][:100]}{RESET}")
        return False

    print(f"\n  {BOLD}Version:{RESET} {health.get('version', '?')}  Status: {GREEN}{health.get('status', '?')}{RESET}")
    if not health.get("planday_configured"):
        print(f"  {RED}Planday credentials are not configured{RESET}")
    print(f"  {DIM}Planday API: {health.get('planday_api_base', '?')}{RESET}")
    print_separator()

    metrics = fetch("/metrics")
    if "error" in metrics:
        print(f"{RED}Metrics unavailable: {metrics['error'][:100]}{RESET}")
        return False

    print(f"  Uptime:           {format_uptime(metrics.get('uptime_seconds'))}")
    print(f"  Upstream calls:   {metrics.get('upstream_calls', 0)}  errors: {metrics.get('upstream_errors', 0)}"
          f"  retries: {metrics.get('retries', 0)}")
    print(f"  Token refreshes:  {metrics.get('token_refreshes', 0)}")
    print(f"  Revenue cache:    {metrics.get('cache_hits', 0)} hit(s) / {metrics.get('cache_misses', 0)} miss(es)")

    slowest = sorted((metrics.get("avg_duration_ms_by_path") or {}).items(), key=lambda kv: -kv[1])[:3]
    for path, avg in slowest:
        print(f"    {DIM}{path}: {avg} ms avg{RESET}")

    problems = find_problems(metrics)
    if problems:
        print(f"\n  {YELLOW}WARNINGS ({len(problems)}):{RESET}")
        for p in problems[:8]:
            print(f"    {YELLOW}!{RESET} {p[:120]}")
        print(f"\n{RED}{BOLD}[FAIL] Issues detected -- see warnings above{RESET}\n")
        return False

    print(f"\n{GREEN}{BOLD}[OK] Portal healthy{RESET}\n")
    return True


def main():
    watch = "--watch" in sys.argv
    interval = 30

    # Parse optional interval
    if watch:
        idx = sys.argv.index("--watch")
        if idx + 1 < len(sys.argv):
            try:
                interval = int(sys.argv[idx + 1])
            except ValueError:
                pass

    if watch:
        print(f"{CYAN}Watching {PORTAL_URL} every {interval}s (Ctrl+C to stop)...{RESET}")
        try:
            while True:
                run_scan()
                print(f"{DIM}Next scan in {interval}s...{RESET}")
                time.sleep(interval)
        except KeyboardInterrupt:
            print(f"\n{YELLOW}Monitor stopped.{RESET}")
    else:
        sys.exit(0 if run_scan() else 1)


if __name__ == "__main__":
    main()
