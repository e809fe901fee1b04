from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from dataclasses import asdict

import requests

from ers.health import check_healthz


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def probe(base: str, count: int, timeout: float = 5.0) -> dict:
    """Hit the greeting endpoint ``count`` times and tally status codes."""
    statuses: Counter[str] = Counter()
    with requests.Session() as s:
        for _ in range(count):
            try:
                r = s.get(f"{base}/", timeout=timeout)
                statuses[str(r.status_code)] += 1
            except requests.RequestException:
                statuses["error"] += 1
    failures = sum(n for code, n in statuses.items() if code != "200")
    return {
        "requests": count,
        "statuses": dict(sorted(statuses.items())),
        "failure_ratio": round(failures / count, 4) if count else 0.0,
    }


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Error Rate Server CLI")
    p.add_argument("--api", default="http://localhost:8080", help="Server base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("health", help="Check /healthz")
    sub.add_parser("rate", help="Show the configured error rate")

    s_set = sub.add_parser("set-rate", help="Set the error rate (percent, 0..100)")
    s_set.add_argument("percent")

    s_probe = sub.add_parser("probe", help="Send requests to / and report the observed failure ratio")
    s_probe.add_argument("--count", type=int, default=100)

    sub.add_parser("metrics", help="Print the Prometheus exposition")
    sub.add_parser("quit", help="Make the server exit via /quitquitquit")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "health":
        report = check_healthz(base)
        _print(asdict(report))
        return 0 if report.healthy else 1

    if args.cmd == "rate":
        r = requests.get(f"{base}/errors", timeout=10)
        if not r.ok:
            _print({"error": f"HTTP {r.status_code}"})
            return 1
        _print(r.json())
        return 0

    if args.cmd == "set-rate":
        r = requests.get(f"{base}/errors/{args.percent}", timeout=10)
        if not r.ok:
            _print({"error": f"HTTP {r.status_code}"})
            return 1
        _print(r.json())
        return 0

    if args.cmd == "probe":
        if args.count < 1:
            p.error("--count must be at least 1")
        _print(probe(base, args.count))
        return 0

    if args.cmd == "metrics":
        r = requests.get(f"{base}/metrics", timeout=10)
        print(r.text, end="")
        return 0 if r.ok else 1

    if args.cmd == "quit":
        try:
            requests.get(f"{base}/quitquitquit", timeout=10)
        except requests.ConnectionError:
            # The server usually dies before answering.
            pass
        _print({"status": "quit requested"})
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
