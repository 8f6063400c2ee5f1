"""Lightweight REST client for the squadstats admin API."""

from __future__ import annotations

import argparse
import json

import httpx


def _print_json(resp: httpx.Response, not_found: str) -> None:
    if resp.status_code == 404:
        raise SystemExit(not_found)
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Interact with the squadstats admin API")
    parser.add_argument("base_url", help="Base URL of the API, e.g. http://localhost:8000")
    parser.add_argument("--rebuild", action="store_true", help="Trigger a full rebuild")
    parser.add_argument("--rebuild-event", metavar="EVENT_ID", help="Re-derive one event's facts")
    parser.add_argument("--rebuild-player", metavar="PLAYER_ID", help="Re-aggregate one player")
    parser.add_argument("--summary", metavar="PLAYER_ID", help="Fetch a player's stored summary")
    parser.add_argument("--trend", metavar="PLAYER_ID", help="Fetch a player's performance trend")
    parser.add_argument("--list-jobs", action="store_true", help="List recent rebuild jobs")
    parser.add_argument("--cancel-job", metavar="JOB_ID", help="Request cancellation of a running job")
    parser.add_argument("--timeout", type=float, default=300.0, help="Request timeout in seconds")
    args = parser.parse_args()

    with httpx.Client(base_url=args.base_url, timeout=args.timeout) as client:
        if args.rebuild:
            resp = client.post("/rebuild")
            if resp.status_code == 500:
                raise SystemExit(f"rebuild failed: {resp.json().get('detail')}")
            _print_json(resp, "rebuild endpoint not found")
        if args.rebuild_event:
            _print_json(client.post(f"/events/{args.rebuild_event}/rebuild"), "rebuild endpoint not found")
        if args.rebuild_player:
            resp = client.post(f"/players/{args.rebuild_player}/rebuild")
            if resp.status_code == 500:
                raise SystemExit(resp.json().get("detail"))
            _print_json(resp, f"player {args.rebuild_player} not found")
        if args.summary:
            _print_json(client.get(f"/players/{args.summary}/summary"), f"no summary for player {args.summary}")
        if args.trend:
            _print_json(client.get(f"/players/{args.trend}/trend"), f"player {args.trend} not found")
        if args.list_jobs:
            _print_json(client.get("/rebuild/jobs"), "jobs endpoint not found")
        if args.cancel_job:
            _print_json(client.post(f"/rebuild/jobs/{args.cancel_job}/cancel"), f"job {args.cancel_job} not found")


if __name__ == "__main__":
    main()
