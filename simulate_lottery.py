#!/usr/bin/env python3
"""
Fire concurrent draws against a running lottery backend.

Usage:
    python simulate_lottery.py --base-url http://localhost:8000 --requests 50

Every simulated requester submits one draw. A 503 (prize taken between
selection and claim) is retried once, as a real client would. The script
then prints a tally per outcome and compares the winner list with the
remaining stock reported by the server.
"""

import argparse
import sys
import uuid
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import requests


TIMEOUT = 10  # seconds per request


@dataclass
class DrawOutcome:
    requester_id: str
    status: int
    prize_id: Optional[str] = None
    retried: bool = False


class LotteryClient:
    def __init__(self, base_url: str, admin_token: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.admin_token = admin_token

    def _request(
        self,
        method: str,
        path: str,
        expected_status: Iterable[int],
        json_payload: Dict | None = None,
        headers: Dict[str, str] | None = None,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        response = requests.request(
            method=method,
            url=url,
            json=json_payload,
            headers=headers,
            timeout=TIMEOUT,
        )
        if response.status_code not in expected_status:
            raise RuntimeError(
                f"{method} {path} returned {response.status_code}: {response.text}"
            )
        return response

    def _json(self, response: requests.Response) -> Dict:
        try:
            return response.json()
        except ValueError as exc:
            raise RuntimeError(f"Response from {response.url} was not valid JSON.") from exc

    def _admin_headers(self) -> Dict[str, str]:
        if not self.admin_token:
            raise RuntimeError("An admin token is required for this operation.")
        return {"X-Admin-Token": self.admin_token}

    def draw(self, requester_id: str, requester_name: str) -> DrawOutcome:
        payload = {"requester_id": requester_id, "requester_name": requester_name}
        expected = {201, 404, 409, 503}
        response = self._request("POST", "/prize/draw/", expected, payload)
        retried = False
        if response.status_code == 503:
            retried = True
            response = self._request("POST", "/prize/draw/", expected, payload)

        prize_id = None
        if response.status_code == 201:
            prize_id = self._json(response)["prize"]["id"]
        return DrawOutcome(
            requester_id=requester_id,
            status=response.status_code,
            prize_id=prize_id,
            retried=retried,
        )

    def list_prizes(self) -> List[Dict]:
        return self._json(self._request("GET", "/prize/list/", {200}))["prizes"]

    def list_allocations(self) -> List[Dict]:
        return self._json(self._request("GET", "/prize/allocations/", {200}))["allocations"]

    def reset(self) -> Dict:
        response = self._request("POST", "/prize/reset/", {200}, {}, self._admin_headers())
        return self._json(response)


def run_simulation(client: LotteryClient, count: int, workers: int) -> List[DrawOutcome]:
    run_tag = uuid.uuid4().hex[:8]
    requesters = [(f"sim-{run_tag}-{idx}", f"Simulated {idx}") for idx in range(1, count + 1)]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda item: client.draw(*item), requesters))


def summarize(outcomes: List[DrawOutcome]) -> Dict[str, int]:
    labels = {201: "won", 404: "no_stock", 409: "already_participated", 503: "stock_exhausted"}
    tally = Counter(labels.get(outcome.status, str(outcome.status)) for outcome in outcomes)
    tally["retried"] = sum(1 for outcome in outcomes if outcome.retried)
    return dict(tally)


def main():
    parser = argparse.ArgumentParser(
        description="Simulate concurrent prize draws via HTTP requests."
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Root URL of the running Django service (default: http://localhost:8000)",
    )
    parser.add_argument("--requests", type=int, default=50, help="Number of simulated requesters")
    parser.add_argument("--workers", type=int, default=16, help="Concurrent worker threads")
    parser.add_argument("--admin-token", help="Reset the lottery first using this admin token")
    args = parser.parse_args()

    client = LotteryClient(args.base_url, admin_token=args.admin_token)
    try:
        if args.admin_token:
            reset = client.reset()
            print(f"[info] reset: {reset['allocations_deleted']} allocations deleted")
        stock_before = sum(prize["remaining"] for prize in client.list_prizes())
        outcomes = run_simulation(client, args.requests, args.workers)
        stock_after = sum(prize["remaining"] for prize in client.list_prizes())
    except (requests.RequestException, RuntimeError) as exc:
        print(f"[error] {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    tally = summarize(outcomes)
    print(f"[info] outcomes: {tally}")
    won = tally.get("won", 0)
    print(f"[info] stock before={stock_before} after={stock_after} winners={won}")
    if stock_before - stock_after != won:
        print("[error] stock consumed does not match the number of winners", file=sys.stderr)
        raise SystemExit(1)
    print("[info] Simulation completed successfully.")


if __name__ == "__main__":
    main()
