"""Fire concurrent redemptions at one video token and report the outcome split.

Exactly one request should succeed. The rest are rejected with
`TOKEN_ALREADY_VIEWED`, or with 429 once the burst exceeds the per-client
rate limit.
"""

import argparse
import asyncio
import time
from collections import Counter
from uuid import uuid4

import httpx


async def redeem_once(client: httpx.AsyncClient, base_url: str, token_code: str):
    """Send one redemption request and return (status_code, error_code, latency_ms)."""

    started = time.perf_counter()
    try:
        resp = await client.get(
            f"{base_url}/tokens/{token_code}/video",
            headers={"x-correlation-id": str(uuid4())},
        )
    except httpx.HTTPError:
        return 599, "TRANSPORT_ERROR", (time.perf_counter() - started) * 1000
    latency = (time.perf_counter() - started) * 1000
    error_code = "OK" if resp.is_success else resp.json().get("error", "UNKNOWN")
    return resp.status_code, error_code, latency


async def run(total: int, base_url: str, token_code: str) -> None:
    """Launch all redemptions at once and print the outcome histogram."""

    async with httpx.AsyncClient(timeout=10.0) as client:
        results = await asyncio.gather(*(redeem_once(client, base_url, token_code) for _ in range(total)))

    outcomes = Counter(code for _, code, _ in results)
    successes = sum(1 for status, _, _ in results if 200 <= status < 300)
    print(f"total={total}")
    print(f"successes={successes}")
    for code, count in sorted(outcomes.items()):
        print(f"outcome[{code}]={count}")
    print(f"max_ms={max(latency for _, _, latency in results):.2f}")
    if successes != 1:
        raise SystemExit(f"expected exactly one successful redemption, saw {successes}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Race concurrent redemptions of one video token.")
    parser.add_argument("token_code")
    parser.add_argument("--total", type=int, default=50)
    parser.add_argument("--base-url", default="http://localhost:8000")
    args = parser.parse_args()
    asyncio.run(run(args.total, args.base_url, args.token_code))
