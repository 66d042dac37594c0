"""Fetch and print an owner's token funnel metrics."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for owner metric snapshots."""

    parser = argparse.ArgumentParser(description="Fetch owner token metrics endpoint.")
    parser.add_argument("owner_id")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--api-key", default="dev-secret")
    parser.add_argument("--days", type=int, default=30)
    args = parser.parse_args()

    resp = httpx.get(
        f"{args.base_url}/tokens/metrics",
        params={"days": args.days},
        headers={"x-api-key": args.api_key, "x-owner-id": args.owner_id},
        timeout=10.0,
    )
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
