"""Smoke test a running deployment.

    python scripts/verify.py --base-url http://localhost:8000 --token "Bearer <access token>"
"""
import argparse
import asyncio
import sys
import uuid

import httpx


async def run_verification(base_url: str, token: str) -> bool:
    print(f"Starting verification against {base_url}...\n")
    headers = {"Authorization": token}

    async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as client:
        # 1. Health Check
        print("1. [Health] Checking /health...")
        try:
            resp = await client.get("/health")
        except httpx.HTTPError as e:
            print(f"   FAIL  Connection error: {e}")
            return False
        if resp.status_code != 200 or resp.json() != {"status": "ok"}:
            print(f"   FAIL  Health check: {resp.status_code} {resp.text}")
            return False
        print("   OK    Health check passed")

        # 2. Create Link
        print("\n2. [API] Creating short link...")
        target_url = f"https://www.example.com/verify?run={uuid.uuid4().hex[:8]}"
        resp = await client.post("/v1/links", json={"target_url": target_url}, headers=headers)
        if resp.status_code != 201:
            print(f"   FAIL  Create: {resp.status_code} {resp.text}")
            return False
        code = resp.json()["code"]
        print(f"   OK    Created {resp.json()['short_url']}")

        # 3. Verify Redirect (twice: cold then warm cache)
        print("\n3. [API] Verifying redirect...")
        for attempt in ("cold", "warm"):
            resp = await client.get(f"/{code}", follow_redirects=False)
            if resp.status_code != 307 or resp.headers.get("location") != target_url:
                print(f"   FAIL  Redirect ({attempt}): {resp.status_code} {resp.headers.get('location')}")
                return False
        print(f"   OK    Redirect location matches: {target_url}")

        # 4. Idempotency
        print("\n4. [API] Verifying idempotency...")
        idem_headers = {**headers, "Idempotency-Key": f"verify-{uuid.uuid4()}"}
        resp1 = await client.post("/v1/links", json={"target_url": "https://p.com"}, headers=idem_headers)
        resp2 = await client.post("/v1/links", json={"target_url": "https://p.com"}, headers=idem_headers)
        if resp1.json().get("code") != resp2.json().get("code"):
            print("   FAIL  Idempotency: codes differ")
            return False
        print("   OK    Same code returned")

        # 5. Soft delete
        print("\n5. [API] Verifying delete...")
        resp = await client.delete(f"/v1/links/{code}", headers=headers)
        if resp.status_code != 200:
            print(f"   FAIL  Delete: {resp.status_code}")
            return False
        resp = await client.get(f"/{code}", follow_redirects=False)
        if resp.status_code != 410:
            print(f"   FAIL  Deleted link answered {resp.status_code}")
            return False
        print("   OK    Deleted link is gone")

        # 6. Metrics
        print("\n6. [Observability] Verifying metrics...")
        resp = await client.get("/metrics")
        if resp.status_code != 200 or "http_requests_total" not in resp.text:
            print(f"   FAIL  Metrics: {resp.status_code}")
            return False
        print("   OK    Metrics endpoint exposed")

    print("\nVerification complete")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--token", required=True, help="Authorization header value")
    args = parser.parse_args()
    sys.exit(0 if asyncio.run(run_verification(args.base_url, args.token)) else 1)
