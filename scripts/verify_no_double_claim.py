#!/usr/bin/env python3
"""
Fires 20 concurrent worker polls at a running server holding a single
pending job and checks that exactly one of them gets it.

    WORKER_SECRET=... API_URL=http://localhost:8000 python scripts/verify_no_double_claim.py
"""
import asyncio
import os
import uuid

import httpx

API_URL = os.environ.get("API_URL", "http://localhost:8000") + "/functions/v1"
WORKER_SECRET = os.environ.get("WORKER_SECRET", "")

async def attempt_claim(worker_id):
    async with httpx.AsyncClient(base_url=API_URL, headers={"X-WORKER-KEY": WORKER_SECRET}) as client:
        try:
            resp = await client.post("/worker-poll", json={"worker_id": worker_id}, timeout=5.0)
            if resp.status_code == 200:
                job = resp.json().get("job")
                if job:
                    return {"worker_id": worker_id, "job": job}
        except httpx.HTTPError:
            pass
    return None

async def verify_no_double_claim():
    marker = str(uuid.uuid4())
    # 1. Create 1 job at a priority nothing else uses
    async with httpx.AsyncClient(base_url=API_URL) as client:
        print("1. Creating 1 job...")
        resp = await client.post("/create-render-job", json={
            "type": "concurrency_test",
            "priority": 10_000,
            "payload": {"marker": marker, "image_url": "https://example.com/cover.jpg"}
        })
        resp.raise_for_status()
        job_id = resp.json()["id"]
        print(f"   Job created: {job_id}")

    # 2. Spawn 20 concurrent workers trying to claim
    print("2. Spawning 20 concurrent claim attempts...")
    results = await asyncio.gather(*(attempt_claim(f"worker-{i}") for i in range(20)))

    # 3. Analyze results
    claims = [r for r in results if r is not None and r["job"]["id"] == job_id]
    print(f"3. Results: {len(claims)} workers got job {job_id}.")

    if len(claims) == 1:
        print(f"SUCCESS: Exactly one worker claimed the job ({claims[0]['worker_id']}).")
    elif not claims:
        print("FAILURE: No one claimed the job (unexpected).")
    else:
        print(f"FAILURE: {len(claims)} workers claimed the job! Double claim detected.")
        for c in claims:
            print(f"   - {c['worker_id']}")

if __name__ == "__main__":
    asyncio.run(verify_no_double_claim())
