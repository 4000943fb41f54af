#!/usr/bin/env python3
"""
Minimal render worker for local runs: "renders" by echoing the source image
back as the artifact. Real workers replace `echo_handler`.

    WORKER_SECRET=... API_URL=http://localhost:8000 python scripts/run_worker.py
"""
import asyncio
import logging
import os
import signal

from worker_sdk import WorkerClient, WorkerRunner

API_URL = os.environ.get("API_URL", "http://localhost:8000") + "/functions/v1"

async def echo_handler(job: dict) -> dict:
    await asyncio.sleep(0.5)  # simulate work
    return {"success": True, "url": job.get("image_url"), "worker": "local-echo-worker"}

async def main():
    client = WorkerClient(API_URL, worker_id="local-echo-worker", worker_key=os.environ["WORKER_SECRET"])
    runner = WorkerRunner(client, echo_handler, poll_interval=2.0, heartbeat_interval=15.0)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.stop)
        except NotImplementedError:
            # Windows support
            pass

    try:
        await runner.run()
    finally:
        await client.close()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
