#!/usr/bin/env python3
"""
Recovery sweep for cron: resets stuck RUNNING jobs, and with --errors also
re-queues failed jobs under the retry limit. Talks to the database directly.

    python scripts/reset_stuck_jobs.py --minutes 5
    python scripts/reset_stuck_jobs.py --errors
"""
import argparse
import asyncio
import logging

from render_queue.commands.reset_stuck import reset_error_jobs, reset_stuck_jobs
from render_queue.db.session import AsyncSessionLocal, engine

logger = logging.getLogger("reset_stuck_jobs")

async def main(minutes, errors):
    async with AsyncSessionLocal() as session:
        if errors:
            jobs = await reset_error_jobs(session)
        else:
            jobs = await reset_stuck_jobs(session, minutes=minutes)
        await session.commit()

    for job in jobs:
        logger.info("reset %s (%s) retry_count=%s", job["id"], job["type"], job["retry_count"])
    logger.info("Reset %s jobs", len(jobs))

    await engine.dispose()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--minutes", type=int, default=None, help="stuck threshold (default STUCK_JOB_MINUTES)")
    parser.add_argument("--errors", action="store_true", help="re-queue failed jobs instead of stuck ones")
    args = parser.parse_args()

    asyncio.run(main(args.minutes, args.errors))
