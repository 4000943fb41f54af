import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional

from worker_sdk.client import WorkerClient

logger = logging.getLogger(__name__)

# Receives the claimed job dict, returns the result sent with status=done
Handler = Callable[[dict], Coroutine[Any, Any, dict]]

class WorkerRunner:
    def __init__(
        self,
        client: WorkerClient,
        handler: Handler,
        poll_interval: float = 5.0,
        heartbeat_interval: float = 30.0,
        shutdown_timeout: float = 10.0,
    ):
        self.client = client
        self.handler = handler
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval
        self.shutdown_timeout = shutdown_timeout
        self.running = False
        self.current_job_id: Optional[str] = None
        self._shutdown_event = asyncio.Event()
        # Held while reporting, so a lease refresh never lands after done/error
        self._report_lock = asyncio.Lock()

    @property
    def polling_interval_ms(self) -> int:
        return int(self.poll_interval * 1000)

    async def run(self):
        self.running = True
        self._shutdown_event.clear()
        logger.info(f"Worker {self.client.worker_id} started")

        heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        try:
            while self.running:
                try:
                    processed = await self.run_once()
                    if not processed:
                        await self._sleep(self.poll_interval)

                except Exception as e:
                    logger.exception("Error in runner loop for worker %s: %s", self.client.worker_id, e)
                    await self._sleep(self.poll_interval)
        finally:
            self.running = False
            self._shutdown_event.set()
            # Let an in-flight heartbeat finish before giving up on it
            try:
                await asyncio.wait_for(heartbeat_task, timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                pass
            logger.info("Worker runner stopped")

    def stop(self):
        self.running = False
        self._shutdown_event.set()

    async def run_once(self) -> bool:
        """Polls once and processes the job if any. Returns True if a job was handled."""
        job = await self.client.poll()
        if not job:
            return False
        await self.process_job(job)
        return True

    async def process_job(self, job: dict):
        try:
            job_id = job["id"]
        except (KeyError, TypeError) as e:
            logger.error("Received malformed job payload in runner: %s", e)
            return

        logger.info(f"Claimed render job {job_id} (type={job.get('type')})")
        self.current_job_id = job_id
        try:
            result = await self.handler(job)

            async with self._report_lock:
                self.current_job_id = None
                completed = await self.client.complete(job_id, result)
            if completed:
                logger.info(f"Job {job_id} completed successfully")
            else:
                logger.error(
                    "Job %s handler succeeded but the done report failed; the sweep will re-queue it",
                    job_id,
                )

        except Exception as e:
            error_msg = f"{type(e).__name__}: {str(e)}"
            logger.error(f"Job {job_id} failed: {error_msg}")
            async with self._report_lock:
                self.current_job_id = None
                failed = await self.client.fail(
                    job_id, error_msg, result={"success": False, "worker": self.client.worker_id}
                )
            if not failed:
                logger.error("Failed to report failure for job %s", job_id)

        finally:
            self.current_job_id = None

    async def _heartbeat_loop(self):
        while self.running:
            job_id = self.current_job_id
            await self.client.heartbeat(
                status="processing" if job_id else "idle",
                polling_interval_ms=self.polling_interval_ms,
                metadata={"current_job_id": job_id} if job_id else {},
            )
            async with self._report_lock:
                if self.current_job_id:
                    # Re-reporting running bumps updated_at, keeping the sweep away
                    await self.client.update(self.current_job_id, "running")
            await self._sleep(self.heartbeat_interval)

    async def _sleep(self, seconds: float):
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
