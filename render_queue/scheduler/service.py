import asyncio
import logging
from typing import Optional

from render_queue.db.session import AsyncSessionLocal
from render_queue.api.v1.metrics import LEADER_STATUS
from render_queue.scheduler.ticker import run_leader_tasks, run_metrics_tasks
from render_queue.utils.locking import try_advisory_lock

logger = logging.getLogger(__name__)

class SweepService:
    """
    In-process replacement for an external cron hitting
    reset-stuck-render-jobs. Only the advisory-lock holder sweeps.
    """
    def __init__(self, interval: int = 60, session_factory=AsyncSessionLocal):
        self.interval = interval
        self.session_factory = session_factory
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._is_leader = False

    @property
    def is_leader(self) -> bool:
        return self._is_leader

    async def start(self):
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Sweep service started (interval=%ss).", self.interval)

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        LEADER_STATUS.set(0)
        logger.info("Sweep service stopped.")

    async def tick(self, session) -> int:
        """One sweep iteration. Returns the number of jobs reset."""
        reset = 0
        is_leader = await try_advisory_lock(session)

        if is_leader:
            if not self._is_leader:
                logger.info("Acquired sweeper leadership.")
                self._is_leader = True
                LEADER_STATUS.set(1)
            reset = await run_leader_tasks(session)
        elif self._is_leader:
            logger.info("Lost sweeper leadership.")
            self._is_leader = False
            LEADER_STATUS.set(0)

        # Every instance keeps its /metrics gauges fresh
        await run_metrics_tasks(session)
        return reset

    async def _loop(self):
        session = None
        while self._running:
            try:
                if not session:
                    session = self.session_factory()
                await self.tick(session)

            except Exception as e:
                logger.error("Error in sweep loop: %s", e, exc_info=True)
                self._is_leader = False
                LEADER_STATUS.set(0)

                # Reconnect on the next tick
                if session:
                    await session.close()
                    session = None

            await asyncio.sleep(self.interval)

        if session:
            await session.close()
