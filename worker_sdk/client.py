import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

class WorkerClient:
    """
    HTTP client for the worker side of the render queue.
    `base_url` points at the functions root, e.g. https://host/functions/v1.
    """
    def __init__(
        self,
        base_url: str,
        worker_id: str,
        worker_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.worker_id = worker_id
        self.worker_key = worker_key
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"X-WORKER-KEY": worker_key},
        )

    async def _post(self, path: str, json_body: Dict[str, Any]) -> httpx.Response:
        return await self.client.post(path, json=json_body)

    async def poll(self) -> Optional[Dict[str, Any]]:
        """
        Claims the next job. Returns the job dict or None when the queue is
        empty or the request failed.
        """
        try:
            resp = await self._post("/worker-poll", json_body={"worker_id": self.worker_id})
            resp.raise_for_status()
            data = resp.json()
            return data.get("job") or None
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            log_fn = logger.info if status_code in (401, 403) else logger.warning
            log_fn("Poll rejected for worker=%s status=%s", self.worker_id, status_code)
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Poll failed for worker=%s: %s", self.worker_id, e)
            return None

    async def update(
        self,
        job_id: str,
        status: str,
        result: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        body: Dict[str, Any] = {
            "id": job_id,
            "status": status,
            "worker_id": self.worker_id,
        }
        if result is not None:
            body["result"] = result
        if error_message is not None:
            body["error_message"] = error_message

        try:
            resp = await self._post("/worker-update", json_body=body)
            resp.raise_for_status()
            return True
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Update to %s failed for worker=%s job=%s: %s", status, self.worker_id, job_id, e)
            return False

    async def complete(self, job_id: str, result: Dict[str, Any]) -> bool:
        return await self.update(job_id, "done", result=result)

    async def fail(self, job_id: str, error: str, result: Optional[Dict[str, Any]] = None) -> bool:
        return await self.update(job_id, "error", result=result, error_message=error)

    async def heartbeat(
        self,
        status: str = "idle",
        polling_interval_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        body: Dict[str, Any] = {
            "id": self.worker_id,
            "ts": datetime.now(timezone.utc).isoformat(),
            "status": status,
            "metadata": metadata or {},
        }
        if polling_interval_ms is not None:
            body["polling_interval_ms"] = polling_interval_ms

        try:
            resp = await self._post("/worker_heartbeat", json_body=body)
            resp.raise_for_status()
            return True
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Heartbeat failed for worker=%s: %s", self.worker_id, e)
            return False

    async def close(self):
        await self.client.aclose()
