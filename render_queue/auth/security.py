import hmac
import logging
from typing import Optional

from fastapi import Security, HTTPException
from fastapi.security import APIKeyHeader

from render_queue.api.deps import AppSettings

logger = logging.getLogger(__name__)

WORKER_KEY_HEADER = APIKeyHeader(name="X-WORKER-KEY", auto_error=False)
ADMIN_KEY_HEADER = APIKeyHeader(name="X-ADMIN-KEY", auto_error=False)

def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())

class SharedSecretVerifier:
    """
    Dependency comparing a request header against one shared secret from
    settings. A missing secret on the server side rejects everything.
    """
    def __init__(self, setting_name: str, label: str):
        self.setting_name = setting_name
        self.label = label

    def check(self, provided: Optional[str], expected: Optional[str]) -> None:
        if not expected:
            logger.error("%s is not configured, rejecting %s request", self.setting_name, self.label)
            raise HTTPException(status_code=401, detail="Unauthorized")
        if not provided:
            raise HTTPException(status_code=401, detail=f"Missing {self.label} key")
        if not secrets_match(provided, expected):
            logger.warning("Rejected %s request with invalid key", self.label)
            raise HTTPException(status_code=401, detail="Unauthorized")

class WorkerKeyVerifier(SharedSecretVerifier):
    def __init__(self):
        super().__init__("WORKER_SECRET", "worker")

    async def __call__(self, settings: AppSettings, x_worker_key: Optional[str] = Security(WORKER_KEY_HEADER)) -> None:
        self.check(x_worker_key, settings.WORKER_SECRET)

class AdminKeyVerifier(SharedSecretVerifier):
    def __init__(self):
        super().__init__("ADMIN_SECRET", "admin")

    async def __call__(self, settings: AppSettings, x_admin_key: Optional[str] = Security(ADMIN_KEY_HEADER)) -> None:
        self.check(x_admin_key, settings.ADMIN_SECRET)

require_worker_key = WorkerKeyVerifier()
require_admin_key = AdminKeyVerifier()
