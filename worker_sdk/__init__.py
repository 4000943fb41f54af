from .client import WorkerClient
from .runner import Handler, WorkerRunner

__all__ = [
    "Handler",
    "WorkerClient",
    "WorkerRunner",
]
