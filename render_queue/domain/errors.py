class RenderQueueError(Exception):
    """Base exception for render queue errors."""
    status_code = 400

class MissingFieldError(RenderQueueError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")

class InvalidStatusError(RenderQueueError):
    def __init__(self, status, allowed=None):
        self.status = status
        msg = f"Invalid status: {status}"
        if allowed:
            msg += f" (expected one of: {', '.join(sorted(allowed))})"
        super().__init__(msg)

class JobNotFoundError(RenderQueueError):
    status_code = 404

    def __init__(self, job_id):
        super().__init__(f"Job {job_id} not found")

class AuthError(RenderQueueError):
    status_code = 401
