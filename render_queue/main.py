import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from render_queue.settings import settings
from render_queue.api.v1.jobs import router as jobs_router
from render_queue.api.v1.workers import router as workers_router
from render_queue.api.v1.admin import router as admin_router
from render_queue.api.v1.metrics import router as metrics_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("render_queue")

FUNCTIONS_PREFIX = "/functions/v1"

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    sweeper = None
    if settings.SWEEP_ENABLED:
        from render_queue.scheduler.service import SweepService

        sweeper = SweepService(interval=settings.SWEEP_INTERVAL_SECONDS)
        await sweeper.start()
    else:
        logger.info("In-process sweep disabled; expecting an external scheduler.")

    yield

    # Shutdown
    if sweeper:
        await sweeper.stop()

app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid field {field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error(400, message)

@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, str(exc))

app.include_router(jobs_router, prefix=FUNCTIONS_PREFIX, tags=["jobs"])
app.include_router(workers_router, prefix=FUNCTIONS_PREFIX, tags=["workers"])
app.include_router(admin_router, prefix=FUNCTIONS_PREFIX, tags=["admin"])
app.include_router(metrics_router, tags=["metrics"])

@app.get("/health")
async def health():
    return {"status": "ok"}
