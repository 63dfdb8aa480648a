import asyncio
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from companion.routers import chat, forum, metrics, tutorials, users
from companion.services.container import get_services
from companion.utils import slog
from companion.utils.logging import configure_logging
from companion.utils.metrics import record_request, record_endpoint


def _sweep_interval() -> float:
    return float(os.getenv("CACHE_SWEEP_INTERVAL_SECONDS", "300"))


async def _maintenance_loop(interval: float) -> None:
    # expiry + size sweeps for every cache family
    while True:
        await asyncio.sleep(interval)
        try:
            get_services().registry.maintain()
        except Exception as e:
            logger.exception(f"[cache] maintenance failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    get_services()
    task = asyncio.create_task(_maintenance_loop(_sweep_interval()))
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Companion API", lifespan=lifespan)


@app.middleware("http")
async def _logging_middleware(request, call_next):
    start = time.perf_counter()
    req_id = slog.new_request_id()
    client_ip = request.client.host if request.client else None
    try:
        response = await call_next(request)
    except Exception as e:
        latency_ms = int((time.perf_counter() - start) * 1000)
        ctx = getattr(request.state, "log_context", {})
        slog.log_event(
            "request.error",
            request_id=req_id,
            path=str(request.url.path),
            method=request.method,
            latency_ms=latency_ms,
            client_ip=client_ip,
            error=str(e),
            **(ctx or {}),
        )
        raise
    latency_ms = int((time.perf_counter() - start) * 1000)
    ctx = getattr(request.state, "log_context", {}) or {}
    slog.finalize_request_log(
        request_id=req_id,
        method=request.method,
        path=str(request.url.path),
        status=response.status_code,
        latency_ms=latency_ms,
        client_ip=client_ip,
        ctx=ctx,
    )
    record_request(latency_ms=latency_ms, status=response.status_code)
    route = request.scope.get("route")
    # templated path keeps per-endpoint stats bounded
    record_endpoint(method=request.method, path=getattr(route, "path", str(request.url.path)), latency_ms=latency_ms)
    response.headers["X-Request-ID"] = req_id
    return response


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(forum.router, prefix="/forum", tags=["forum"])
app.include_router(tutorials.router, prefix="/tutorials", tags=["tutorials"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(chat.router, prefix="/chat", tags=["chat"])
app.include_router(metrics.router)
