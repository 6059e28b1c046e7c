from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime

import redis
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from .auth import require_auth
from .backends import Backend, MemoryBackend
from .blocking import to_thread
from .bucket import ConsumeResult, create_bucket
from .client import initialize, reset
from .config import reload_settings, settings
from .logging_setup import RequestLogMiddleware, init_logging
from .metrics import DECISIONS, LAT, REQS, router as metrics_router


class Health(BaseModel):
    status: str
    time: str
    backend: str


class ConsumeBody(BaseModel):
    capacity: float = Field(..., gt=0, allow_inf_nan=False)
    refill_rate: float = Field(
        ..., gt=0, allow_inf_nan=False, description="tokens per minute"
    )
    cost: float = Field(default=1, ge=0, allow_inf_nan=False)


def _make_store():
    if settings.STORE_BACKEND == "memory":
        return MemoryBackend()
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    store = _make_store()
    app.state.backend = await to_thread(initialize, store)
    try:
        yield
    finally:
        reset()
        if isinstance(store, redis.Redis):
            store.close()


def _backend(request: Request) -> Backend:
    backend = getattr(request.app.state, "backend", None)
    if backend is None:
        raise HTTPException(status_code=503, detail="store not initialized")
    return backend


def _denied(result: ConsumeResult, bucket_id: str, cost: float) -> JSONResponse:
    headers = {}
    retry_after = result.error.retry_after if result.error else None
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(
        {
            "detail": "not enough tokens",
            "id": bucket_id,
            "tokens": result.token_amount,
            "cost": cost,
        },
        status_code=429,
        headers=headers,
    )


init_logging(settings.LOG_LEVEL)

app = FastAPI(title="BucketBridge", version="1.0.0", lifespan=lifespan)
app.add_middleware(RequestLogMiddleware)
app.include_router(metrics_router())

origins = [o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RedisError)
async def _store_unavailable(request: Request, exc: RedisError):
    return JSONResponse({"detail": "store unavailable"}, status_code=503)


@app.middleware("http")
async def _metrics_and_rate(request: Request, call_next):
    method = request.method
    path = request.url.path
    start = time.time()
    status_code = 500
    try:
        backend = getattr(request.app.state, "backend", None)
        if settings.RATE_LIMIT_ENABLED and backend is not None:
            client_host = request.client.host if request.client else "unknown"
            bucket = create_bucket(
                f"client:{client_host}",
                settings.RATE_LIMIT_CAPACITY,
                settings.RATE_LIMIT_REFILL_PER_MINUTE,
                backend=backend,
            )
            try:
                result = await to_thread(bucket.safe_consume, 1)
            except RedisError:
                response = JSONResponse({"detail": "store unavailable"}, status_code=503)
                status_code = response.status_code
                return response
            DECISIONS.labels("admitted" if result.success else "denied").inc()
            if not result.success:
                response = _denied(result, bucket.id, 1)
                status_code = response.status_code
                return response
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.time() - start
        REQS.labels(method, path, str(status_code)).inc()
        LAT.labels(method, path).observe(duration)


@app.get("/health", response_model=Health)
def health(request: Request):
    backend = getattr(request.app.state, "backend", None)
    return Health(
        status="ok",
        time=datetime.utcnow().isoformat(),
        backend=backend.name if backend is not None else "none",
    )


@app.post("/buckets/{bucket_id}/consume")
async def consume(
    bucket_id: str,
    body: ConsumeBody,
    backend: Backend = Depends(_backend),
    _=Depends(require_auth),
):
    bucket = create_bucket(
        bucket_id, body.capacity, body.refill_rate, backend=backend
    )
    result = await to_thread(bucket.safe_consume, body.cost)
    DECISIONS.labels("admitted" if result.success else "denied").inc()
    if not result.success:
        return _denied(result, bucket_id, body.cost)
    return {"id": bucket_id, "admitted": True, "tokens": result.token_amount}


@app.get("/buckets/{bucket_id}")
async def peek(
    bucket_id: str,
    capacity: float = Query(..., gt=0, allow_inf_nan=False),
    refill_rate: float = Query(
        ..., gt=0, allow_inf_nan=False, description="tokens per minute"
    ),
    backend: Backend = Depends(_backend),
    _=Depends(require_auth),
):
    bucket = create_bucket(bucket_id, capacity, refill_rate, backend=backend)
    tokens = await to_thread(bucket.get_token_amount)
    return {
        "id": bucket_id,
        "tokens": tokens,
        "capacity": bucket.capacity,
        "refill_rate": bucket.refill_rate,
    }
