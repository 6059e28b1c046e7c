from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQS = Counter(
    "bucketbridge_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "bucketbridge_latency_seconds",
    "Latency",
    ["method", "path"],
)
DECISIONS = Counter(
    "bucketbridge_bucket_decisions_total",
    "Bucket admission decisions",
    ["outcome"],
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r
