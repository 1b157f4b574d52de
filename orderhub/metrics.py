# orderhub/metrics.py
from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Histogram, generate_latest, multiprocess

BULK_ITEMS = Counter(
    "bulk_operation_items_total", "Per-order outcomes of bulk operations", ["operation", "outcome"]
)
PROVIDER_CALLS = Counter(
    "provider_calls_total", "Provider adapter calls", ["provider", "call", "outcome"]
)
PROVIDER_LATENCY = Histogram(
    "provider_call_latency_seconds", "Provider call latency (seconds)", ["provider", "call"]
)
PROVIDER_RETRIES = Counter(
    "provider_retries_total", "Retries after TransientError", ["provider", "operation"]
)
TRACKING_ORDERS = Counter(
    "tracking_refresh_orders_total", "Orders handled by tracking refresh", ["result"]
)

router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    """
    Single process: export the default REGISTRY.
    Multi-process (PROMETHEUS_MULTIPROC_DIR set): merge the shards into a temporary registry.
    """
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        payload = generate_latest(registry)
    else:
        payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
