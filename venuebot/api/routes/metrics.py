"""
Metrics Endpoints

Prometheus-compatible metrics and queue statistics for observability.
"""
from typing import Literal

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response, JSONResponse
from loguru import logger

from venuebot.utils.log_sanitizer import describe_exception
from venuebot.utils.metrics import metrics

router = APIRouter(tags=["Metrics"])


async def _refresh_depth_gauges(request: Request) -> dict:
    depths = {}
    for name, gauge in (("inbound", metrics.inbound_queue_depth), ("outbox", metrics.outbound_queue_depth)):
        store = getattr(request.app.state, f"{name}_store", None)
        if store is None:
            continue
        depth = await store.depth()
        gauge.set(depth)
        depths[name] = depth
    return depths


@router.get("/metrics")
async def prometheus_metrics(request: Request):
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text exposition format for scraping.
    Includes:
    - Queue depth per queue
    - Completed, retried and failed entries
    - Webhook processing lag
    - Rate limiter waits and ingestion outcomes

    Content-Type: text/plain; version=0.0.4; charset=utf-8
    """
    try:
        await _refresh_depth_gauges(request)
        output = metrics.export()

        return Response(
            content=output,
            media_type="text/plain; version=0.0.4; charset=utf-8"
        )

    except Exception as e:
        logger.error(f"Failed to export metrics: {describe_exception(e)}")
        return Response(
            content="# Error exporting metrics\n",
            media_type="text/plain",
            status_code=500
        )


@router.get("/metrics/queue")
async def queue_metrics(request: Request):
    """
    Get queue statistics.

    Returns:
        Non-terminal depth plus completed, retried and failed totals per queue
    """
    try:
        depths = await _refresh_depth_gauges(request)
    except Exception as e:
        logger.error(f"Failed to get queue metrics: {describe_exception(e)}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": "Queue storage unavailable"}
        )

    return {
        "status": "ok",
        "metrics": {
            name: {
                "depth": depth,
                "completed": metrics.queue_completed.value(queue=name),
                "retried": metrics.queue_retried.value(queue=name),
            }
            for name, depth in depths.items()
        }
    }


@router.get("/metrics/queue/{queue}/failed")
async def failed_entries(
    request: Request,
    queue: Literal["inbound", "outbox"],
    limit: int = Query(50, ge=1, le=500),
):
    """
    List terminally failed entries, newest first, for operator inspection.
    """
    store = getattr(request.app.state, f"{queue}_store", None)
    if store is None:
        return JSONResponse(status_code=503, content={"status": "error", "error": "Queue not initialized"})

    try:
        entries = await store.failed(limit)
    except Exception as e:
        logger.error(f"Failed to list failed {queue} entries: {describe_exception(e)}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": "Queue storage unavailable"}
        )

    return {
        "status": "ok",
        "entries": [
            entry.model_dump(mode="json", exclude={"payload_json", "claim_token"})
            for entry in entries
        ]
    }
