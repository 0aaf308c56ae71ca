"""
Metrics Endpoint

- GET /metrics - Queue metrics in the Prometheus text exposition format
"""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from digestion.dependencies import DigestionServices, get_digestion_services

router = APIRouter(tags=["metrics"])

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics", response_class=PlainTextResponse)
async def get_metrics(
    services: DigestionServices = Depends(get_digestion_services),
) -> PlainTextResponse:
    text = await services.monitor.render_metrics()
    return PlainTextResponse(content=text, media_type=CONTENT_TYPE)
