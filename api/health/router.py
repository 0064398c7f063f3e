"""
Health API endpoint.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from core import dependencies
from core.config import ServiceSettings
from core.lifecycle import LifecycleManager

from . import service

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/api/health")
async def health(
    manager: LifecycleManager = Depends(dependencies.get_manager),
    settings: ServiceSettings = Depends(dependencies.get_settings),
    started_at: float = Depends(dependencies.get_started_at),
) -> JSONResponse:
    """
    Always answers 200; database trouble shows up in the body, not the status code.
    """
    try:
        snapshot = await service.health_snapshot(manager, started_at=started_at, settings=settings)
        return JSONResponse(status_code=200, content=snapshot.to_payload())
    except Exception as exc:
        logger.exception("health_snapshot_failed")
        return JSONResponse(
            status_code=200,
            content={
                "status": "degraded",
                "error": str(exc),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
