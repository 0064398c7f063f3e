"""
Ad-hoc query API endpoint.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from core import dependencies
from core.errors import ServiceUnavailable
from core.lifecycle import LifecycleManager

from . import schemas, service

router = APIRouter()

logger = logging.getLogger(__name__)


def _bytea_hex(value: bytes) -> str:
    # Same text form Postgres prints for bytea.
    return "\\x" + value.hex()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": True, "message": message})


@router.post("/api/query")
async def query(
    request: schemas.QueryRequest,
    manager: LifecycleManager = Depends(dependencies.get_manager),
) -> JSONResponse:
    try:
        result = await service.run_query(manager, request.text, request.params)
        response = schemas.QueryResponse(
            rows=result.rows,
            row_count=result.row_count,
            fields=[schemas.QueryField(**f) for f in result.fields],
        )
        content = jsonable_encoder(
            response.model_dump(by_alias=True),
            custom_encoder={bytes: _bytea_hex},
        )
    except service.QueryTextMissing as exc:
        return _error(400, str(exc))
    except ServiceUnavailable as exc:
        return _error(503, str(exc))
    except Exception as exc:
        logger.exception("query_failed")
        return _error(500, str(exc))

    return JSONResponse(content=content)
