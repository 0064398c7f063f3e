"""
Pydantic schemas for the ad-hoc query endpoint.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    # Optional here so a missing text maps to 400 rather than a 422 validation error.
    text: str | None = None
    params: list[Any] = Field(default_factory=list)


class QueryField(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    data_type_id: int = Field(alias="dataTypeID")
    data_type: str = Field(alias="dataType")


class QueryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rows: list[dict[str, Any]]
    row_count: int = Field(alias="rowCount")
    fields: list[QueryField]
