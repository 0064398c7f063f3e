"""
Pydantic schemas for the health endpoint.

Field names on the wire are camelCase (`databaseError`, `hasDbConfig`); the
frontend already reads them that way.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DatabaseStatus = Literal["connected", "connecting", "disconnected", "error"]


class HealthEnvironment(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    app_env: str = Field(alias="appEnv")
    port: int
    has_db_config: bool = Field(alias="hasDbConfig")


class HealthSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: Literal["healthy", "degraded"]
    uptime: float
    timestamp: datetime
    database: DatabaseStatus
    database_error: str | None = Field(default=None, alias="databaseError")
    environment: HealthEnvironment

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
