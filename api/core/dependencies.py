"""
FastAPI dependencies for the process-wide database objects.

`main.lifespan` stores the lifecycle manager and settings on `app.state`;
routes get them from here instead of importing module globals.
"""

from __future__ import annotations

from fastapi import Request

from .config import ServiceSettings
from .lifecycle import LifecycleManager


def get_manager(request: Request) -> LifecycleManager:
    return request.app.state.db


def get_settings(request: Request) -> ServiceSettings:
    return request.app.state.settings


def get_started_at(request: Request) -> float:
    return request.app.state.started_at
