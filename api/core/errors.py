"""
Database error kinds shared by the lifecycle manager and the HTTP layer.
"""

from __future__ import annotations

import asyncpg


# Database failures are explicit and separable from other runtime errors.
class DatabaseError(RuntimeError):
    pass


class ConfigMissing(DatabaseError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required environment variables: {', '.join(self.missing)}")


class ConnectFailure(DatabaseError):
    pass


class ConnectTimeout(ConnectFailure):
    pass


class AcquireTimeout(DatabaseError):
    pass


class ServiceUnavailable(DatabaseError):
    pass


# SQLSTATEs meaning the server side of the connection went away.
_RESET_SQLSTATES = frozenset(
    {
        "08000",
        "08001",
        "08003",
        "08004",
        "08006",
        "57P01",  # admin_shutdown
        "57P02",  # crash_shutdown
        "57P03",  # cannot_connect_now
    }
)

_RESET_TYPES: tuple[type[BaseException], ...] = (
    ConnectionResetError,
    ConnectionAbortedError,
    BrokenPipeError,
    asyncpg.PostgresConnectionError,
    asyncpg.AdminShutdownError,
    asyncpg.CrashShutdownError,
    asyncpg.CannotConnectNowError,
)


def is_connection_reset(exc: BaseException) -> bool:
    """
    True when `exc` means the transport connection was closed under us,
    as opposed to a logical query error.
    """
    if isinstance(exc, _RESET_TYPES):
        return True
    sqlstate = getattr(exc, "sqlstate", None)
    return isinstance(sqlstate, str) and sqlstate in _RESET_SQLSTATES
