"""Shared API dependencies — single import point for all routers.

Re-exports the database session dependency and provides the run context so
that router modules can import everything they need from one place::

    from orderops.api.deps import get_db, get_run_context
"""

from orderops.billing.context import RunContext
from orderops.config import settings
from orderops.database import get_db


def get_run_context() -> RunContext:
    """Freeze the clock and cron settings for one request."""
    return RunContext.from_settings(settings)


__all__ = [
    "get_db",
    "get_run_context",
]
