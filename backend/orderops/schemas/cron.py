"""Pydantic v2 response schemas for the cron endpoint."""

from datetime import datetime

from pydantic import BaseModel


class RunSummaryResponse(BaseModel):
    """Counters from one cron run."""

    started_at: datetime
    finished_at: datetime | None
    subscriptions_suspended: int
    subscriptions_cancelled: int
    invoices_created: int
    invoices_cancelled: int
    invoices_auto_paid: int
    upgrades_updated: int
    upgrades_deleted: int
    logs_purged: int
    errors: list[str]
