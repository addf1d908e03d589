"""The clock and day counts frozen for one cron pass."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from orderops.config import Settings


@dataclass(frozen=True)
class RunContext:
    """Immutable inputs shared by every component during a single pass."""

    now: datetime
    renewal_window_days: int = 7
    grace_days: int = 7
    log_retention_days: int = 7

    @classmethod
    def from_settings(cls, settings: Settings, now: datetime | None = None) -> "RunContext":
        """Build a context from configuration, defaulting ``now`` to naive UTC."""
        if now is None:
            now = datetime.now(timezone.utc).replace(tzinfo=None)
        return cls(
            now=now,
            renewal_window_days=settings.renewal_window_days,
            grace_days=settings.unpaid_order_grace_days,
            log_retention_days=settings.log_retention_days,
        )

    @property
    def today(self) -> date:
        return self.now.date()

    @property
    def renewal_horizon(self) -> date:
        """Subscriptions expiring on or before this date are due an invoice."""
        return self.today + timedelta(days=self.renewal_window_days)

    @property
    def grace_cutoff(self) -> date:
        """Suspended/pending subscriptions that expired on or before this date get cancelled."""
        return self.today - timedelta(days=self.grace_days)

    @property
    def log_cutoff(self) -> datetime:
        return self.now - timedelta(days=self.log_retention_days)
