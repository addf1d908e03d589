"""Log model — application log rows pruned by the cron job."""

from datetime import datetime

from sqlalchemy import String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from orderops.database import Base, UUIDPrimaryKeyMixin


class Log(UUIDPrimaryKeyMixin, Base):
    """A persisted log entry."""

    __tablename__ = "logs"

    level: Mapped[str] = mapped_column(String(20), nullable=False, server_default="info")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), index=True)

    def __repr__(self) -> str:
        return f"<Log(id={self.id}, level={self.level}, created_at={self.created_at})>"
