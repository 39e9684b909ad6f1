from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import DateTime, Integer

# Timestamp that stands for "never set" in date filters and exports.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

def utcnow():
    return datetime.now(timezone.utc)

def is_zero_time(value) -> bool:
    if value is None:
        return True
    if value.tzinfo is None:
        return value <= ZERO_TIME.replace(tzinfo=None)
    return value <= ZERO_TIME

class IntIdMixin:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
