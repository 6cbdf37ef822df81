from datetime import datetime, timezone
import pytz
from app.config import settings

# Library's local timezone, used for scheduling and display
LOCAL_TZ = pytz.timezone(settings.timezone)

def now_utc() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(timezone.utc)

def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (sqlite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def to_local(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(LOCAL_TZ)
