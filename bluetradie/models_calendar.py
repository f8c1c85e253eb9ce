"""
Calendar Models
Scheduled events and per-user external calendar sync state
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from .database import Base
from .shared.validators import utcnow

DEFAULT_EVENT_COLOR = "#3b82f6"
DEFAULT_EVENT_TIMEZONE = "Australia/Sydney"


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False)

    # Event details
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(Text, nullable=True)

    # Timing (naive UTC)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    all_day = Column(Boolean, default=False, nullable=False)
    timezone = Column(String(64), default=DEFAULT_EVENT_TIMEZONE)

    # Links to business data (weak references, no ownership)
    job_id = Column(Integer, nullable=True)
    customer_id = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)

    event_type = Column(String(20), default="job", server_default="job", nullable=False)
    status = Column(String(20), default="scheduled", server_default="scheduled", nullable=False)
    color = Column(String(20), default=DEFAULT_EVENT_COLOR)

    # Recurring events (stored, not expanded)
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurrence_rule = Column(Text, nullable=True)  # iCal RRULE
    recurrence_end_date = Column(DateTime, nullable=True)
    parent_event_id = Column(
        Integer, ForeignKey("calendar_events.id", ondelete="SET NULL"), nullable=True
    )

    # External calendar sync
    google_event_id = Column(String(255), nullable=True)
    outlook_event_id = Column(String(255), nullable=True)
    sync_status = Column(
        String(20), default="not_synced", server_default="not_synced", nullable=False
    )
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_calendar_events_user", "user_id"),
        Index("idx_calendar_events_start", "start_time"),
        Index("idx_calendar_events_job", "job_id"),
        Index("idx_calendar_events_google", "google_event_id"),
        Index("idx_calendar_events_outlook", "outlook_event_id"),
    )

    def __repr__(self):
        return f"<CalendarEvent id={self.id} user_id={self.user_id} status={self.status}>"


class CalendarSyncSettings(Base):
    __tablename__ = "calendar_sync_settings"

    id = Column(Integer, primary_key=True, index=True)
    # One row per user; concurrent first-time upserts collide here
    user_id = Column(String(255), nullable=False, unique=True)

    # Google Calendar (tokens encrypted)
    google_enabled = Column(Boolean, default=False, nullable=False)
    google_access_token = Column(Text, nullable=True)
    google_refresh_token = Column(Text, nullable=True)
    google_token_expiry = Column(DateTime, nullable=True)
    google_calendar_id = Column(String(500), nullable=True)
    google_sync_token = Column(Text, nullable=True)
    google_last_sync = Column(DateTime, nullable=True)

    # Outlook Calendar (tokens encrypted)
    outlook_enabled = Column(Boolean, default=False, nullable=False)
    outlook_access_token = Column(Text, nullable=True)
    outlook_refresh_token = Column(Text, nullable=True)
    outlook_token_expiry = Column(DateTime, nullable=True)
    outlook_calendar_id = Column(String(500), nullable=True)
    outlook_delta_token = Column(Text, nullable=True)
    outlook_last_sync = Column(DateTime, nullable=True)

    # Sync preferences
    sync_direction = Column(String(20), default="both", nullable=False)
    auto_sync = Column(Boolean, default=True, nullable=False)
    sync_frequency = Column(Integer, default=15, nullable=False)  # minutes

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        # Never include token columns
        return (
            f"<CalendarSyncSettings user_id={self.user_id} "
            f"google={self.google_enabled} outlook={self.outlook_enabled}>"
        )
