"""Calendar service - Business logic for scheduling and external sync bookkeeping"""

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...config import CALENDAR_TIMEZONE
from ...models_calendar import (
    DEFAULT_EVENT_COLOR,
    DEFAULT_EVENT_TIMEZONE,
    CalendarEvent,
    CalendarSyncSettings,
)
from ...shared.validators import utcnow
from ...utils.token_encryption import decrypt_token, encrypt_token
from .repository import CalendarEventRepository, CalendarSyncSettingsRepository
from .schemas import (
    EVENT_FIELD_MAP,
    NON_NULLABLE_EVENT_FIELDS,
    CalendarEventCreate,
    CalendarEventUpdate,
    JobEventCreate,
    SyncPreferencesUpdate,
)

logger = logging.getLogger(__name__)


class InvalidParentEventError(ValueError):
    """parent_event_id does not reference one of the caller's events"""


PROVIDERS = ("google", "outlook")

# Per-provider cursor column: Google sync tokens, Outlook delta tokens
CURSOR_COLUMNS = {"google": "google_sync_token", "outlook": "outlook_delta_token"}

PREFERENCE_FIELD_MAP = {
    "syncDirection": "sync_direction",
    "autoSync": "auto_sync",
    "syncFrequency": "sync_frequency",
}


class CalendarService:
    """Service layer for calendar business logic"""

    def __init__(
        self,
        db: Session,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
    ):
        self.db = db
        self.repo = CalendarEventRepository()
        self.settings_repo = CalendarSyncSettingsRepository()
        self.clock = clock or utcnow
        if tz is None and CALENDAR_TIMEZONE:
            tz = ZoneInfo(CALENDAR_TIMEZONE)
        self.tz = tz

    # ------------------------------------------------------------------
    # Time helpers
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self.clock()

    def today_bounds(self) -> tuple[datetime, datetime]:
        """
        Naive UTC bounds of the current calendar day in the service timezone.

        The end is the last microsecond before the next local midnight, so the
        inclusive range queries behave as [midnight, next midnight).
        """
        now_utc = self.now().replace(tzinfo=timezone.utc)
        local_now = now_utc.astimezone(self.tz) if self.tz else now_utc.astimezone()
        local_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        # Aware arithmetic is wall-clock, so this lands on midnight across DST changes
        local_next = local_start + timedelta(days=1)

        day_start = local_start.astimezone(timezone.utc).replace(tzinfo=None)
        day_end = local_next.astimezone(timezone.utc).replace(tzinfo=None) - timedelta(microseconds=1)
        return day_start, day_end

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def create_event(self, user_id: str, data: CalendarEventCreate) -> CalendarEvent:
        """Create a calendar event owned by user_id"""
        event_data = {
            EVENT_FIELD_MAP[key]: value for key, value in data.model_dump().items()
        }
        if not event_data.get("color"):
            event_data["color"] = DEFAULT_EVENT_COLOR
        if not event_data.get("timezone"):
            event_data["timezone"] = DEFAULT_EVENT_TIMEZONE
        self._check_parent_event(user_id, event_data.get("parent_event_id"))

        event = self.repo.create_event(self.db, user_id, self.now(), **event_data)
        logger.info(f"📅 Created calendar event {event.id} ({event.event_type}) for user {user_id}")
        return event

    def _check_parent_event(
        self, user_id: str, parent_id: Optional[int], event_id: Optional[int] = None
    ) -> None:
        if parent_id is None:
            return
        if parent_id == event_id or self.get_event(parent_id, user_id) is None:
            raise InvalidParentEventError("parentEventId must reference another of your events")

    def get_event(self, event_id: int, user_id: str) -> Optional[CalendarEvent]:
        """Get an event; None when missing or owned by someone else"""
        return self.repo.get_event_by_id(self.db, event_id, user_id)

    def get_events_by_date_range(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        """Get events overlapping [start, end], ordered by start time"""
        if start > end:
            raise ValueError("startDate must not be after endDate")
        return self.repo.get_events_overlapping(self.db, user_id, start, end)

    def get_events_by_job(self, job_id: int, user_id: str) -> list[CalendarEvent]:
        return self.repo.get_events_by_job(self.db, job_id, user_id)

    def update_event(
        self, event_id: int, user_id: str, updates: dict[str, Any]
    ) -> Optional[CalendarEvent]:
        """
        Partially update an event.

        Keys are column names. Unknown keys are ignored and an explicit None
        for a NOT NULL column is skipped. updated_at is always refreshed.
        """
        clean = {
            key: value
            for key, value in updates.items()
            if not (value is None and key in NON_NULLABLE_EVENT_FIELDS)
        }
        self._check_parent_event(user_id, clean.get("parent_event_id"), event_id)
        return self.repo.update_event(self.db, event_id, user_id, self.now(), clean)

    def update_event_from_request(
        self, event_id: int, user_id: str, data: CalendarEventUpdate
    ) -> Optional[CalendarEvent]:
        """Update an event from an API payload, applying only the fields sent"""
        updates = {
            EVENT_FIELD_MAP[key]: value
            for key, value in data.model_dump(exclude_unset=True).items()
        }
        return self.update_event(event_id, user_id, updates)

    def delete_event(self, event_id: int, user_id: str) -> bool:
        deleted = self.repo.delete_event(self.db, event_id, user_id)
        if deleted:
            logger.info(f"🗑️ Deleted calendar event {event_id} for user {user_id}")
        return deleted

    def get_upcoming_events(self, user_id: str, limit: int = 10) -> list[CalendarEvent]:
        return self.repo.get_upcoming_events(self.db, user_id, self.now(), limit)

    def get_today_events(self, user_id: str) -> list[CalendarEvent]:
        day_start, day_end = self.today_bounds()
        return self.get_events_by_date_range(user_id, day_start, day_end)

    def create_event_from_job(
        self, user_id: str, job_id: int, job_data: JobEventCreate
    ) -> CalendarEvent:
        """Put a job on the calendar as a scheduled 'job' event"""
        return self.create_event(
            user_id,
            CalendarEventCreate(
                title=job_data.title,
                customerName=job_data.customerName,
                startTime=job_data.startTime,
                endTime=job_data.endTime,
                location=job_data.location,
                description=job_data.description,
                jobId=job_id,
                eventType="job",
                status="scheduled",
            ),
        )

    # Any status may move to any other status; there is no transition guard
    def complete_event(self, event_id: int, user_id: str) -> Optional[CalendarEvent]:
        return self.update_event(event_id, user_id, {"status": "completed"})

    def cancel_event(self, event_id: int, user_id: str) -> Optional[CalendarEvent]:
        return self.update_event(event_id, user_id, {"status": "cancelled"})

    def get_event_stats(self, user_id: str) -> dict:
        """Counts for total/scheduled/completed/cancelled/upcoming/today"""
        day_start, day_end = self.today_bounds()
        return self.repo.get_event_stats(self.db, user_id, self.now(), day_start, day_end)

    # ------------------------------------------------------------------
    # Sync settings bookkeeping
    # ------------------------------------------------------------------

    def get_sync_settings(self, user_id: str) -> Optional[CalendarSyncSettings]:
        return self.settings_repo.get_settings(self.db, user_id)

    def upsert_sync_settings(self, user_id: str, fields: dict[str, Any]) -> CalendarSyncSettings:
        return self.settings_repo.upsert_settings(self.db, user_id, self.now(), fields)

    def _enable_provider(
        self,
        provider: str,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        calendar_id: str,
    ) -> CalendarSyncSettings:
        settings = self.upsert_sync_settings(
            user_id,
            {
                f"{provider}_enabled": True,
                f"{provider}_access_token": encrypt_token(access_token),
                f"{provider}_refresh_token": encrypt_token(refresh_token),
                f"{provider}_token_expiry": expires_at,
                f"{provider}_calendar_id": calendar_id,
                f"{provider}_last_sync": self.now(),
            },
        )
        logger.info(f"✅ {provider.title()} Calendar sync enabled for user {user_id}")
        return settings

    def _disable_provider(self, provider: str, user_id: str) -> CalendarSyncSettings:
        settings = self.upsert_sync_settings(
            user_id,
            {
                f"{provider}_enabled": False,
                f"{provider}_access_token": None,
                f"{provider}_refresh_token": None,
                f"{provider}_token_expiry": None,
                CURSOR_COLUMNS[provider]: None,
            },
        )
        logger.info(f"✅ {provider.title()} Calendar sync disabled for user {user_id}")
        return settings

    def enable_google_sync(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        calendar_id: str,
    ) -> CalendarSyncSettings:
        return self._enable_provider(
            "google", user_id, access_token, refresh_token, expires_at, calendar_id
        )

    def enable_outlook_sync(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        calendar_id: str,
    ) -> CalendarSyncSettings:
        return self._enable_provider(
            "outlook", user_id, access_token, refresh_token, expires_at, calendar_id
        )

    def disable_google_sync(self, user_id: str) -> CalendarSyncSettings:
        return self._disable_provider("google", user_id)

    def disable_outlook_sync(self, user_id: str) -> CalendarSyncSettings:
        return self._disable_provider("outlook", user_id)

    def update_google_sync_token(self, user_id: str, sync_token: str) -> None:
        """Store the cursor from the last Google poll"""
        self.upsert_sync_settings(
            user_id, {"google_sync_token": sync_token, "google_last_sync": self.now()}
        )

    def update_outlook_delta_token(self, user_id: str, delta_token: str) -> None:
        """Store the cursor from the last Outlook delta query"""
        self.upsert_sync_settings(
            user_id, {"outlook_delta_token": delta_token, "outlook_last_sync": self.now()}
        )

    def update_sync_preferences(
        self, user_id: str, data: SyncPreferencesUpdate
    ) -> CalendarSyncSettings:
        fields = {
            PREFERENCE_FIELD_MAP[key]: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }
        return self.upsert_sync_settings(user_id, fields)

    def get_provider_credentials(self, user_id: str, provider: str) -> Optional[dict]:
        """
        Decrypted credentials and cursor for an enabled provider.

        For the sync worker only; never return this to a browser.
        """
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown calendar provider: {provider}")

        settings = self.get_sync_settings(user_id)
        if not settings or not getattr(settings, f"{provider}_enabled"):
            return None

        return {
            "access_token": decrypt_token(getattr(settings, f"{provider}_access_token")),
            "refresh_token": decrypt_token(getattr(settings, f"{provider}_refresh_token")),
            "token_expiry": getattr(settings, f"{provider}_token_expiry"),
            "calendar_id": getattr(settings, f"{provider}_calendar_id"),
            "cursor": getattr(settings, CURSOR_COLUMNS[provider]),
        }

    def mark_google_synced(
        self, event_id: int, user_id: str, google_event_id: str
    ) -> Optional[CalendarEvent]:
        return self.update_event(
            event_id,
            user_id,
            {
                "google_event_id": google_event_id,
                "sync_status": "synced",
                "last_synced_at": self.now(),
            },
        )

    def mark_outlook_synced(
        self, event_id: int, user_id: str, outlook_event_id: str
    ) -> Optional[CalendarEvent]:
        return self.update_event(
            event_id,
            user_id,
            {
                "outlook_event_id": outlook_event_id,
                "sync_status": "synced",
                "last_synced_at": self.now(),
            },
        )

    def mark_sync_failed(self, event_id: int, user_id: str) -> Optional[CalendarEvent]:
        return self.update_event(event_id, user_id, {"sync_status": "sync_failed"})

    def get_events_needing_sync(self, user_id: str) -> list[CalendarEvent]:
        """Worklist for the sync worker: never-synced and failed events"""
        return self.repo.get_events_by_sync_status(
            self.db, user_id, ("not_synced", "sync_failed")
        )
