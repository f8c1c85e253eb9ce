"""Calendar repository - Database operations for events and sync settings"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models_calendar import CalendarEvent, CalendarSyncSettings

# Never reassigned through a generic update
PROTECTED_COLUMNS = {"id", "user_id", "created_at", "updated_at"}


class CalendarEventRepository:
    """Repository for calendar event database operations"""

    @staticmethod
    def create_event(db: Session, user_id: str, now: datetime, **event_data) -> CalendarEvent:
        """Create a new event"""
        event = CalendarEvent(user_id=user_id, **event_data)
        event.created_at = now
        event.updated_at = now
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def get_event_by_id(db: Session, event_id: int, user_id: str) -> Optional[CalendarEvent]:
        """Get a specific event owned by the user"""
        return (
            db.query(CalendarEvent)
            .filter(CalendarEvent.id == event_id, CalendarEvent.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_events_overlapping(
        db: Session, user_id: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        """Get every event whose span intersects [start, end]"""
        return (
            db.query(CalendarEvent)
            .filter(
                CalendarEvent.user_id == user_id,
                or_(
                    # Starts within the range
                    CalendarEvent.start_time.between(start, end),
                    # Ends within the range
                    CalendarEvent.end_time.between(start, end),
                    # Spans the entire range
                    and_(CalendarEvent.start_time <= start, CalendarEvent.end_time >= end),
                ),
            )
            .order_by(CalendarEvent.start_time.asc(), CalendarEvent.id.asc())
            .all()
        )

    @staticmethod
    def get_events_by_job(db: Session, job_id: int, user_id: str) -> list[CalendarEvent]:
        """Get all events linked to a job"""
        return (
            db.query(CalendarEvent)
            .filter(CalendarEvent.job_id == job_id, CalendarEvent.user_id == user_id)
            .order_by(CalendarEvent.start_time.asc(), CalendarEvent.id.asc())
            .all()
        )

    @staticmethod
    def get_upcoming_events(
        db: Session, user_id: str, now: datetime, limit: int
    ) -> list[CalendarEvent]:
        """Get scheduled events starting at or after now"""
        return (
            db.query(CalendarEvent)
            .filter(
                CalendarEvent.user_id == user_id,
                CalendarEvent.start_time >= now,
                CalendarEvent.status == "scheduled",
            )
            .order_by(CalendarEvent.start_time.asc(), CalendarEvent.id.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_events_by_sync_status(
        db: Session, user_id: str, statuses: tuple[str, ...]
    ) -> list[CalendarEvent]:
        """Get events in any of the given sync states"""
        return (
            db.query(CalendarEvent)
            .filter(CalendarEvent.user_id == user_id, CalendarEvent.sync_status.in_(statuses))
            .order_by(CalendarEvent.start_time.asc(), CalendarEvent.id.asc())
            .all()
        )

    @staticmethod
    def update_event(
        db: Session, event_id: int, user_id: str, now: datetime, updates: dict
    ) -> Optional[CalendarEvent]:
        """Apply a partial update; None when no row matched"""
        event = CalendarEventRepository.get_event_by_id(db, event_id, user_id)
        if not event:
            return None

        for key, value in updates.items():
            if key not in PROTECTED_COLUMNS and hasattr(event, key):
                setattr(event, key, value)
        event.updated_at = now

        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def delete_event(db: Session, event_id: int, user_id: str) -> bool:
        """Delete an event; True only if a row was removed"""
        event = CalendarEventRepository.get_event_by_id(db, event_id, user_id)
        if not event:
            return False

        db.delete(event)
        db.commit()
        return True

    @staticmethod
    def get_event_stats(
        db: Session, user_id: str, now: datetime, day_start: datetime, day_end: datetime
    ) -> dict:
        """Get event counts computed by the database"""
        status_counts = dict(
            db.query(CalendarEvent.status, func.count(CalendarEvent.id))
            .filter(CalendarEvent.user_id == user_id)
            .group_by(CalendarEvent.status)
            .all()
        )

        upcoming, today = (
            db.query(
                func.coalesce(
                    func.sum(
                        case(
                            (
                                and_(
                                    CalendarEvent.status == "scheduled",
                                    CalendarEvent.start_time >= now,
                                ),
                                1,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ),
                func.coalesce(
                    func.sum(
                        case(
                            (CalendarEvent.start_time.between(day_start, day_end), 1),
                            else_=0,
                        )
                    ),
                    0,
                ),
            )
            .filter(CalendarEvent.user_id == user_id)
            .one()
        )

        return {
            "total": sum(status_counts.values()),
            "scheduled": status_counts.get("scheduled", 0),
            "completed": status_counts.get("completed", 0),
            "cancelled": status_counts.get("cancelled", 0),
            "upcoming": int(upcoming),
            "today": int(today),
        }


class CalendarSyncSettingsRepository:
    """Repository for per-user calendar sync settings"""

    @staticmethod
    def get_settings(db: Session, user_id: str) -> Optional[CalendarSyncSettings]:
        return (
            db.query(CalendarSyncSettings).filter(CalendarSyncSettings.user_id == user_id).first()
        )

    @staticmethod
    def upsert_settings(
        db: Session, user_id: str, now: datetime, fields: dict
    ) -> CalendarSyncSettings:
        """
        Update the user's settings row, creating it on first use.

        Two first-time upserts can both miss the select; the loser's insert
        hits the unique constraint on user_id, is rolled back, and its fields
        are applied to the row that won.
        """
        settings = CalendarSyncSettingsRepository.get_settings(db, user_id)

        if settings is None:
            settings = CalendarSyncSettings(user_id=user_id, created_at=now, updated_at=now)
            for key, value in fields.items():
                if key not in PROTECTED_COLUMNS:
                    setattr(settings, key, value)
            db.add(settings)
            try:
                db.commit()
                db.refresh(settings)
                return settings
            except IntegrityError:
                db.rollback()
                settings = CalendarSyncSettingsRepository.get_settings(db, user_id)
                if settings is None:
                    raise

        for key, value in fields.items():
            if key not in PROTECTED_COLUMNS:
                setattr(settings, key, value)
        settings.updated_at = now

        db.commit()
        db.refresh(settings)
        return settings
