"""Calendar router - FastAPI endpoints for events and sync settings"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user_id
from ...database import get_db
from ...shared.validators import parse_iso_datetime
from ...utils.token_encryption import redact_token
from .schemas import (
    CalendarEventCreate,
    CalendarEventResponse,
    CalendarEventUpdate,
    EventStats,
    JobEventCreate,
    SyncPreferencesUpdate,
    SyncSettingsResponse,
)
from .service import CalendarService, InvalidParentEventError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar", tags=["Calendar"])

LOG_TAG = "[CALENDAR API]"


def get_calendar_service(db: Session = Depends(get_db)) -> CalendarService:
    """Dependency injection for CalendarService"""
    return CalendarService(db)


def _server_error(service: CalendarService, action: str, message: str, e: Exception) -> HTTPException:
    """Log an unexpected failure and build a generic 500"""
    logger.exception(f"{LOG_TAG} Error {action}: {type(e).__name__}: {str(e)}")
    service.db.rollback()
    return HTTPException(status_code=500, detail=message)


def _event_not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Event not found")


def _settings_response(settings) -> SyncSettingsResponse:
    return SyncSettingsResponse(
        userId=settings.user_id,
        googleEnabled=bool(settings.google_enabled),
        googleAccessToken=redact_token(settings.google_access_token),
        googleRefreshToken=redact_token(settings.google_refresh_token),
        googleTokenExpiry=settings.google_token_expiry,
        googleCalendarId=settings.google_calendar_id,
        googleHasSyncToken=bool(settings.google_sync_token),
        googleLastSync=settings.google_last_sync,
        outlookEnabled=bool(settings.outlook_enabled),
        outlookAccessToken=redact_token(settings.outlook_access_token),
        outlookRefreshToken=redact_token(settings.outlook_refresh_token),
        outlookTokenExpiry=settings.outlook_token_expiry,
        outlookCalendarId=settings.outlook_calendar_id,
        outlookHasDeltaToken=bool(settings.outlook_delta_token),
        outlookLastSync=settings.outlook_last_sync,
        syncDirection=settings.sync_direction,
        autoSync=bool(settings.auto_sync),
        syncFrequency=settings.sync_frequency,
        createdAt=settings.created_at,
        updatedAt=settings.updated_at,
    )


# ============================================================================
# EVENT QUERIES
# ============================================================================


@router.get("/events", response_model=list[CalendarEventResponse])
def get_events(
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Get events overlapping a date range"""
    if not startDate or not endDate:
        raise HTTPException(status_code=400, detail="startDate and endDate are required")

    try:
        start = parse_iso_datetime(startDate)
        end = parse_iso_datetime(endDate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="startDate and endDate must be ISO-8601 timestamps") from e

    if start > end:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")

    try:
        events = service.get_events_by_date_range(user_id, start, end)
        return [CalendarEventResponse.from_model(e) for e in events]
    except Exception as e:
        raise _server_error(service, "fetching events", "Failed to fetch events", e) from e


@router.get("/today", response_model=list[CalendarEventResponse])
def get_today_events(
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Get today's events"""
    try:
        events = service.get_today_events(user_id)
        return [CalendarEventResponse.from_model(e) for e in events]
    except Exception as e:
        raise _server_error(service, "fetching today's events", "Failed to fetch today's events", e) from e


@router.get("/upcoming", response_model=list[CalendarEventResponse])
def get_upcoming_events(
    limit: int = Query(10, ge=1),
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Get upcoming scheduled events"""
    try:
        events = service.get_upcoming_events(user_id, limit)
        return [CalendarEventResponse.from_model(e) for e in events]
    except Exception as e:
        raise _server_error(service, "fetching upcoming events", "Failed to fetch upcoming events", e) from e


@router.get("/stats", response_model=EventStats)
def get_event_stats(
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Get event statistics"""
    try:
        return EventStats(**service.get_event_stats(user_id))
    except Exception as e:
        raise _server_error(service, "fetching stats", "Failed to fetch statistics", e) from e


# ============================================================================
# EVENT CRUD
# ============================================================================


@router.get("/events/{event_id}", response_model=CalendarEventResponse)
def get_event(
    event_id: int,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Get a single event"""
    try:
        event = service.get_event(event_id, user_id)
    except Exception as e:
        raise _server_error(service, "fetching event", "Failed to fetch event", e) from e

    if not event:
        raise _event_not_found()
    return CalendarEventResponse.from_model(event)


@router.post("/events", response_model=CalendarEventResponse)
def create_event(
    data: CalendarEventCreate,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Create a calendar event"""
    try:
        event = service.create_event(user_id, data)
        return CalendarEventResponse.from_model(event)
    except InvalidParentEventError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        raise _server_error(service, "creating event", "Failed to create event", e) from e


@router.put("/events/{event_id}", response_model=CalendarEventResponse)
def update_event(
    event_id: int,
    data: CalendarEventUpdate,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Update a calendar event"""
    try:
        event = service.update_event_from_request(event_id, user_id, data)
    except InvalidParentEventError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        raise _server_error(service, "updating event", "Failed to update event", e) from e

    if not event:
        raise _event_not_found()
    return CalendarEventResponse.from_model(event)


@router.delete("/events/{event_id}")
def delete_event(
    event_id: int,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Delete a calendar event"""
    try:
        deleted = service.delete_event(event_id, user_id)
    except Exception as e:
        raise _server_error(service, "deleting event", "Failed to delete event", e) from e

    if not deleted:
        raise _event_not_found()
    return {"success": True}


@router.post("/events/{event_id}/complete", response_model=CalendarEventResponse)
def complete_event(
    event_id: int,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Mark an event as completed"""
    try:
        event = service.complete_event(event_id, user_id)
    except Exception as e:
        raise _server_error(service, "completing event", "Failed to complete event", e) from e

    if not event:
        raise _event_not_found()
    return CalendarEventResponse.from_model(event)


@router.post("/events/{event_id}/cancel", response_model=CalendarEventResponse)
def cancel_event(
    event_id: int,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Cancel an event"""
    try:
        event = service.cancel_event(event_id, user_id)
    except Exception as e:
        raise _server_error(service, "cancelling event", "Failed to cancel event", e) from e

    if not event:
        raise _event_not_found()
    return CalendarEventResponse.from_model(event)


# ============================================================================
# JOB LINKS
# ============================================================================


@router.get("/jobs/{job_id}/events", response_model=list[CalendarEventResponse])
def get_job_events(
    job_id: int,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Get events linked to a job"""
    try:
        events = service.get_events_by_job(job_id, user_id)
        return [CalendarEventResponse.from_model(e) for e in events]
    except Exception as e:
        raise _server_error(service, "fetching job events", "Failed to fetch job events", e) from e


@router.post("/jobs/{job_id}/events", response_model=CalendarEventResponse)
def create_job_event(
    job_id: int,
    data: JobEventCreate,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Schedule a job on the calendar"""
    try:
        event = service.create_event_from_job(user_id, job_id, data)
        return CalendarEventResponse.from_model(event)
    except Exception as e:
        raise _server_error(service, "creating job event", "Failed to create job event", e) from e


# ============================================================================
# SYNC SETTINGS
# ============================================================================


@router.get("/sync-settings", response_model=Optional[SyncSettingsResponse])
def get_sync_settings(
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Get calendar sync settings with tokens masked"""
    try:
        settings = service.get_sync_settings(user_id)
        return _settings_response(settings) if settings else None
    except Exception as e:
        raise _server_error(service, "fetching sync settings", "Failed to fetch sync settings", e) from e


@router.put("/sync-settings", response_model=SyncSettingsResponse)
def update_sync_preferences(
    data: SyncPreferencesUpdate,
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Update sync direction, auto-sync and frequency"""
    try:
        return _settings_response(service.update_sync_preferences(user_id, data))
    except Exception as e:
        raise _server_error(service, "updating sync settings", "Failed to update sync settings", e) from e


@router.post("/sync/google/disable")
def disable_google_sync(
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Disable Google Calendar sync"""
    try:
        service.disable_google_sync(user_id)
        return {"success": True}
    except Exception as e:
        raise _server_error(service, "disabling Google sync", "Failed to disable Google sync", e) from e


@router.post("/sync/outlook/disable")
def disable_outlook_sync(
    user_id: str = Depends(get_current_user_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Disable Outlook Calendar sync"""
    try:
        service.disable_outlook_sync(user_id)
        return {"success": True}
    except Exception as e:
        raise _server_error(service, "disabling Outlook sync", "Failed to disable Outlook sync", e) from e
