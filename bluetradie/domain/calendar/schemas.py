"""Calendar domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

from ...shared.validators import as_utc, to_naive_utc, validate_hex_color, validate_timezone

EventType = Literal["job", "meeting", "appointment", "reminder", "block_time"]
EventStatus = Literal["scheduled", "completed", "cancelled"]
SyncStatus = Literal["not_synced", "synced", "sync_failed"]
SyncDirection = Literal["both", "to_external", "from_external"]

# Stored timestamps are naive UTC; responses carry the UTC offset
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

# camelCase API field -> CalendarEvent column
EVENT_FIELD_MAP = {
    "title": "title",
    "description": "description",
    "location": "location",
    "startTime": "start_time",
    "endTime": "end_time",
    "allDay": "all_day",
    "timezone": "timezone",
    "eventType": "event_type",
    "status": "status",
    "color": "color",
    "customerId": "customer_id",
    "customerName": "customer_name",
    "jobId": "job_id",
    "isRecurring": "is_recurring",
    "recurrenceRule": "recurrence_rule",
    "recurrenceEndDate": "recurrence_end_date",
    "parentEventId": "parent_event_id",
    "googleEventId": "google_event_id",
    "outlookEventId": "outlook_event_id",
    "syncStatus": "sync_status",
}

# Columns that are NOT NULL in the table; an explicit null in an update is dropped
NON_NULLABLE_EVENT_FIELDS = {
    "title",
    "start_time",
    "end_time",
    "all_day",
    "event_type",
    "status",
    "is_recurring",
    "sync_status",
}


class _EventFieldsMixin(BaseModel):
    @field_validator("startTime", "endTime", "recurrenceEndDate", check_fields=False)
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)

    @field_validator("timezone", check_fields=False)
    @classmethod
    def check_timezone(cls, v):
        return validate_timezone(v)

    @field_validator("color", check_fields=False)
    @classmethod
    def check_color(cls, v):
        return validate_hex_color(v)


class CalendarEventCreate(_EventFieldsMixin):
    """Schema for creating a calendar event"""

    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    location: Optional[str] = None
    startTime: datetime
    endTime: datetime
    allDay: bool = False
    timezone: Optional[str] = None
    eventType: EventType = "job"
    status: EventStatus = "scheduled"
    color: Optional[str] = None
    customerId: Optional[str] = None
    customerName: Optional[str] = None
    jobId: Optional[int] = None
    isRecurring: bool = False
    recurrenceRule: Optional[str] = None
    recurrenceEndDate: Optional[datetime] = None
    parentEventId: Optional[int] = None


class CalendarEventUpdate(_EventFieldsMixin):
    """Schema for a partial event update; only fields sent are applied"""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    location: Optional[str] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    allDay: Optional[bool] = None
    timezone: Optional[str] = None
    eventType: Optional[EventType] = None
    status: Optional[EventStatus] = None
    color: Optional[str] = None
    customerId: Optional[str] = None
    customerName: Optional[str] = None
    jobId: Optional[int] = None
    isRecurring: Optional[bool] = None
    recurrenceRule: Optional[str] = None
    recurrenceEndDate: Optional[datetime] = None
    parentEventId: Optional[int] = None
    googleEventId: Optional[str] = None
    outlookEventId: Optional[str] = None
    syncStatus: Optional[SyncStatus] = None


class JobEventCreate(_EventFieldsMixin):
    """Reduced job-shaped input used to push a job onto the calendar"""

    title: str = Field(..., min_length=1, max_length=500)
    customerName: Optional[str] = None
    startTime: datetime
    endTime: datetime
    location: Optional[str] = None
    description: Optional[str] = None


class CalendarEventResponse(BaseModel):
    """Schema for calendar event response"""

    id: int
    userId: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    startTime: UtcDatetime
    endTime: UtcDatetime
    allDay: bool
    timezone: Optional[str] = None
    eventType: str
    status: str
    color: Optional[str] = None
    customerId: Optional[str] = None
    customerName: Optional[str] = None
    jobId: Optional[int] = None
    isRecurring: bool = False
    recurrenceRule: Optional[str] = None
    recurrenceEndDate: Optional[UtcDatetime] = None
    parentEventId: Optional[int] = None
    googleEventId: Optional[str] = None
    outlookEventId: Optional[str] = None
    syncStatus: str
    lastSyncedAt: Optional[UtcDatetime] = None
    createdAt: Optional[UtcDatetime] = None
    updatedAt: Optional[UtcDatetime] = None

    @classmethod
    def from_model(cls, event) -> "CalendarEventResponse":
        return cls(
            id=event.id,
            userId=event.user_id,
            title=event.title,
            description=event.description,
            location=event.location,
            startTime=event.start_time,
            endTime=event.end_time,
            allDay=bool(event.all_day),
            timezone=event.timezone,
            eventType=event.event_type,
            status=event.status,
            color=event.color,
            customerId=event.customer_id,
            customerName=event.customer_name,
            jobId=event.job_id,
            isRecurring=bool(event.is_recurring),
            recurrenceRule=event.recurrence_rule,
            recurrenceEndDate=event.recurrence_end_date,
            parentEventId=event.parent_event_id,
            googleEventId=event.google_event_id,
            outlookEventId=event.outlook_event_id,
            syncStatus=event.sync_status,
            lastSyncedAt=event.last_synced_at,
            createdAt=event.created_at,
            updatedAt=event.updated_at,
        )


class EventStats(BaseModel):
    total: int
    scheduled: int
    completed: int
    cancelled: int
    upcoming: int
    today: int


class SyncPreferencesUpdate(BaseModel):
    """Schema for updating sync preferences"""

    syncDirection: Optional[SyncDirection] = None
    autoSync: Optional[bool] = None
    syncFrequency: Optional[int] = Field(None, ge=5, le=1440)


class SyncSettingsResponse(BaseModel):
    """
    Sync settings as returned to the browser.

    Access/refresh tokens are masked to "***" and sync cursors are reduced to
    a presence flag.
    """

    userId: str
    googleEnabled: bool
    googleAccessToken: Optional[str] = None
    googleRefreshToken: Optional[str] = None
    googleTokenExpiry: Optional[UtcDatetime] = None
    googleCalendarId: Optional[str] = None
    googleHasSyncToken: bool = False
    googleLastSync: Optional[UtcDatetime] = None
    outlookEnabled: bool
    outlookAccessToken: Optional[str] = None
    outlookRefreshToken: Optional[str] = None
    outlookTokenExpiry: Optional[UtcDatetime] = None
    outlookCalendarId: Optional[str] = None
    outlookHasDeltaToken: bool = False
    outlookLastSync: Optional[UtcDatetime] = None
    syncDirection: str
    autoSync: bool
    syncFrequency: int
    createdAt: Optional[UtcDatetime] = None
    updatedAt: Optional[UtcDatetime] = None
