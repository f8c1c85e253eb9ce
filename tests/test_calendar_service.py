"""Tests for CalendarService against an in-memory database."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from bluetradie.domain.calendar.repository import CalendarSyncSettingsRepository
from bluetradie.domain.calendar.schemas import CalendarEventCreate, JobEventCreate
from bluetradie.domain.calendar.service import CalendarService, InvalidParentEventError
from bluetradie.models_calendar import CalendarSyncSettings

from .conftest import NOW

pytestmark = pytest.mark.unit


def _event(service, user_id="u1", title="Quote walkthrough", start=None, end=None, **extra):
    start = start or NOW + timedelta(hours=1)
    end = end or start + timedelta(hours=1)
    return service.create_event(
        user_id, CalendarEventCreate(title=title, startTime=start, endTime=end, **extra)
    )


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


def test_create_event_applies_defaults(service):
    event = _event(service)

    assert event.id is not None
    assert event.user_id == "u1"
    assert event.event_type == "job"
    assert event.status == "scheduled"
    assert event.sync_status == "not_synced"
    assert event.color == "#3b82f6"
    assert event.timezone == "Australia/Sydney"
    assert event.all_day is False
    assert event.created_at == NOW
    assert event.updated_at == NOW


def test_create_event_blank_color_and_timezone_use_defaults(service):
    event = _event(service, color="", timezone="")

    assert event.color == "#3b82f6"
    assert event.timezone == "Australia/Sydney"


def test_create_event_stores_aware_times_as_utc(service):
    sydney = ZoneInfo("Australia/Sydney")
    event = _event(
        service,
        start=datetime(2025, 3, 2, 9, 0, tzinfo=sydney),
        end=datetime(2025, 3, 2, 10, 0, tzinfo=sydney),
    )

    # AEDT is UTC+11 in March
    assert event.start_time == datetime(2025, 3, 1, 22, 0)
    assert event.end_time == datetime(2025, 3, 1, 23, 0)


def test_get_event_hides_other_users_events(service):
    event = _event(service, user_id="alice")

    assert service.get_event(event.id, "alice").id == event.id
    assert service.get_event(event.id, "bob") is None
    assert service.get_event(999_999, "alice") is None


# ---------------------------------------------------------------------------
# Date range overlap
# ---------------------------------------------------------------------------


def test_date_range_includes_event_spanning_whole_window(service):
    spanning = _event(
        service, title="Bathroom reno", start=datetime(2025, 1, 10), end=datetime(2025, 1, 15)
    )

    events = service.get_events_by_date_range("u1", datetime(2025, 1, 12), datetime(2025, 1, 13))

    assert [e.id for e in events] == [spanning.id]


def test_date_range_overlap_clauses(service):
    starts_inside = _event(
        service, title="starts inside", start=datetime(2025, 1, 12, 9), end=datetime(2025, 1, 20)
    )
    ends_inside = _event(
        service, title="ends inside", start=datetime(2025, 1, 5), end=datetime(2025, 1, 12, 10)
    )
    _event(service, title="before", start=datetime(2025, 1, 1), end=datetime(2025, 1, 2))
    _event(service, title="after", start=datetime(2025, 1, 20), end=datetime(2025, 1, 21))

    events = service.get_events_by_date_range("u1", datetime(2025, 1, 12), datetime(2025, 1, 13))

    # Ordered by start time
    assert [e.id for e in events] == [ends_inside.id, starts_inside.id]


def test_date_range_rejects_inverted_window(service):
    with pytest.raises(ValueError):
        service.get_events_by_date_range("u1", datetime(2025, 1, 13), datetime(2025, 1, 12))


def test_today_events_use_half_open_day(service):
    in_day = _event(service, start=datetime(2025, 3, 1, 9), end=datetime(2025, 3, 1, 10))
    _event(service, start=datetime(2025, 3, 2, 0, 0), end=datetime(2025, 3, 2, 1, 0))
    _event(service, start=datetime(2025, 2, 28, 10), end=datetime(2025, 2, 28, 11))

    assert [e.id for e in service.get_today_events("u1")] == [in_day.id]


def test_today_follows_configured_timezone(db_session):
    # 2025-03-01 08:00 UTC is 19:00 on 1 March in Sydney (AEDT, UTC+11)
    service = CalendarService(db_session, clock=lambda: NOW, tz=ZoneInfo("Australia/Sydney"))

    day_start, day_end = service.today_bounds()

    assert day_start == datetime(2025, 2, 28, 13, 0)
    assert day_end == datetime(2025, 3, 1, 12, 59, 59, 999999)


# ---------------------------------------------------------------------------
# Updates, lifecycle, delete
# ---------------------------------------------------------------------------


def test_update_event_is_partial_and_refreshes_updated_at(service, db_session):
    event = _event(service, description="bring ladder")
    later = NOW + timedelta(minutes=5)
    service.clock = lambda: later

    updated = service.update_event(event.id, "u1", {"title": "Roof inspection", "location": "Bondi"})

    assert updated.title == "Roof inspection"
    assert updated.location == "Bondi"
    assert updated.description == "bring ladder"
    assert updated.updated_at == later


def test_update_event_cannot_reassign_owner(service):
    event = _event(service, user_id="alice")

    updated = service.update_event(
        event.id, "alice", {"user_id": "bob", "id": 12345, "created_at": NOW, "title": "Renamed"}
    )

    assert updated.user_id == "alice"
    assert updated.title == "Renamed"
    assert service.get_event(event.id, "alice") is not None
    assert service.get_event(event.id, "bob") is None


def test_update_event_skips_null_for_required_columns(service):
    event = _event(service, title="Keep me")

    updated = service.update_event(event.id, "u1", {"title": None, "description": None})

    assert updated.title == "Keep me"
    assert updated.description is None


def test_not_found_is_uniform(service):
    event = _event(service, user_id="alice")

    assert service.get_event(424242, "alice") is None
    assert service.update_event(424242, "alice", {"title": "x"}) is None
    assert service.delete_event(424242, "alice") is False
    assert service.complete_event(event.id, "bob") is None
    assert service.cancel_event(event.id, "bob") is None
    assert service.get_event(event.id, "alice").status == "scheduled"


def test_delete_is_idempotent(service):
    event = _event(service)
    event_id = event.id

    assert service.delete_event(event_id, "u1") is True
    assert service.delete_event(event_id, "u1") is False
    assert service.get_event(event_id, "u1") is None


def test_delete_other_users_event_leaves_it(service):
    event = _event(service, user_id="alice")

    assert service.delete_event(event.id, "bob") is False
    assert service.get_event(event.id, "alice") is not None


def test_any_status_can_follow_any_status(service):
    event = _event(service)

    assert service.cancel_event(event.id, "u1").status == "cancelled"
    assert service.complete_event(event.id, "u1").status == "completed"


# ---------------------------------------------------------------------------
# Upcoming, jobs
# ---------------------------------------------------------------------------


def test_upcoming_only_future_scheduled_capped(service):
    _event(service, title="past", start=NOW - timedelta(hours=2))
    soon = _event(service, title="soon", start=NOW + timedelta(hours=1))
    later = _event(service, title="later", start=NOW + timedelta(days=1))
    _event(service, title="latest", start=NOW + timedelta(days=2))
    cancelled = _event(service, title="cancelled", start=NOW + timedelta(minutes=30))
    service.cancel_event(cancelled.id, "u1")

    upcoming = service.get_upcoming_events("u1", limit=2)

    assert [e.id for e in upcoming] == [soon.id, later.id]
    assert len(service.get_upcoming_events("u1")) == 3


def test_create_event_from_job(service):
    job_data = JobEventCreate(
        title="Hot water system install",
        customerName="Sam Nguyen",
        startTime=datetime(2025, 3, 4, 7, 30),
        endTime=datetime(2025, 3, 4, 12, 0),
        location="12 Smith St, Parramatta",
        description="Rheem 315L",
    )

    event = service.create_event_from_job("u1", 77, job_data)

    assert event.job_id == 77
    assert event.event_type == "job"
    assert event.status == "scheduled"
    assert event.customer_name == "Sam Nguyen"
    assert event.location == "12 Smith St, Parramatta"
    assert [e.id for e in service.get_events_by_job(77, "u1")] == [event.id]
    assert service.get_events_by_job(77, "u2") == []


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


def test_event_stats_counts(service):
    _event(service, title="past scheduled", start=datetime(2025, 2, 20, 9))
    _event(service, title="today scheduled", start=datetime(2025, 3, 1, 14))
    _event(service, title="next week", start=datetime(2025, 3, 8, 9))
    for title in ("done 1", "done 2"):
        done = _event(service, title=title, start=datetime(2025, 2, 25, 9))
        service.complete_event(done.id, "u1")
    cancelled = _event(service, title="cancelled today", start=datetime(2025, 3, 1, 6))
    service.cancel_event(cancelled.id, "u1")
    # Started yesterday, ends today: overlaps today but does not start today
    _event(service, title="overnight", start=datetime(2025, 2, 28, 22), end=datetime(2025, 3, 1, 2))
    _event(service, user_id="someone-else", title="not mine", start=datetime(2025, 3, 1, 9))

    stats = service.get_event_stats("u1")

    assert stats == {
        "total": 7,
        "scheduled": 4,
        "completed": 2,
        "cancelled": 1,
        "upcoming": 2,
        "today": 2,
    }
    assert stats["scheduled"] + stats["completed"] + stats["cancelled"] == stats["total"]


def test_event_stats_for_user_without_events(service):
    assert service.get_event_stats("nobody") == {
        "total": 0,
        "scheduled": 0,
        "completed": 0,
        "cancelled": 0,
        "upcoming": 0,
        "today": 0,
    }


def test_site_visit_scenario(service):
    event = service.create_event(
        "U1",
        CalendarEventCreate(
            title="Site visit",
            startTime=datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc),
            endTime=datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc),
            eventType="appointment",
        ),
    )

    assert [e.id for e in service.get_today_events("U1")] == [event.id]

    completed = service.complete_event(event.id, "U1")
    assert completed.status == "completed"

    stats = service.get_event_stats("U1")
    assert stats["completed"] == 1
    assert stats["scheduled"] == 0


# ---------------------------------------------------------------------------
# Ownership isolation across every query
# ---------------------------------------------------------------------------


def test_events_never_cross_tenants(service):
    a_event = _event(service, user_id="A", start=datetime(2025, 3, 1, 9), end=datetime(2025, 3, 1, 10), jobId=5)

    assert service.get_event(a_event.id, "B") is None
    assert service.get_events_by_date_range("B", datetime(2025, 1, 1), datetime(2025, 12, 31)) == []
    assert service.get_events_by_job(5, "B") == []
    assert service.get_upcoming_events("B") == []
    assert service.get_today_events("B") == []
    assert service.get_events_needing_sync("B") == []
    assert service.get_event_stats("B")["total"] == 0
    assert service.update_event(a_event.id, "B", {"title": "hijack"}) is None
    assert service.mark_google_synced(a_event.id, "B", "g-1") is None
    assert service.get_event(a_event.id, "A").title != "hijack"


# ---------------------------------------------------------------------------
# Sync settings bookkeeping
# ---------------------------------------------------------------------------


def test_get_sync_settings_absent(service):
    assert service.get_sync_settings("u1") is None


def test_enable_google_sync_encrypts_tokens(service):
    expiry = NOW + timedelta(hours=1)

    settings = service.enable_google_sync("u1", "ya29.access", "1//refresh", expiry, "primary")

    assert settings.google_enabled is True
    assert settings.google_access_token != "ya29.access"
    assert settings.google_refresh_token != "1//refresh"
    assert settings.google_token_expiry == expiry
    assert settings.google_calendar_id == "primary"
    assert settings.google_last_sync == NOW
    assert settings.outlook_enabled is False

    creds = service.get_provider_credentials("u1", "google")
    assert creds["access_token"] == "ya29.access"
    assert creds["refresh_token"] == "1//refresh"
    assert creds["calendar_id"] == "primary"
    assert creds["cursor"] is None


def test_upsert_creates_once_then_updates(service, db_session):
    first = service.upsert_sync_settings("u1", {"auto_sync": False})
    second = service.upsert_sync_settings("u1", {"sync_frequency": 30})

    assert first.id == second.id
    assert second.auto_sync is False
    assert second.sync_frequency == 30
    assert db_session.query(CalendarSyncSettings).filter_by(user_id="u1").count() == 1


def test_upsert_cannot_reassign_owner(service):
    created = service.upsert_sync_settings("u1", {"user_id": "u2", "sync_frequency": 30})
    updated = service.upsert_sync_settings("u1", {"user_id": "u2", "id": 999, "auto_sync": False})

    assert created.user_id == "u1"
    assert updated.id == created.id
    assert updated.user_id == "u1"
    assert updated.auto_sync is False
    assert updated.created_at == NOW
    assert service.get_sync_settings("u2") is None


def test_upsert_recovers_from_concurrent_insert(service, db_session, monkeypatch):
    # Another request created the row between our select and our insert
    winner = CalendarSyncSettings(user_id="u1", sync_direction="to_external")
    db_session.add(winner)
    db_session.commit()

    real_get_settings = CalendarSyncSettingsRepository.get_settings
    calls = {"n": 0}

    def stale_first_read(db, user_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_get_settings(db, user_id)

    monkeypatch.setattr(CalendarSyncSettingsRepository, "get_settings", staticmethod(stale_first_read))

    settings = service.upsert_sync_settings("u1", {"auto_sync": False})

    assert settings.id == winner.id
    assert settings.auto_sync is False
    assert settings.sync_direction == "to_external"
    assert db_session.query(CalendarSyncSettings).filter_by(user_id="u1").count() == 1


def test_disable_google_leaves_outlook_untouched(service):
    expiry = NOW + timedelta(hours=1)
    service.enable_google_sync("u1", "g-access", "g-refresh", expiry, "primary")
    service.enable_outlook_sync("u1", "o-access", "o-refresh", expiry, "AAMkAD")
    service.update_google_sync_token("u1", "google-cursor")
    service.update_outlook_delta_token("u1", "outlook-delta")
    before = service.get_sync_settings("u1")
    outlook_before = (
        before.outlook_access_token,
        before.outlook_refresh_token,
        before.outlook_token_expiry,
        before.outlook_delta_token,
    )

    settings = service.disable_google_sync("u1")

    assert settings.google_enabled is False
    assert settings.google_access_token is None
    assert settings.google_refresh_token is None
    assert settings.google_token_expiry is None
    assert settings.google_sync_token is None
    assert settings.outlook_enabled is True
    assert (
        settings.outlook_access_token,
        settings.outlook_refresh_token,
        settings.outlook_token_expiry,
        settings.outlook_delta_token,
    ) == outlook_before
    assert service.get_provider_credentials("u1", "google") is None
    assert service.get_provider_credentials("u1", "outlook")["cursor"] == "outlook-delta"


def test_disable_outlook_without_existing_settings_creates_row(service):
    settings = service.disable_outlook_sync("fresh-user")

    assert settings.user_id == "fresh-user"
    assert settings.outlook_enabled is False
    assert settings.google_enabled is False


def test_sync_cursor_updates_refresh_last_sync(service):
    service.enable_google_sync("u1", "a", "r", NOW, "primary")
    later = NOW + timedelta(minutes=15)
    service.clock = lambda: later

    assert service.update_google_sync_token("u1", "CPDAlvWDx70CEPDAlvWDx70CGAU=") is None

    settings = service.get_sync_settings("u1")
    assert settings.google_sync_token == "CPDAlvWDx70CEPDAlvWDx70CGAU="
    assert settings.google_last_sync == later


def test_get_provider_credentials_rejects_unknown_provider(service):
    with pytest.raises(ValueError):
        service.get_provider_credentials("u1", "icloud")


def test_sync_worklist_and_marking(service):
    pending = _event(service, title="pending")
    failed = _event(service, title="failed", start=NOW + timedelta(hours=3))
    synced = _event(service, title="synced", start=NOW + timedelta(hours=5))

    service.mark_sync_failed(failed.id, "u1")
    marked = service.mark_google_synced(synced.id, "u1", "gcal-abc123")

    assert marked.google_event_id == "gcal-abc123"
    assert marked.sync_status == "synced"
    assert marked.last_synced_at == NOW
    assert [e.id for e in service.get_events_needing_sync("u1")] == [pending.id, failed.id]

    outlook = service.mark_outlook_synced(pending.id, "u1", "AAMkAGI2")
    assert outlook.outlook_event_id == "AAMkAGI2"
    assert [e.id for e in service.get_events_needing_sync("u1")] == [failed.id]


def test_parent_event_must_be_another_owned_event(service):
    parent = _event(service, user_id="u1")
    foreign = _event(service, user_id="u2")

    child = _event(service, user_id="u1", parentEventId=parent.id, isRecurring=True)
    assert child.parent_event_id == parent.id

    with pytest.raises(InvalidParentEventError):
        _event(service, user_id="u1", parentEventId=foreign.id)
    with pytest.raises(InvalidParentEventError):
        service.update_event(parent.id, "u1", {"parent_event_id": parent.id})
