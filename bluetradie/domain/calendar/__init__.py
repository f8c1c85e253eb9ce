"""
Calendar Domain

Scheduled events (jobs, meetings, appointments, reminders, blocked time) and
per-user Google/Outlook sync bookkeeping.

- schemas.py     API payloads (camelCase) and the field maps onto columns
- repository.py  Event and sync settings queries, always filtered by user_id
- service.py     CalendarService: date ranges, lifecycle, sync tokens/cursors
- router.py      /api/calendar endpoints

The provider polling/merge worker is not part of this package; it would read
credentials via CalendarService.get_provider_credentials, drain
get_events_needing_sync, and persist cursors via update_google_sync_token /
update_outlook_delta_token.
"""

from .router import router

__all__ = ["router"]
