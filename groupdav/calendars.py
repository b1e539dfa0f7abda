"""
Events and tasks on the CalDAV side of the server.

Listings only ever read fields; changes to existing events and tasks go
through the text record codec and a conditional PUT, so properties set
by other clients survive untouched.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass

from groupdav.lib import error
from groupdav.lib import vcal
from groupdav.lib.vcal import TextRecord
from groupdav.protocol.types import Capability, CollectionRef, FieldUpdate, WriteResult
from groupdav.protocol.xml_builders import (
    build_open_tasks_query_body,
    build_time_range_query_body,
)
from groupdav.service import ServiceBase

log = logging.getLogger("groupdav")

## default width of the get_events window
DEFAULT_EVENT_WINDOW = datetime.timedelta(days=7)


@dataclass
class EventSummary:
    uid: str
    calendar: str
    summary: str
    start: str
    end: str | None = None


@dataclass
class TaskSummary:
    uid: str
    calendar: str
    summary: str
    status: str
    due: str | None = None
    priority: int | None = None


def _priority(value) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        log.warning("ignoring non-numeric PRIORITY %r", value)
        return None


class CalendarService(ServiceBase):
    """
    Lists, creates, changes and deletes events and tasks.

    Calendars are picked by display name; without a name the first
    calendar supporting the record type is used for creation, and every
    such calendar is searched when looking up a UID.
    """

    def find_calendars(self, capability: Capability | None = None) -> list[CollectionRef]:
        return self.discovery.find_calendars(capability)

    def get_events(self, start=None, end=None) -> list[EventSummary]:
        """
        Events overlapping ``start`` .. ``end``, from every event-enabled
        calendar.  The window defaults to the next seven days.  Dates may
        be datetimes or ISO 8601 strings.
        """
        start = vcal.parse_datetime(start) if start else datetime.datetime.now(
            tz=vcal.utc_tz
        )
        end = vcal.parse_datetime(end) if end else start + DEFAULT_EVENT_WINDOW
        body = build_time_range_query_body(start, end, "VEVENT")

        events = []
        calendars = self.discovery.find_calendars(Capability.EVENT)
        for calendar, entry, record in self._records(Capability.EVENT, calendars, body):
            events.append(
                EventSummary(
                    uid=record.get_field("UID") or "No UID",
                    calendar=calendar.display_name,
                    summary=(
                        vcal.unescape_text(record.get_field("SUMMARY")) or "No Title"
                    ),
                    start=record.get_field("DTSTART") or "Unknown",
                    end=record.get_field("DTEND"),
                )
            )
        return events

    def create_event(
        self,
        summary: str,
        start,
        end,
        calendar_name: str | None = None,
        description: str | None = None,
    ) -> WriteResult:
        if not summary:
            raise error.InvalidInputError(reason="an event needs a summary")
        if not start or not end:
            raise error.InvalidInputError(
                reason=f"event '{summary}' needs both a start and an end"
            )
        uid = str(uuid.uuid4())
        body = vcal.create_ical(
            "VEVENT",
            uid=uid,
            summary=summary,
            dtstart=vcal.parse_datetime(start),
            dtend=vcal.parse_datetime(end),
            description=description,
        )
        return self._create(Capability.EVENT, uid, body, calendar_name)

    def update_event(
        self,
        uid: str,
        calendar_name: str | None = None,
        summary: str | None = None,
        start=None,
        end=None,
        description: str | None = None,
    ) -> WriteResult:
        updates = [
            FieldUpdate("SUMMARY", vcal.escape_text(summary or None)),
            FieldUpdate("DESCRIPTION", vcal.escape_text(description)),
        ]
        return self._update(
            Capability.EVENT,
            uid,
            updates,
            calendar_name,
            times={"DTSTART": start, "DTEND": end},
        )

    def delete_event(self, uid: str, calendar_name: str | None = None) -> WriteResult:
        return self._delete(Capability.EVENT, uid, calendar_name)

    def get_todos(self, calendar_name: str | None = None) -> list[TaskSummary]:
        """Tasks that are not completed, from one or all task-enabled calendars"""
        calendars = self._collections(Capability.TASK, calendar_name)
        body = build_open_tasks_query_body()

        todos = []
        for calendar, entry, record in self._records(Capability.TASK, calendars, body):
            todos.append(self._task_summary(calendar, record))
        return todos

    @staticmethod
    def _task_summary(calendar: CollectionRef, record: TextRecord) -> TaskSummary:
        return TaskSummary(
            uid=record.get_field("UID") or "No UID",
            calendar=calendar.display_name,
            summary=vcal.unescape_text(record.get_field("SUMMARY")) or "No Title",
            status=record.get_field("STATUS") or "NEEDS-ACTION",
            due=record.get_field("DUE"),
            priority=_priority(record.get_field("PRIORITY")),
        )

    def create_task(
        self,
        title: str,
        calendar_name: str | None = None,
        due=None,
        priority: int | None = None,
        description: str | None = None,
    ) -> WriteResult:
        if not title:
            raise error.InvalidInputError(reason="a task needs a title")
        uid = str(uuid.uuid4())
        body = vcal.create_ical(
            "VTODO",
            uid=uid,
            summary=title,
            due=vcal.parse_datetime(due) if due else None,
            priority=priority or None,
            description=description,
        )
        return self._create(Capability.TASK, uid, body, calendar_name)

    def update_task(
        self,
        uid: str,
        calendar_name: str | None = None,
        title: str | None = None,
        due=None,
        priority: int | None = None,
        description: str | None = None,
    ) -> WriteResult:
        updates = [
            FieldUpdate("SUMMARY", vcal.escape_text(title or None)),
            FieldUpdate("PRIORITY", str(priority) if priority else None),
            FieldUpdate("DESCRIPTION", vcal.escape_text(description or None)),
        ]
        return self._update(
            Capability.TASK, uid, updates, calendar_name, times={"DUE": due}
        )

    def complete_task(self, uid: str, calendar_name: str | None = None) -> WriteResult:
        updates = [
            FieldUpdate("STATUS", "COMPLETED"),
            FieldUpdate("COMPLETED", vcal.now_utc()),
            FieldUpdate("PERCENT-COMPLETE", "100"),
        ]
        return self._update(
            Capability.TASK, uid, updates, calendar_name, status="completed"
        )

    def delete_task(self, uid: str, calendar_name: str | None = None) -> WriteResult:
        return self._delete(Capability.TASK, uid, calendar_name)
