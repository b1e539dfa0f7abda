"""
Pure functions for building the XML request bodies.

All functions in this module are pure - they take data in and return XML out,
with no side effects or I/O.  Values are set as element text, so lxml does
the escaping; nothing is spliced into XML strings.
"""
from datetime import datetime
from typing import List
from typing import Optional

from groupdav.elements import carddav
from groupdav.elements import cdav
from groupdav.elements import dav
from groupdav.elements.base import BaseElement
from groupdav.lib import error

## properties a contact search looks into
CONTACT_SEARCH_FIELDS = ("FN", "EMAIL", "TEL", "ORG")


def build_propfind_body(calendars: bool = True) -> bytes:
    """
    Build the PROPFIND body used to list collections below a home.

    Args:
        calendars: Also ask for the supported calendar component set

    Returns:
        UTF-8 encoded XML bytes
    """
    props: List[BaseElement] = [dav.ResourceType(), dav.DisplayName()]
    if calendars:
        props.append(cdav.SupportedCalendarComponentSet())
    return (dav.Propfind() + (dav.Prop() + props)).to_bytes()


def build_calendar_query_body(
    comp_type: str,
    filters: Optional[List[BaseElement]] = None,
) -> bytes:
    """
    Build a calendar-query REPORT body asking for etag and calendar data
    of every ``comp_type`` component matching ``filters``.

    Args:
        comp_type: VEVENT or VTODO
        filters: Elements to put inside the component filter

    Returns:
        UTF-8 encoded XML bytes
    """
    prop = dav.Prop() + [dav.GetEtag(), cdav.CalendarData()]
    comp_filter = cdav.CompFilter(comp_type)
    if filters:
        comp_filter += filters
    vcalendar = cdav.CompFilter("VCALENDAR") + comp_filter
    root = cdav.CalendarQuery() + [prop, cdav.Filter() + vcalendar]
    return root.to_bytes()


def build_time_range_query_body(
    start: datetime, end: datetime, comp_type: str = "VEVENT"
) -> bytes:
    """calendar-query for components overlapping the given time range"""
    if start is None or end is None:
        raise error.InvalidInputError(reason="a time range query needs both start and end")
    return build_calendar_query_body(comp_type, [cdav.TimeRange(start, end)])


def build_open_tasks_query_body() -> bytes:
    """calendar-query for tasks whose STATUS is not COMPLETED"""
    status_filter = cdav.PropFilter("STATUS") + cdav.TextMatch("COMPLETED", negate=True)
    return build_calendar_query_body("VTODO", [status_filter])


def build_uid_query_body(uid: str, comp_type: str) -> bytes:
    """
    Build the REPORT body finding the resource whose UID is exactly
    ``uid``.  The octet collation makes the match case-sensitive.

    Args:
        uid: The UID to look for
        comp_type: VEVENT or VTODO for calendars, VCARD for address books

    Returns:
        UTF-8 encoded XML bytes
    """
    if not uid:
        raise error.InvalidInputError(reason="a UID query needs a non-empty UID")
    if comp_type == "VCARD":
        uid_filter = carddav.PropFilter("UID") + carddav.TextMatch(
            uid, collation="i;octet"
        )
        return build_addressbook_query_body([uid_filter])
    uid_filter = cdav.PropFilter("UID") + cdav.TextMatch(uid, collation="i;octet")
    return build_calendar_query_body(comp_type, [uid_filter])


def build_addressbook_query_body(
    filters: Optional[List[BaseElement]] = None,
    test: Optional[str] = None,
) -> bytes:
    """
    Build an addressbook-query REPORT body asking for etag and address
    data.  Without filters every card in the address book matches.
    """
    prop = dav.Prop() + [dav.GetEtag(), carddav.AddressData()]
    elements: List[BaseElement] = [prop]
    if filters:
        elements.append(carddav.Filter(test=test) + filters)
    return (carddav.AddressbookQuery() + elements).to_bytes()


def build_contact_search_body(query: str) -> bytes:
    """
    addressbook-query matching cards where any of FN, EMAIL, TEL or ORG
    contains ``query``, case-insensitively.
    """
    if not query:
        raise error.InvalidInputError(reason="a contact search needs a non-empty query")
    filters = [
        carddav.PropFilter(name)
        + carddav.TextMatch(
            query, collation="i;unicode-casemap", match_type="contains"
        )
        for name in CONTACT_SEARCH_FIELDS
    ]
    return build_addressbook_query_body(filters, test="anyof")
