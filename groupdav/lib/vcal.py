#!/usr/bin/env python
"""
Field level reading and editing of iCalendar and vCard text.

Records fetched from the server are edited in place rather than being
round-tripped through a full object model: other clients may have
written properties we know nothing about, and those have to come back
byte for byte.  The text is parsed into an ordered list of content line
nodes, the nodes are edited, and the list is joined back together.

New records are built with the icalendar and vobject libraries.
"""
import datetime
import re
import uuid
from dataclasses import dataclass
from dataclasses import field
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple
from typing import Union
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

import icalendar
import vobject
from dateutil import parser as dateparser

from groupdav.lib import error

utc_tz = datetime.timezone.utc

## Components which carry the actual payload of a calendar object
## resource or a contact resource.
PRIMARY_COMPONENTS = ("VEVENT", "VTODO", "VJOURNAL", "VCARD")

## Carriage returns may come through the XML transport either decoded or,
## with some servers, as a literal character reference.
CR_ARTIFACTS = ("&#13;", "\r")

## rfc5545 sec 3.1, lines SHOULD NOT be longer than 75 octets
MAX_LINE_OCTETS = 75

_field_name_re = re.compile(r"^[A-Za-z0-9-]+$")
_param_re = re.compile(r';([^=;]+)=("[^"]*"|[^;]*)')
_text_escape_re = re.compile(r"\\(.)")


def _clean(text: str) -> str:
    for artifact in CR_ARTIFACTS:
        text = text.replace(artifact, "")
    return text


def _line_ending(raw: str) -> str:
    """The carriage return (if any) a physical line was stored with"""
    return "\r" if raw.endswith("\r") else ""


def _fold(line: str, ending: str) -> List[str]:
    """Split a logical line into physical lines of at most 75 octets"""
    lines = []
    current = ""
    for char in line:
        if len((current + char).encode("utf-8")) > MAX_LINE_OCTETS:
            lines.append(current + ending)
            ## the leading space of a continuation line counts
            current = " "
        current += char
    lines.append(current + ending)
    return lines


@dataclass
class ContentLine:
    """
    One logical line of a text record: ``[group.]NAME[;PARAMS]:VALUE``.

    ``raw_lines`` holds the physical lines exactly as read, continuation
    lines included, without the terminating newline.  Blank lines and
    anything else without a colon become opaque nodes with ``name`` None.
    """

    raw_lines: List[str]
    group: Optional[str] = None
    name: Optional[str] = None
    params: str = ""
    value: Optional[str] = None

    @classmethod
    def parse(cls, raw_lines: List[str]) -> "ContentLine":
        logical = _clean(raw_lines[0]) + "".join(
            _clean(x)[1:] for x in raw_lines[1:]
        )
        colon = _find_value_colon(logical)
        if colon is None:
            return cls(raw_lines=raw_lines)
        head = logical[:colon]
        semicolon = head.find(";")
        if semicolon == -1:
            name, params = head, ""
        else:
            name, params = head[:semicolon], head[semicolon:]
        group = None
        if "." in name:
            group, name = name.split(".", 1)
        return cls(
            raw_lines=raw_lines,
            group=group,
            name=name,
            params=params,
            value=logical[colon + 1 :],
        )

    @property
    def key(self) -> Optional[str]:
        """Upper-cased field name, used for all matching"""
        return self.name.upper() if self.name is not None else None

    @property
    def clean_value(self) -> Optional[str]:
        if self.value is None:
            return None
        return self.value.strip()

    def with_value(self, value: str) -> "ContentLine":
        """A copy of this line carrying a new value, parameters untouched"""
        prefix = (self.group + "." if self.group else "") + self.name + self.params
        ending = _line_ending(self.raw_lines[0])
        return ContentLine(
            raw_lines=_fold(prefix + ":" + value, ending),
            group=self.group,
            name=self.name,
            params=self.params,
            value=value,
        )


def _find_value_colon(logical: str) -> Optional[int]:
    """Index of the colon separating name and params from the value.
    Quoted parameter values may contain colons themselves."""
    in_quotes = False
    for i, char in enumerate(logical):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ":" and not in_quotes:
            return i
    return None


@dataclass
class _Component:
    type: str
    begin: int
    end: int
    depth: int


@dataclass
class TextRecord:
    """
    An iCalendar or vCard document as an ordered list of content lines.

    Reads and writes are scoped to the direct fields of the primary
    component (the first VEVENT, VTODO, VJOURNAL or VCARD, or else the
    outermost component), so lines inside nested VALARM or VTIMEZONE
    components never match.
    """

    nodes: List[ContentLine]
    depths: List[int] = field(default_factory=list)
    components: List[_Component] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "TextRecord":
        if text is None:
            raise error.MalformedError(reason="no text record given")
        nodes: List[ContentLine] = []
        for raw in text.split("\n"):
            ## rfc5545 sec 3.1, unfolding
            continuation = raw[:1] in (" ", "\t")
            if continuation and nodes and _clean(nodes[-1].raw_lines[0]).strip():
                nodes[-1].raw_lines.append(raw)
            else:
                nodes.append(ContentLine(raw_lines=[raw]))
        nodes = [ContentLine.parse(node.raw_lines) for node in nodes]
        record = cls(nodes=nodes)
        record._index()
        return record

    def _index(self) -> None:
        self.depths = []
        self.components = []
        stack: List[Tuple[str, int]] = []
        for i, node in enumerate(self.nodes):
            if node.key == "BEGIN":
                self.depths.append(len(stack))
                stack.append((node.clean_value.upper(), i))
            elif node.key == "END":
                ctype = node.clean_value.upper()
                if not stack or stack[-1][0] != ctype:
                    raise error.MalformedError(
                        reason=f"END:{ctype} does not close an open component"
                    )
                begin_type, begin = stack.pop()
                self.depths.append(len(stack))
                self.components.append(
                    _Component(type=begin_type, begin=begin, end=i, depth=len(stack))
                )
            else:
                self.depths.append(len(stack))
        if stack:
            raise error.MalformedError(
                reason=f"BEGIN:{stack[-1][0]} is never closed by END:{stack[-1][0]}"
            )
        if not self.components:
            raise error.MalformedError(reason="no BEGIN/END delimited component found")
        self.components.sort(key=lambda c: c.begin)

    def __str__(self) -> str:
        return "\n".join(raw for node in self.nodes for raw in node.raw_lines)

    def serialize(self) -> str:
        return str(self)

    @property
    def primary(self) -> _Component:
        for component in self.components:
            if component.type in PRIMARY_COMPONENTS:
                return component
        return self.components[0]

    @property
    def component_type(self) -> str:
        return self.primary.type

    def _fields(self, name: str) -> Iterable[Tuple[int, ContentLine]]:
        key = _validate_name(name)
        component = self.primary
        for i in range(component.begin + 1, component.end):
            node = self.nodes[i]
            if self.depths[i] == component.depth + 1 and node.key == key:
                yield (i, node)

    def get_field(self, name: str) -> Optional[str]:
        """Value of the first occurrence of a field, or None"""
        for _, node in self._fields(name):
            return node.clean_value
        return None

    def get_all_occurrences(self, name: str) -> List[str]:
        """Values of every occurrence of a field, in document order"""
        return [node.clean_value for _, node in self._fields(name)]

    def get_params(self, name: str) -> dict:
        """Parameters of the first occurrence of a field, keys upper-cased"""
        for _, node in self._fields(name):
            return {
                key.strip().upper(): value.strip('"')
                for key, value in _param_re.findall(node.params)
            }
        return {}

    def upsert_field(self, name: str, value: Optional[str]) -> "TextRecord":
        """
        Replace the value of the first occurrence of a field, or insert a
        new ``NAME:VALUE`` line right before the end of the primary
        component.  Returns a new record; a value of None returns an
        unchanged copy.  Applying the same upsert twice gives the same
        text as applying it once.
        """
        name = _validate_name(name)
        nodes = list(self.nodes)
        if value is None:
            return TextRecord._from_nodes(nodes)
        value = _escape_newlines(str(value))

        for i, node in self._fields(name):
            if node.value == value:
                return TextRecord._from_nodes(nodes)
            nodes[i] = node.with_value(value)
            return TextRecord._from_nodes(nodes)

        end = self.primary.end
        ending = _line_ending(self.nodes[end].raw_lines[0])
        nodes.insert(
            end,
            ContentLine(
                raw_lines=_fold(f"{name}:{value}", ending),
                name=name,
                value=value,
            ),
        )
        return TextRecord._from_nodes(nodes)

    @classmethod
    def _from_nodes(cls, nodes: List[ContentLine]) -> "TextRecord":
        record = cls(nodes=nodes)
        record._index()
        return record


def _validate_name(name: str) -> str:
    if not name or not _field_name_re.match(name):
        raise error.InvalidInputError(reason=f"invalid field name {name!r}")
    return name.upper()


def _escape_newlines(value: str) -> str:
    ## a raw newline would end the content line
    return value.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\\n")


def escape_text(value: Optional[str]) -> Optional[str]:
    """
    Escape a TEXT value (rfc5545 sec 3.3.11, rfc6350 sec 3.4) for
    writing into a content line.
    """
    if value is None:
        return None
    value = str(value).replace("\\", "\\\\")
    value = value.replace(";", "\\;").replace(",", "\\,")
    return _escape_newlines(value)


def unescape_text(value: Optional[str]) -> Optional[str]:
    """The plain text of an escaped TEXT value"""
    if value is None:
        return None
    return _text_escape_re.sub(
        lambda m: "\n" if m.group(1) in "nN" else m.group(1), value
    )


TextOrRecord = Union[str, TextRecord]


def to_record(record: TextOrRecord) -> TextRecord:
    if isinstance(record, TextRecord):
        return record
    return TextRecord.parse(record)


def get_field(record: TextOrRecord, name: str) -> Optional[str]:
    return to_record(record).get_field(name)


def get_all_occurrences(record: TextOrRecord, name: str) -> List[str]:
    return to_record(record).get_all_occurrences(name)


def upsert_field(record: TextOrRecord, name: str, value: Optional[str]) -> str:
    return str(to_record(record).upsert_field(name, value))


def apply_updates(record: TextOrRecord, updates: Iterable) -> str:
    """
    Apply a sequence of FieldUpdate (or (name, value) pairs) in order
    and return the resulting text.
    """
    rec = to_record(record)
    for update in updates:
        if isinstance(update, tuple):
            name, value = update
        else:
            name, value = update.name, update.value
        rec = rec.upsert_field(name, value)
    return str(rec)


def parse_datetime(value: Union[str, datetime.date]) -> datetime.datetime:
    """
    Turn an ISO 8601 string (basic or extended format), a date or a
    datetime into an aware UTC datetime.  Naive values are assumed to be
    in local time.
    """
    if isinstance(value, str):
        try:
            value = dateparser.isoparse(value.strip())
        except ValueError as e:
            raise error.InvalidInputError(
                reason=f"cannot parse {value!r} as a date or timestamp"
            ) from e
    if isinstance(value, datetime.datetime):
        return value.astimezone(utc_tz)
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day, tzinfo=utc_tz)
    raise error.InvalidInputError(reason=f"cannot parse {value!r} as a date or timestamp")


def format_utc(value: Union[str, datetime.date]) -> str:
    """Render a timestamp in the ``YYYYMMDDTHHMMSSZ`` UTC form"""
    return parse_datetime(value).strftime("%Y%m%dT%H%M%SZ")


def now_utc() -> str:
    return format_utc(datetime.datetime.now(tz=utc_tz))


def _as_date(value: Union[str, datetime.date]) -> datetime.date:
    if isinstance(value, str):
        try:
            value = dateparser.isoparse(value.strip())
        except ValueError as e:
            raise error.InvalidInputError(reason=f"cannot parse {value!r} as a date") from e
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def format_for_field(
    record: TextOrRecord, name: str, value: Union[str, datetime.date]
) -> str:
    """
    Render a timestamp the way the existing ``name`` line of the record
    expects it: a plain date for ``VALUE=DATE``, local time for a
    ``TZID``, and UTC otherwise.  An unknown TZID is refused, as the
    value could not be written without changing its meaning.
    """
    params = to_record(record).get_params(name)
    if params.get("VALUE", "").upper() == "DATE":
        return _as_date(value).strftime("%Y%m%d")
    tzid = params.get("TZID")
    if tzid:
        try:
            zone = ZoneInfo(tzid)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise error.InvalidInputError(
                reason=f"{name} uses the unknown time zone {tzid!r}"
            ) from e
        return parse_datetime(value).astimezone(zone).strftime("%Y%m%dT%H%M%S")
    return format_utc(value)


_component_classes = {
    "VEVENT": icalendar.Event,
    "VTODO": icalendar.Todo,
}


def create_ical(objtype: str = "VEVENT", language: str = "en", **props) -> str:
    """
    Build a new VCALENDAR holding one VEVENT or VTODO.  UID, DTSTAMP,
    PRODID and VERSION are filled in when not given, and tasks default
    to STATUS:NEEDS-ACTION.  Properties with a None value are skipped.
    """
    if objtype not in _component_classes:
        raise error.InvalidInputError(reason=f"cannot create a {objtype} component")
    my_instance = icalendar.Calendar()
    my_instance.add("prodid", "-//groupdav//groupdav//" + language)
    my_instance.add("version", "2.0")
    component = _component_classes[objtype]()

    if not props.get("uid"):
        props["uid"] = str(uuid.uuid4())
    if not props.get("dtstamp"):
        props["dtstamp"] = datetime.datetime.now(tz=utc_tz)
    ## STATUS should default to NEEDS-ACTION for tasks, otherwise
    ## some servers will not find the task again in a status query
    if objtype == "VTODO" and not props.get("status"):
        props["status"] = "NEEDS-ACTION"

    for prop, value in props.items():
        if value is None:
            continue
        if isinstance(value, datetime.datetime):
            ## We need to have a timezone, and all timestamps go out in UTC
            value = value.astimezone(utc_tz)
        component.add(prop, value)
    my_instance.add_component(component)
    return my_instance.to_ical().decode("utf-8")


def split_full_name(full_name: str) -> Tuple[str, str]:
    """
    (family, given) from a full name: the last word is taken as the
    family name, a single word is all family name.
    """
    parts = full_name.split()
    if len(parts) >= 2:
        return (parts[-1], " ".join(parts[:-1]))
    return (full_name.strip(), "")


def structured_name(full_name: str) -> str:
    """The N value (``Last;First;;;``) for a full name"""
    family, given = split_full_name(full_name)
    return f"{escape_text(family)};{escape_text(given)};;;"


def _as_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [x for x in value if x]


def create_vcard(
    full_name: str,
    uid: Optional[str] = None,
    emails=None,
    phones=None,
    organization: Optional[str] = None,
    title: Optional[str] = None,
    note: Optional[str] = None,
) -> str:
    """
    Build a vCard 3.0 with UID, FN and a structured N.  ``emails`` and
    ``phones`` may be a single string or a list; every entry becomes
    its own EMAIL/TEL line.
    """
    card = vobject.vCard()
    card.add("uid").value = uid or str(uuid.uuid4())
    card.add("fn").value = full_name
    family, given = split_full_name(full_name)
    card.add("n").value = vobject.vcard.Name(family=family, given=given)
    for email in _as_list(emails):
        card.add("email").value = email
    for phone in _as_list(phones):
        card.add("tel").value = phone
    if organization:
        card.add("org").value = [organization]
    if title:
        card.add("title").value = title
    if note:
        card.add("note").value = note
    return card.serialize()
