"""
Core data types shared by the decoder, discovery, locator and write layers.

These dataclasses are pure data with no I/O.  Everything is rebuilt on each
call; nothing here is cached between invocations.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Capability(Enum):
    """What kind of records a collection accepts."""

    EVENT = "VEVENT"
    TASK = "VTODO"
    CONTACT = "VCARD"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_component(cls, name: str | None) -> "Capability":
        """Map a supported-calendar-component-set comp name to a capability."""
        if not name:
            return cls.UNKNOWN
        for capability in cls:
            if capability.value == name.upper():
                return capability
        return cls.UNKNOWN

    @property
    def description(self) -> str:
        """Human readable prefix used in error messages."""
        return {
            Capability.EVENT: "event-enabled calendar",
            Capability.TASK: "task-enabled calendar",
            Capability.CONTACT: "address book",
            Capability.UNKNOWN: "collection",
        }[self]

    @property
    def record_name(self) -> str:
        """What a single resource in such a collection is called."""
        return {
            Capability.EVENT: "Event",
            Capability.TASK: "Task",
            Capability.CONTACT: "Contact",
            Capability.UNKNOWN: "Resource",
        }[self]


@dataclass(frozen=True)
class ResourceEntry:
    """
    One successful response block of a multistatus document.

    Attributes:
        href: Path of the resource, unquoted
        etag: Entity tag, if the server delivered one
        properties: Property tag (Clark notation) -> text, or a tuple of
            child values for structured properties
        capabilities: Capabilities derived from resourcetype and the
            supported component set, in declaration order
    """

    href: str
    etag: str | None = None
    properties: Mapping[str, Any] = field(default_factory=dict)
    capabilities: tuple[Capability, ...] = ()

    def get(self, tag: str, default: Any = None) -> Any:
        return self.properties.get(tag, default)


@dataclass(frozen=True)
class CollectionRef:
    """
    A calendar or address book found below the principal's home.

    Attributes:
        href: Path of the collection
        display_name: displayname, or the last path segment if unset
        capabilities: Declared capabilities in server order, empty if
            undeclared
    """

    href: str
    display_name: str
    capabilities: tuple[Capability, ...] = ()

    @property
    def capability(self) -> Capability:
        """The first declared capability, UNKNOWN if nothing was declared."""
        if self.capabilities:
            return self.capabilities[0]
        return Capability.UNKNOWN

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities


@dataclass(frozen=True)
class LocatedResource:
    """
    A resource found by the locator.

    ``raw_body`` is the text exactly as stored on the server.  It must only
    be changed through the text record codec.
    """

    href: str
    etag: str | None
    raw_body: str
    collection_href: str


@dataclass(frozen=True)
class CollectionFailure:
    """A query against one collection that failed during a scan."""

    collection: CollectionRef
    error: Exception


@dataclass
class ScanResult:
    """Everything a sequential scan over several collections produced."""

    matches: list[tuple[CollectionRef, ResourceEntry]] = field(default_factory=list)
    failures: list[CollectionFailure] = field(default_factory=list)


@dataclass
class LocateResult:
    """
    Outcome of a UID lookup.

    ``failures`` tells "not found, every collection answered" apart from
    "not found, but some collections could not be queried".
    """

    resource: LocatedResource | None = None
    failures: list[CollectionFailure] = field(default_factory=list)
    searched: int = 0

    @property
    def found(self) -> bool:
        return self.resource is not None


@dataclass(frozen=True)
class FieldUpdate:
    """
    A requested change to a single text record field.  A value of None
    leaves the field alone, it never removes an existing line.
    """

    name: str
    value: str | None


@dataclass(frozen=True)
class WriteResult:
    """What a create/update/delete operation reports back to the caller."""

    uid: str
    status: str
    collection: str | None = None
    href: str | None = None
