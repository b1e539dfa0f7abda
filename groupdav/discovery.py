"""
Collection discovery - listing the calendars and address books of the
principal, and picking the one an operation should work on.

Nothing is cached: every call asks the server again, so a collection
created or renamed by another client is seen immediately.
"""

from __future__ import annotations

import logging

from groupdav.elements import carddav, cdav, dav
from groupdav.lib import error
from groupdav.lib.url import last_segment
from groupdav.protocol.types import Capability, CollectionRef, ResourceEntry
from groupdav.protocol.xml_builders import build_propfind_body
from groupdav.protocol.xml_parsers import decode_multistatus, resource_types

log = logging.getLogger("groupdav")


class CollectionDiscovery:
    """
    Finds collections below the principal's calendar home or address
    book home with a depth 1 PROPFIND.

    Args:
        client: A DAVClient, or anything else offering ``perform_request``,
            ``calendar_home``, ``addressbook_home`` and ``huge_tree``
    """

    def __init__(self, client) -> None:
        self.client = client

    def find_collections(
        self, capability: Capability | None = None
    ) -> list[CollectionRef]:
        """
        List the collections of one domain, in server order.

        Address books are listed for ``Capability.CONTACT``, calendars
        otherwise.  With a capability given, only collections declaring
        it are returned; collections declaring nothing never match.
        """
        if capability == Capability.CONTACT:
            return self.find_addressbooks()
        return self.find_calendars(capability)

    def find_calendars(
        self, capability: Capability | None = None
    ) -> list[CollectionRef]:
        """Calendars below the calendar home, optionally filtered by capability"""
        refs = self._list(
            self.client.calendar_home,
            build_propfind_body(calendars=True),
            cdav.Calendar.tag,
        )
        if capability is None:
            return refs
        return [ref for ref in refs if ref.supports(capability)]

    def find_addressbooks(self) -> list[CollectionRef]:
        """Address books below the address book home"""
        return self._list(
            self.client.addressbook_home,
            build_propfind_body(calendars=False),
            carddav.Addressbook.tag,
        )

    def resolve(
        self, name: str | None = None, capability: Capability | None = None
    ) -> CollectionRef:
        """
        The collection an operation should target.

        With a name, the collection with exactly that display name; without
        one, the first collection the server listed.

        Raises:
            NotFoundError: If no collection matches
        """
        collections = self.find_collections(capability)
        description = (capability or Capability.UNKNOWN).description
        if name:
            for ref in collections:
                if ref.display_name == name:
                    return ref
            raise error.NotFoundError(
                reason=f"{description[0].upper()}{description[1:]} '{name}' not found."
            )
        if not collections:
            raise error.NotFoundError(reason=f"No {description}s found.")
        return collections[0]

    def candidates(
        self, capability: Capability, name: str | None = None
    ) -> list[CollectionRef]:
        """
        The collections a lookup should search: the named one only, or
        every collection with the capability.

        Raises:
            NotFoundError: If a name is given and does not resolve
        """
        if name:
            return [self.resolve(name, capability)]
        return self.find_collections(capability)

    def _list(self, home: str, body: bytes, marker: str) -> list[CollectionRef]:
        response = self.client.perform_request(
            home, "PROPFIND", {"Depth": "1"}, body
        )
        entries = decode_multistatus(
            response, huge_tree=getattr(self.client, "huge_tree", False)
        )
        refs = [
            _to_ref(entry)
            for entry in entries
            if marker in resource_types(entry.properties)
        ]
        log.debug("found %i collections below %s", len(refs), home)
        return refs


def _to_ref(entry: ResourceEntry) -> CollectionRef:
    display_name = entry.get(dav.DisplayName.tag)
    if not display_name:
        display_name = last_segment(entry.href) or entry.href
    return CollectionRef(
        href=entry.href,
        display_name=display_name,
        capabilities=entry.capabilities,
    )
