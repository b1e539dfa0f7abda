"""
Plumbing shared by the calendar and contact services.

A service holds a client, a discovery and a locator, and knows how to
run the three kinds of write every record type needs: create into a
resolved collection, read-modify-write of a located resource, and
delete of a located resource.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from groupdav import conditional
from groupdav.discovery import CollectionDiscovery
from groupdav.lib import error
from groupdav.lib import vcal
from groupdav.lib.vcal import TextRecord
from groupdav.locator import ResourceLocator, data_tag
from groupdav.protocol.types import (
    Capability,
    CollectionRef,
    FieldUpdate,
    ResourceEntry,
    WriteResult,
)

log = logging.getLogger("groupdav")


class ServiceBase:
    """
    Args:
        client: A DAVClient, or anything else fulfilling the
            ``perform_request`` transport call
    """

    def __init__(self, client) -> None:
        self.client = client
        self.discovery = CollectionDiscovery(client)
        self.locator = ResourceLocator(client, self.discovery)

    def _create(
        self,
        capability: Capability,
        uid: str,
        body: str,
        collection_name: str | None = None,
    ) -> WriteResult:
        collection = self.discovery.resolve(collection_name, capability)
        suffix = ".vcf" if capability == Capability.CONTACT else ".ics"
        href = conditional.create_resource(
            self.client,
            collection,
            uid + suffix,
            body,
            conditional.content_type_for(capability),
        )
        return WriteResult(
            uid=uid, status="created", collection=collection.display_name, href=href
        )

    def _update(
        self,
        capability: Capability,
        uid: str,
        updates: Iterable[FieldUpdate],
        collection_name: str | None = None,
        status: str = "updated",
        times: dict | None = None,
    ) -> WriteResult:
        """
        Read-modify-write of one located record.  ``times`` maps field
        names to timestamps, which are written in the form the existing
        line of the record uses.
        """
        transaction = conditional.UpdateTransaction.begin(
            self.locator, uid, capability, collection_name
        )
        updates = list(updates)
        for name, value in (times or {}).items():
            if value is None or value == "":
                continue
            updates.append(
                FieldUpdate(name, vcal.format_for_field(transaction.body, name, value))
            )
        transaction.mutate(updates)
        transaction.write()
        return WriteResult(uid=uid, status=status, href=transaction.resource.href)

    def _delete(
        self,
        capability: Capability,
        uid: str,
        collection_name: str | None = None,
    ) -> WriteResult:
        resource = self.locator.locate_or_raise(uid, capability, collection_name)
        conditional.delete_resource(self.client, resource.href)
        return WriteResult(uid=uid, status="deleted", href=resource.href)

    def _records(
        self,
        capability: Capability,
        collections: list[CollectionRef],
        body: bytes,
    ) -> Iterator[tuple[CollectionRef, ResourceEntry, TextRecord]]:
        """
        Scan the collections and yield every entry with its parsed
        record.  Entries without record data, or with data that does
        not parse, are logged and left out.
        """
        scan = self.locator.scan(collections, body)
        tag = data_tag(capability)
        for collection, entry in scan.matches:
            data = entry.get(tag)
            if not data:
                error.weirdness("entry without record data", entry.href)
                continue
            try:
                record = TextRecord.parse(data)
            except error.MalformedError as e:
                log.warning("skipping unparsable record %s: %s", entry.href, e)
                continue
            yield collection, entry, record

    def _collections(
        self, capability: Capability, collection_name: str | None = None
    ) -> list[CollectionRef]:
        return self.discovery.candidates(capability, collection_name)
