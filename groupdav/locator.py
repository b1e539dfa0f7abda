"""
Resource lookup by UID across one or more collections.

Collections are queried one after another, in the order discovery
returned them, and the lookup stops at the first collection holding the
UID.  A collection that cannot be queried does not stop the scan; the
failure is logged and recorded in the result, so the caller can tell
"not there" apart from "could not look everywhere".
"""

from __future__ import annotations

import logging
from typing import Iterable

from groupdav.discovery import CollectionDiscovery
from groupdav.elements import carddav, cdav
from groupdav.lib import error
from groupdav.lib import vcal
from groupdav.protocol.types import (
    Capability,
    CollectionFailure,
    CollectionRef,
    LocatedResource,
    LocateResult,
    ResourceEntry,
    ScanResult,
)
from groupdav.protocol.xml_builders import build_uid_query_body
from groupdav.protocol.xml_parsers import decode_multistatus

log = logging.getLogger("groupdav")


def data_tag(capability: Capability) -> str:
    """The property carrying the record text for a capability"""
    if capability == Capability.CONTACT:
        return carddav.AddressData.tag
    return cdav.CalendarData.tag


class ResourceLocator:
    """
    Finds resources with REPORT queries.

    Args:
        client: Anything offering the ``perform_request`` transport call
        discovery: Used to find the candidate collections, built from
            the client if not given
    """

    def __init__(self, client, discovery: CollectionDiscovery | None = None) -> None:
        self.client = client
        self.discovery = discovery or CollectionDiscovery(client)

    def scan(self, collections: Iterable[CollectionRef], body: bytes) -> ScanResult:
        """
        Send the same REPORT body to each collection in turn and collect
        every decoded entry.

        Transport errors and undecodable responses are recorded as
        failures of that collection and the scan moves on.  Everything
        else propagates.
        """
        result = ScanResult()
        for collection in collections:
            try:
                response = self.client.perform_request(
                    collection.href, "REPORT", {"Depth": "1"}, body
                )
                entries = decode_multistatus(
                    response, huge_tree=getattr(self.client, "huge_tree", False)
                )
            except (error.TransportError, error.MalformedError) as e:
                log.warning(
                    "query against '%s' failed, skipping it: %s",
                    collection.display_name,
                    e,
                )
                result.failures.append(CollectionFailure(collection=collection, error=e))
                continue
            result.matches.extend((collection, entry) for entry in entries)
        return result

    def locate(
        self,
        uid: str,
        capability: Capability,
        collection_name: str | None = None,
    ) -> LocateResult:
        """
        Find the resource whose UID is exactly ``uid``.

        Args:
            uid: The UID, matched case-sensitively
            capability: EVENT, TASK or CONTACT
            collection_name: Only search the collection with this display
                name

        Returns:
            A LocateResult; ``resource`` is None if nothing matched

        Raises:
            InvalidInputError: If the uid is empty
            NotFoundError: If ``collection_name`` does not resolve.  No
                query has been sent then.
        """
        if not uid or not uid.strip():
            raise error.InvalidInputError(
                reason=f"a UID is required to look up a {capability.record_name.lower()}"
            )
        collections = self.discovery.candidates(capability, collection_name)
        body = build_uid_query_body(uid, capability.value)

        result = LocateResult(searched=len(collections))
        for collection in collections:
            scan = self.scan([collection], body)
            result.failures.extend(scan.failures)
            for _, entry in scan.matches:
                resource = self._to_resource(uid, capability, collection, entry)
                if resource is not None:
                    result.resource = resource
                    return result
        return result

    def locate_or_raise(
        self,
        uid: str,
        capability: Capability,
        collection_name: str | None = None,
    ) -> LocatedResource:
        """
        Like ``locate``, but a miss is raised as NotFoundError naming the
        UID, and how many collections could not be searched.
        """
        result = self.locate(uid, capability, collection_name)
        if result.found:
            return result.resource
        reason = f"{capability.record_name} {uid} not found."
        if result.failures:
            reason += " %i of %i collections could not be searched (%s)." % (
                len(result.failures),
                result.searched,
                ", ".join(f.collection.display_name for f in result.failures),
            )
        raise error.NotFoundError(reason=reason)

    def _to_resource(
        self,
        uid: str,
        capability: Capability,
        collection: CollectionRef,
        entry: ResourceEntry,
    ) -> LocatedResource | None:
        raw_body = entry.get(data_tag(capability))
        if raw_body is None:
            error.weirdness(f"match for UID {uid} came without record data", entry.href)
            return None
        ## text-match is a substring match, the UID has to be compared here
        try:
            found_uid = vcal.get_field(raw_body, "UID")
        except error.MalformedError as e:
            log.warning("skipping unparsable record %s: %s", entry.href, e)
            return None
        if found_uid != uid:
            log.debug("%s has UID %s, not %s", entry.href, found_uid, uid)
            return None
        return LocatedResource(
            href=entry.href,
            etag=entry.etag,
            raw_body=raw_body,
            collection_href=collection.href,
        )
