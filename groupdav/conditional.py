"""
Writes guarded by HTTP preconditions.

A new resource is only created if nothing exists at its path
(``If-None-Match: *``), and an existing one is only replaced if it still
carries the etag it had when it was read (``If-Match``).  The server
answers 412 when a precondition does not hold; that is reported as a
ConflictError and never retried.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

from groupdav.lib import error
from groupdav.lib import vcal
from groupdav.lib.url import child
from groupdav.protocol.types import (
    Capability,
    CollectionRef,
    FieldUpdate,
    LocatedResource,
)

log = logging.getLogger("groupdav")

CALENDAR_CONTENT_TYPE = "text/calendar; charset=utf-8"
VCARD_CONTENT_TYPE = "text/vcard; charset=utf-8"

PRECONDITION_FAILED = 412
NOT_FOUND = 404


def content_type_for(capability: Capability) -> str:
    if capability == Capability.CONTACT:
        return VCARD_CONTENT_TYPE
    return CALENDAR_CONTENT_TYPE


def create_resource(
    client,
    collection: CollectionRef | str,
    filename: str,
    body: str,
    content_type: str = CALENDAR_CONTENT_TYPE,
) -> str:
    """
    PUT a new resource into a collection, refusing to overwrite.

    Returns:
        The href of the new resource

    Raises:
        ConflictError: Something already exists at that path
    """
    if not filename:
        raise error.InvalidInputError(reason="a file name is required to create a resource")
    collection_href = collection.href if isinstance(collection, CollectionRef) else collection
    href = child(collection_href, filename)
    try:
        client.perform_request(
            href,
            "PUT",
            {"Content-Type": content_type, "If-None-Match": "*"},
            body,
        )
    except error.TransportError as e:
        if e.status == PRECONDITION_FAILED:
            raise error.ConflictError(
                url=href,
                reason=f"a resource named {filename} already exists in {collection_href}",
            ) from e
        raise
    log.debug("created %s", href)
    return href


def update_resource(
    client,
    href: str,
    etag: str | None,
    body: str,
    content_type: str = CALENDAR_CONTENT_TYPE,
) -> None:
    """
    PUT a changed body back, on the condition that the resource still
    has the etag it was read with.

    Raises:
        ConflictError: The resource was changed by someone else since it
            was read, or no etag is known for it
    """
    if not etag:
        raise error.ConflictError(
            url=href,
            reason=f"no etag known for {href}, refusing to overwrite it unconditionally",
        )
    try:
        client.perform_request(
            href,
            "PUT",
            {"Content-Type": content_type, "If-Match": etag},
            body,
        )
    except error.TransportError as e:
        if e.status == PRECONDITION_FAILED:
            raise error.ConflictError(
                url=href,
                reason=f"{href} was modified since it was read (etag {etag} is stale)",
            ) from e
        raise
    log.debug("updated %s", href)


def delete_resource(client, href: str) -> bool:
    """
    DELETE a resource.  A resource that is already gone counts as
    deleted.

    Returns:
        False if the server said it did not exist, True otherwise
    """
    try:
        client.perform_request(href, "DELETE")
    except error.TransportError as e:
        if e.status == NOT_FOUND:
            log.info("%s was already deleted", href)
            return False
        raise
    log.debug("deleted %s", href)
    return True


class WriteState(Enum):
    LOCATED = "located"
    MUTATED = "mutated"
    WRITTEN = "written"
    CONFLICT = "conflict"


class UpdateTransaction:
    """
    Read-modify-write of one located resource.

    The transaction starts out LOCATED.  ``mutate`` applies field updates
    to the raw text (MUTATED), ``write`` puts it back with the etag read
    by the locator as precondition (WRITTEN).  A failed precondition
    leaves the transaction in CONFLICT and raises ConflictError; it can
    not be written again.
    """

    def __init__(
        self,
        client,
        resource: LocatedResource,
        content_type: str = CALENDAR_CONTENT_TYPE,
    ) -> None:
        self.client = client
        self.resource = resource
        self.content_type = content_type
        self.body = resource.raw_body
        self.state = WriteState.LOCATED

    @classmethod
    def begin(
        cls,
        locator,
        uid: str,
        capability: Capability,
        collection_name: str | None = None,
    ) -> "UpdateTransaction":
        """
        Locate the resource and start a transaction on it.

        Raises:
            NotFoundError: No resource with that UID was found
        """
        resource = locator.locate_or_raise(uid, capability, collection_name)
        return cls(locator.client, resource, content_type_for(capability))

    def mutate(self, updates: Iterable[FieldUpdate]) -> str:
        """Apply field updates to the body.  May be called repeatedly."""
        self._require(WriteState.LOCATED, WriteState.MUTATED)
        self.body = vcal.apply_updates(self.body, updates)
        self.state = WriteState.MUTATED
        return self.body

    def write(self) -> None:
        """
        Put the mutated body back.

        Raises:
            ConflictError: The precondition failed
        """
        self._require(WriteState.MUTATED)
        try:
            update_resource(
                self.client,
                self.resource.href,
                self.resource.etag,
                self.body,
                self.content_type,
            )
        except error.ConflictError:
            self.state = WriteState.CONFLICT
            raise
        self.state = WriteState.WRITTEN

    def _require(self, *states: WriteState) -> None:
        if self.state not in states:
            raise error.InvalidInputError(
                url=self.resource.href,
                reason=f"update of {self.resource.href} is {self.state.value}, expected %s"
                % " or ".join(s.value for s in states),
            )
