"""
Contacts on the CardDAV side of the server.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from groupdav.lib import error
from groupdav.lib import vcal
from groupdav.lib.vcal import TextOrRecord
from groupdav.protocol.types import Capability, CollectionRef, FieldUpdate, WriteResult
from groupdav.protocol.xml_builders import (
    build_addressbook_query_body,
    build_contact_search_body,
)
from groupdav.service import ServiceBase

log = logging.getLogger("groupdav")


@dataclass
class Contact:
    uid: str | None
    full_name: str | None
    name: str | None = None
    phones: list[str] | None = None
    emails: list[str] | None = None
    organization: str | None = None
    title: str | None = None
    note: str | None = None
    addressbook: str | None = None
    href: str | None = None


def parse_vcard(text: TextOrRecord) -> Contact:
    """
    Read the fields of a vCard, with TEXT values unescaped.  Every TEL
    and EMAIL line is kept, in document order; ``phones`` and ``emails``
    are None when there are none.
    """
    record = vcal.to_record(text)
    phones = record.get_all_occurrences("TEL")
    emails = record.get_all_occurrences("EMAIL")
    return Contact(
        uid=record.get_field("UID"),
        full_name=vcal.unescape_text(record.get_field("FN")),
        name=record.get_field("N"),
        phones=phones or None,
        emails=emails or None,
        organization=vcal.unescape_text(record.get_field("ORG")),
        title=vcal.unescape_text(record.get_field("TITLE")),
        note=vcal.unescape_text(record.get_field("NOTE")),
    )


class ContactService(ServiceBase):
    """
    Lists, searches, creates, changes and deletes contacts.

    Address books are picked by display name, which falls back to the
    last segment of the address book path when the server sends none.
    """

    def find_addressbooks(self) -> list[CollectionRef]:
        return self.discovery.find_addressbooks()

    def list(self, addressbook_name: str | None = None) -> list[Contact]:
        """Every contact of one or all address books"""
        return self._contacts(
            self._collections(Capability.CONTACT, addressbook_name),
            build_addressbook_query_body(),
        )

    def search(self, query: str, addressbook_name: str | None = None) -> list[Contact]:
        """
        Contacts where the full name, an email, a phone number or the
        organization contains ``query``.  Matching is done by the server
        and is case-insensitive.
        """
        if not query or not query.strip():
            raise error.InvalidInputError(reason="a contact search needs a query")
        return self._contacts(
            self._collections(Capability.CONTACT, addressbook_name),
            build_contact_search_body(query),
        )

    def get(self, uid: str, addressbook_name: str | None = None) -> Contact:
        """
        The contact with exactly this UID.

        Raises:
            NotFoundError: If no address book has it
        """
        resource = self.locator.locate_or_raise(uid, Capability.CONTACT, addressbook_name)
        contact = parse_vcard(resource.raw_body)
        contact.href = resource.href
        for ref in self.discovery.find_addressbooks():
            if ref.href == resource.collection_href:
                contact.addressbook = ref.display_name
                break
        return contact

    def create(
        self,
        full_name: str,
        addressbook_name: str | None = None,
        email=None,
        phone=None,
        organization: str | None = None,
        title: str | None = None,
        note: str | None = None,
    ) -> WriteResult:
        """
        Create a vCard.  ``email`` and ``phone`` may be a single value or
        a list, each entry gets its own line.
        """
        if not full_name or not full_name.strip():
            raise error.InvalidInputError(reason="a contact needs a full name")
        uid = str(uuid.uuid4())
        body = vcal.create_vcard(
            full_name,
            uid=uid,
            emails=email,
            phones=phone,
            organization=organization,
            title=title,
            note=note,
        )
        return self._create(Capability.CONTACT, uid, body, addressbook_name)

    def update(
        self,
        uid: str,
        addressbook_name: str | None = None,
        full_name: str | None = None,
        organization: str | None = None,
        title: str | None = None,
        note: str | None = None,
    ) -> WriteResult:
        """
        Change single-valued fields of a contact.  Emails and phone
        numbers can have several lines and are only set on creation.
        """
        updates = [FieldUpdate("FN", vcal.escape_text(full_name or None))]
        ## a single word may be a nickname, the structured name stays then
        if full_name and len(full_name.split()) >= 2:
            updates.append(FieldUpdate("N", vcal.structured_name(full_name)))
        updates += [
            FieldUpdate("ORG", vcal.escape_text(organization or None)),
            FieldUpdate("TITLE", vcal.escape_text(title or None)),
            FieldUpdate("NOTE", vcal.escape_text(note or None)),
        ]
        return self._update(Capability.CONTACT, uid, updates, addressbook_name)

    def delete(self, uid: str, addressbook_name: str | None = None) -> WriteResult:
        return self._delete(Capability.CONTACT, uid, addressbook_name)

    def _contacts(self, addressbooks: list[CollectionRef], body: bytes) -> list[Contact]:
        contacts = []
        for addressbook, entry, record in self._records(
            Capability.CONTACT, addressbooks, body
        ):
            contact = parse_vcard(record)
            contact.addressbook = addressbook.display_name
            contact.href = entry.href
            contacts.append(contact)
        return contacts
