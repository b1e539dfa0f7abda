#!/usr/bin/env python
from typing import ClassVar
from typing import Optional

from .base import BaseElement
from .base import NamedBaseElement
from .base import ValuedBaseElement
from groupdav.lib.namespace import ns


# Operations
class AddressbookQuery(BaseElement):
    tag: ClassVar[str] = ns("CR", "addressbook-query")


# Filters
class Filter(BaseElement):
    tag: ClassVar[str] = ns("CR", "filter")

    def __init__(self, test: Optional[str] = None) -> None:
        super(Filter, self).__init__()
        ## rfc6352 sec 10.5, "anyof" is the default
        if test is not None:
            self.attributes["test"] = test


class PropFilter(NamedBaseElement):
    tag: ClassVar[str] = ns("CR", "prop-filter")


# Conditions
class TextMatch(ValuedBaseElement):
    tag: ClassVar[str] = ns("CR", "text-match")

    def __init__(
        self,
        value,
        collation: str = "i;octet",
        match_type: Optional[str] = None,
        negate: bool = False,
    ) -> None:
        super(TextMatch, self).__init__(value=value)
        self.attributes["collation"] = collation
        if match_type is not None:
            self.attributes["match-type"] = match_type
        if negate:
            self.attributes["negate-condition"] = "yes"


# Components / Data
class AddressData(BaseElement):
    tag: ClassVar[str] = ns("CR", "address-data")


# Properties

# address book resource type, see rfc6352, sec. 5.2
class Addressbook(BaseElement):
    tag: ClassVar[str] = ns("CR", "addressbook")
