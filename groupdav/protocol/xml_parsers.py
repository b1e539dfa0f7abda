"""
Pure functions for decoding WebDAV/CalDAV/CardDAV multistatus documents.

All functions in this module are pure - they take an XML tree (or the
raw bytes of one) in and return structured data out, with no I/O.
"""

import logging
from typing import Any

from lxml import etree
from lxml.etree import _Element

from groupdav.elements import carddav, cdav, dav
from groupdav.lib import error
from groupdav.lib.url import to_path

from .types import Capability, ResourceEntry

log = logging.getLogger(__name__)


def decode_multistatus(
    document: _Element | bytes | str,
    huge_tree: bool = False,
) -> list[ResourceEntry]:
    """
    Decode a 207 Multi-Status document into resource entries.

    Response blocks without a successful (2xx) propstat are dropped.  An
    empty multistatus gives an empty list.

    Args:
        document: Parsed lxml tree, or raw XML bytes/str
        huge_tree: Allow parsing very large XML documents

    Returns:
        One ResourceEntry per successful response block, in document order

    Raises:
        MalformedError: If the document is not XML, or not a multistatus
    """
    tree = _to_tree(document, huge_tree=huge_tree)

    entries: list[ResourceEntry] = []
    for elem in _strip_to_multistatus(tree):
        if not isinstance(elem.tag, str):
            ## comments and processing instructions
            continue
        if elem.tag == dav.Response.tag:
            entry = _decode_response(elem)
            if entry is not None:
                entries.append(entry)
        else:
            error.weirdness("unexpected element in multistatus", elem)

    return entries


# Helper functions


def _to_tree(document: _Element | bytes | str, huge_tree: bool = False) -> _Element:
    if isinstance(document, etree._Element):
        return document
    if document is None or (isinstance(document, (str, bytes)) and not document.strip()):
        raise error.MalformedError(reason="empty document where multistatus XML was expected")
    if isinstance(document, str):
        document = document.encode("utf-8")
    parser = etree.XMLParser(remove_blank_text=True, huge_tree=huge_tree)
    try:
        return etree.fromstring(document, parser)
    except etree.XMLSyntaxError as e:
        raise error.MalformedError(reason=f"unparsable multistatus XML: {e}") from e


def _strip_to_multistatus(tree: _Element) -> _Element | list[_Element]:
    """
    The general format is:
        <xml><multistatus>
            <response>...</response>
            <response>...</response>
        </multistatus></xml>

    But sometimes multistatus and/or xml element is missing.
    Returns the element(s) containing responses.
    """
    if tree.tag == "xml" and len(tree) > 0 and tree[0].tag == dav.MultiStatus.tag:
        return tree[0]
    if tree.tag == dav.MultiStatus.tag:
        return tree
    if tree.tag == dav.Response.tag:
        return [tree]
    raise error.MalformedError(
        reason=f"expected a multistatus document, got root element {tree.tag}"
    )


def _decode_response(response: _Element) -> ResourceEntry | None:
    href: str | None = None
    propstats: list[_Element] = []

    for elem in response:
        if not isinstance(elem.tag, str):
            continue
        if elem.tag == dav.Href.tag:
            href = to_path(elem.text or "")
        elif elem.tag == dav.PropStat.tag:
            propstats.append(elem)
        elif elem.tag in (dav.Status.tag, "{DAV:}error", "{DAV:}responsedescription"):
            ## a response level status comes without propstats, those
            ## responses are dropped below
            pass
        else:
            error.weirdness("unexpected element found in response", elem)

    if not href:
        raise error.MalformedError(reason="multistatus response without an href")

    successful = [p for p in propstats if _is_success(_propstat_status(p))]
    if not successful:
        log.debug("dropping %s, no successful propstat", href)
        return None

    etag: str | None = None
    properties: dict[str, Any] = {}
    ## The properties may be delivered either in one
    ## propstat with multiple props or in multiple propstats
    for propstat in successful:
        for prop in propstat.iterfind(dav.Prop.tag):
            for child in prop:
                if not isinstance(child.tag, str):
                    continue
                if child.tag == dav.GetEtag.tag:
                    etag = child.text
                else:
                    properties[child.tag] = _element_to_value(child)

    return ResourceEntry(
        href=href,
        etag=etag,
        properties=properties,
        capabilities=_derive_capabilities(properties),
    )


def _element_to_value(elem: _Element) -> Any:
    """
    Leaf elements decode to their text.  Elements with children always
    decode to a tuple, whether there is one child or many, so callers
    never have to care about how the server shaped a single value.
    """
    children = [child for child in elem if isinstance(child.tag, str)]
    if not children:
        return elem.text
    return tuple(_child_value(child) for child in children)


def _child_value(child: _Element) -> str:
    ## <comp name="VEVENT"/>
    if child.get("name"):
        return child.get("name")
    ## <href>/foo/</href>
    if child.text and child.text.strip():
        return child.text.strip()
    ## <collection/>, <C:calendar/>
    return child.tag


def resource_types(properties: dict[str, Any]) -> tuple[str, ...]:
    """The resourcetype tags of a decoded property set, () if none"""
    value = properties.get(dav.ResourceType.tag)
    if isinstance(value, tuple):
        return value
    return ()


def _derive_capabilities(properties: dict[str, Any]) -> tuple[Capability, ...]:
    types = resource_types(properties)
    capabilities: list[Capability] = []

    if cdav.Calendar.tag in types:
        components = properties.get(cdav.SupportedCalendarComponentSet.tag)
        if isinstance(components, tuple):
            for name in components:
                capability = Capability.from_component(name)
                if capability in (Capability.EVENT, Capability.TASK) and (
                    capability not in capabilities
                ):
                    capabilities.append(capability)

    if carddav.Addressbook.tag in types:
        capabilities.append(Capability.CONTACT)

    return tuple(capabilities)


def _propstat_status(propstat: _Element) -> int:
    status = propstat.find(dav.Status.tag)
    if status is None or not status.text:
        error.weirdness("propstat without status", propstat)
        return 200
    return _status_to_code(status.text)


def _is_success(code: int) -> bool:
    return 200 <= code < 300


def _status_to_code(status: str | None) -> int:
    """
    Extract status code from status string like "HTTP/1.1 200 OK".

    Args:
        status: Status string

    Returns:
        Integer status code (defaults to 200 if parsing fails)
    """
    if not status:
        return 200

    parts = status.split()
    if len(parts) >= 2:
        try:
            return int(parts[1])
        except ValueError:
            pass

    return 200
