#!/usr/bin/env python
"""
An in-memory groupware server for the tests.

It fulfils the ``perform_request`` transport call the way DAVClient does,
answering PROPFIND on the homes, calendar-query and addressbook-query
REPORTs (comp-filter, time-range, prop-filter and text-match), and PUT
and DELETE with If-Match / If-None-Match preconditions.  Multistatus
answers are serialized and parsed again, so carriage returns come back
the way they do from a real server.
"""
import itertools

from lxml import etree

from groupdav.lib import error
from groupdav.lib import vcal
from groupdav.lib.namespace import nsmap

D = nsmap["D"]
C = nsmap["C"]
CR = nsmap["CR"]


def _tag(ns, name):
    return "{%s}%s" % (ns, name)


def _sub(parent, ns, tagname, text=None, **attributes):
    element = etree.SubElement(parent, _tag(ns, tagname))
    if text is not None:
        element.text = text
    for key, value in attributes.items():
        element.set(key, value)
    return element


class FakeCollection:
    def __init__(self, href, display_name, kind, components=()):
        self.href = href
        self.display_name = display_name
        self.kind = kind
        self.components = tuple(components)


class FakeGroupwareServer:
    def __init__(self, username="tester"):
        self.username = username
        self.huge_tree = False
        self.calendar_home = f"/remote.php/dav/calendars/{username}/"
        self.addressbook_home = f"/remote.php/dav/addressbooks/users/{username}/"
        self.collections = []
        ## href -> [etag, body]
        self.resources = {}
        self.requests = []
        ## collection href -> exception raised on REPORT
        self.failing = {}
        ## collection href -> text returned on REPORT instead of XML
        self.broken = {}
        self._etags = itertools.count(1)

    ## setup helpers

    def add_calendar(self, slug, display_name=None, components=("VEVENT",)):
        href = f"{self.calendar_home}{slug}/"
        self.collections.append(FakeCollection(href, display_name, "calendar", components))
        return href

    def add_addressbook(self, slug, display_name=None):
        href = f"{self.addressbook_home}{slug}/"
        self.collections.append(FakeCollection(href, display_name, "addressbook"))
        return href

    def store(self, collection_href, filename, body):
        href = collection_href + filename
        self.resources[href] = [self._next_etag(), body]
        return href

    def modify(self, href, body=None):
        """Change a resource behind the client's back"""
        etag, old_body = self.resources[href]
        self.resources[href] = [self._next_etag(), old_body if body is None else body]

    def body(self, href):
        return self.resources[href][1]

    def etag(self, href):
        return self.resources[href][0]

    def resources_in(self, collection_href):
        return {
            href: resource
            for href, resource in self.resources.items()
            if href.startswith(collection_href) and href != collection_href
        }

    def methods(self):
        return [request[0] for request in self.requests]

    def _next_etag(self):
        return '"etag-%i"' % next(self._etags)

    ## the transport call

    def perform_request(self, path, method="GET", headers=None, body=None):
        headers = dict(headers or {})
        self.requests.append((method, path, headers, body))
        if method == "PROPFIND":
            return self._propfind(path)
        if method == "REPORT":
            return self._report(path, body)
        if method == "PUT":
            return self._put(path, headers, body)
        if method == "DELETE":
            return self._delete(path)
        raise error.TransportError(url=path, reason="Method Not Allowed", status=405)

    def _propfind(self, path):
        if path == self.calendar_home:
            kind = "calendar"
        elif path == self.addressbook_home:
            kind = "addressbook"
        else:
            raise error.TransportError(url=path, reason="Not Found", status=404)

        root = etree.Element(_tag(D, "multistatus"), nsmap=nsmap)
        home = _sub(root, D, "response")
        _sub(home, D, "href", path)
        propstat = _sub(home, D, "propstat")
        prop = _sub(propstat, D, "prop")
        _sub(_sub(prop, D, "resourcetype"), D, "collection")
        _sub(propstat, D, "status", "HTTP/1.1 200 OK")

        for collection in self.collections:
            if collection.kind != kind:
                continue
            response = _sub(root, D, "response")
            _sub(response, D, "href", collection.href)
            propstat = _sub(response, D, "propstat")
            prop = _sub(propstat, D, "prop")
            resourcetype = _sub(prop, D, "resourcetype")
            _sub(resourcetype, D, "collection")
            if kind == "calendar":
                _sub(resourcetype, C, "calendar")
                if collection.components:
                    compset = _sub(prop, C, "supported-calendar-component-set")
                    for component in collection.components:
                        _sub(compset, C, "comp", name=component)
            else:
                _sub(resourcetype, CR, "addressbook")
            if collection.display_name is not None:
                _sub(prop, D, "displayname", collection.display_name)
            _sub(propstat, D, "status", "HTTP/1.1 200 OK")
            if collection.display_name is None:
                missing = _sub(response, D, "propstat")
                _sub(_sub(missing, D, "prop"), D, "displayname")
                _sub(missing, D, "status", "HTTP/1.1 404 Not Found")
        return self._roundtrip(root)

    def _report(self, path, body):
        if path in self.failing:
            raise self.failing[path]
        if path in self.broken:
            return self.broken[path]
        query = etree.fromstring(body)
        if query.tag == _tag(C, "calendar-query"):
            ns, data_name = C, "calendar-data"
            matcher = self._calendar_matcher(query)
        elif query.tag == _tag(CR, "addressbook-query"):
            ns, data_name = CR, "address-data"
            matcher = self._addressbook_matcher(query)
        else:
            raise error.TransportError(url=path, reason="Bad Request", status=400)

        root = etree.Element(_tag(D, "multistatus"), nsmap=nsmap)
        for href, (etag, text) in sorted(self.resources_in(path).items()):
            try:
                record = vcal.TextRecord.parse(text)
            except error.MalformedError:
                ## junk is handed out unfiltered
                record = None
            if record is not None and not matcher(record):
                continue
            response = _sub(root, D, "response")
            _sub(response, D, "href", href)
            propstat = _sub(response, D, "propstat")
            prop = _sub(propstat, D, "prop")
            _sub(prop, D, "getetag", etag)
            _sub(prop, ns, data_name, text)
            _sub(propstat, D, "status", "HTTP/1.1 200 OK")
        return self._roundtrip(root)

    def _put(self, path, headers, body):
        exists = path in self.resources
        if headers.get("If-None-Match") == "*" and exists:
            raise error.TransportError(url=path, reason="Precondition Failed", status=412)
        if "If-Match" in headers and (
            not exists or self.resources[path][0] != headers["If-Match"]
        ):
            raise error.TransportError(url=path, reason="Precondition Failed", status=412)
        self.resources[path] = [self._next_etag(), body]
        return ""

    def _delete(self, path):
        if path not in self.resources:
            raise error.TransportError(url=path, reason="Not Found", status=404)
        del self.resources[path]
        return ""

    def _roundtrip(self, root):
        return etree.fromstring(etree.tostring(root))

    ## query evaluation

    def _calendar_matcher(self, query):
        vcalendar = query.find(_tag(C, "filter")).find(_tag(C, "comp-filter"))
        comp = vcalendar.find(_tag(C, "comp-filter"))

        def matches(record):
            if record.component_type != comp.get("name"):
                return False
            for condition in comp:
                if condition.tag == _tag(C, "time-range"):
                    if not _overlaps(record, condition):
                        return False
                elif condition.tag == _tag(C, "prop-filter"):
                    if not _prop_matches(record, condition, C):
                        return False
            return True

        return matches

    def _addressbook_matcher(self, query):
        filter_ = query.find(_tag(CR, "filter"))
        if filter_ is None:
            return lambda record: True
        combine = all if filter_.get("test") == "allof" else any
        prop_filters = filter_.findall(_tag(CR, "prop-filter"))
        return lambda record: combine(
            _prop_matches(record, pf, CR) for pf in prop_filters
        )


def _overlaps(record, time_range):
    start = vcal.parse_datetime(record.get_field("DTSTART"))
    end_value = record.get_field("DTEND")
    end = vcal.parse_datetime(end_value) if end_value else start
    range_start = vcal.parse_datetime(time_range.get("start"))
    range_end = vcal.parse_datetime(time_range.get("end"))
    return start < range_end and end > range_start


def _text_matches(value, text_match):
    needle = text_match.text or ""
    if text_match.get("collation", "i;ascii-casemap") != "i;octet":
        value, needle = value.casefold(), needle.casefold()
    match_type = text_match.get("match-type", "contains")
    if match_type == "equals":
        result = value == needle
    elif match_type == "starts-with":
        result = value.startswith(needle)
    elif match_type == "ends-with":
        result = value.endswith(needle)
    else:
        result = needle in value
    if text_match.get("negate-condition") == "yes":
        return not result
    return result


def _prop_matches(record, prop_filter, ns):
    values = record.get_all_occurrences(prop_filter.get("name"))
    if not values:
        return False
    text_match = prop_filter.find(_tag(ns, "text-match"))
    if text_match is None:
        return True
    return any(_text_matches(value, text_match) for value in values)
