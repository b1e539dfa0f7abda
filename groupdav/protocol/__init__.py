"""
Sans-I/O protocol layer.

This package builds request bodies and decodes responses as pure data
transformations:

- types: Core data structures (ResourceEntry, CollectionRef, ...)
- xml_builders: Pure functions to build XML request bodies
- xml_parsers: Pure functions to decode multistatus responses
"""

from .types import (
    Capability,
    CollectionFailure,
    CollectionRef,
    FieldUpdate,
    LocatedResource,
    LocateResult,
    ResourceEntry,
    ScanResult,
    WriteResult,
)
from .xml_builders import (
    build_addressbook_query_body,
    build_calendar_query_body,
    build_contact_search_body,
    build_open_tasks_query_body,
    build_propfind_body,
    build_time_range_query_body,
    build_uid_query_body,
)
from .xml_parsers import decode_multistatus

__all__ = [
    # Types
    "Capability",
    "CollectionFailure",
    "CollectionRef",
    "FieldUpdate",
    "LocatedResource",
    "LocateResult",
    "ResourceEntry",
    "ScanResult",
    "WriteResult",
    # XML Builders
    "build_addressbook_query_body",
    "build_calendar_query_body",
    "build_contact_search_body",
    "build_open_tasks_query_body",
    "build_propfind_body",
    "build_time_range_query_body",
    "build_uid_query_body",
    # XML Parsers
    "decode_multistatus",
]
