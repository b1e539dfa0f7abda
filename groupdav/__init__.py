#!/usr/bin/env python
import logging

__version__ = "0.1.0"

from .davclient import DAVClient
from .davclient import get_davclient
from .calendars import CalendarService
from .contacts import ContactService

## Silence notification of no default logging handler
log = logging.getLogger("groupdav")


class NullHandler(logging.Handler):
    def emit(self, record) -> None:
        pass


log.addHandler(NullHandler())

__all__ = [
    "__version__",
    "DAVClient",
    "get_davclient",
    "CalendarService",
    "ContactService",
]
