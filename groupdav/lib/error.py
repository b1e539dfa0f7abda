#!/usr/bin/env python
import logging
import os
from typing import Optional

from groupdav import __version__

## one of DEBUG, DEVELOPMENT, PRODUCTION
debugmode = os.environ.get("GROUPDAV_DEBUGMODE")
if not debugmode:
    if "dev" in __version__:
        debugmode = "DEVELOPMENT"
    else:
        debugmode = "PRODUCTION"

log = logging.getLogger("groupdav")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)
else:
    log.setLevel(logging.WARNING)


def weirdness(*reasons) -> None:
    """Log server output that deviates from expectations but can be tolerated"""
    from lxml import etree

    def _str(x):
        if isinstance(x, etree._Element):
            return etree.tostring(x, encoding="unicode")
        return str(x)

    reason = " : ".join([_str(x) for x in reasons])
    log.warning(f"Deviation from expectations found: {reason}")


class DAVError(Exception):
    url: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, url: Optional[str] = None, reason: Optional[str] = None) -> None:
        if url:
            self.url = url
        if reason:
            self.reason = reason
        super().__init__(self.reason)

    def __str__(self) -> str:
        if self.url:
            return "%s at '%s', reason %s" % (
                self.__class__.__name__,
                self.url,
                self.reason,
            )
        return "%s: %s" % (self.__class__.__name__, self.reason)


class TransportError(DAVError):
    """
    Network or HTTP failure.  ``status`` holds the HTTP status code, or
    None if the request never got a response.
    """

    status: Optional[int] = None

    def __init__(
        self,
        url: Optional[str] = None,
        reason: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        self.status = status
        super().__init__(url=url, reason=reason)

    def __str__(self) -> str:
        if self.status is None:
            return super().__str__()
        return "%s at '%s', HTTP %i %s" % (
            self.__class__.__name__,
            self.url,
            self.status,
            self.reason,
        )


class AuthorizationError(TransportError):
    """
    The server answered 401 or 403.  The url property will contain the
    url in question, the reason property the excuse the server sent.
    """

    pass


class MalformedError(DAVError):
    """An XML or text record body did not match the expected grammar"""

    pass


class NotFoundError(DAVError):
    """A named collection or an identified resource does not exist"""

    pass


class ConflictError(DAVError):
    """A create or update precondition failed on the server"""

    pass


class InvalidInputError(DAVError):
    """A caller-supplied identifier or required field is missing or empty"""

    pass
