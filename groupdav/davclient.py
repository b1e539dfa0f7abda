#!/usr/bin/env python
"""
The ``DAVClient`` class handles the basic communication with the
groupware server: it sends one HTTP request at a time and hands back
the decoded body.  Everything above it (discovery, lookups, writes)
only ever talks to ``DAVClient.perform_request``.

``get_davclient`` returns a DAVClient object, based either on
parameters, environmental variables or a configuration file.
"""
import json
import logging
import os
import sys
from types import TracebackType
from typing import Any
from typing import Optional
from typing import Tuple
from typing import Union
from urllib.parse import unquote
from urllib.parse import urlparse
from urllib.parse import urlunparse

import requests
from lxml import etree
from lxml.etree import _Element
from requests.auth import AuthBase
from requests.models import Response
from requests.structures import CaseInsensitiveDict

from groupdav import __version__
from groupdav.lib import error
from groupdav.lib import url as urllib
from groupdav.lib.python_utilities import to_normal_str
from groupdav.lib.python_utilities import to_wire

from collections.abc import Mapping

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self

log = logging.getLogger("groupdav")

## Nextcloud layout, the {username} is filled in from the connection
DEFAULT_CALENDAR_HOME = "/remote.php/dav/calendars/{username}/"
DEFAULT_ADDRESSBOOK_HOME = "/remote.php/dav/addressbooks/users/{username}/"

CONNKEYS = set(
    (
        "url",
        "username",
        "password",
        "timeout",
        "headers",
        "huge_tree",
        "ssl_verify_cert",
        "ssl_cert",
        "auth",
        "auth_type",
        "calendar_home",
        "addressbook_home",
    )
)


class DAVResponse:
    """
    This class is a response from a DAV request.  It is instantiated from
    the DAVClient class.  The body is decoded according to the content
    type: JSON into python objects, XML into an lxml tree, anything else
    is kept as text.
    """

    reason: str = ""
    headers: CaseInsensitiveDict = None
    status: int = 0
    huge_tree: bool = False

    def __init__(self, response: Response, huge_tree: bool = False) -> None:
        self.headers = CaseInsensitiveDict(response.headers or {})
        self.status = response.status_code
        ## incidents with a response without a reason have been observed
        self.reason = getattr(response, "reason", None) or ""
        self.huge_tree = huge_tree
        self._raw = response.content or b""
        log.debug("response headers: " + str(self.headers))
        log.debug("response status: " + str(self.status))

    @property
    def raw(self) -> str:
        return to_normal_str(self._raw)

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "").lower()

    @property
    def ok(self) -> bool:
        """True if status indicates success (2xx)."""
        return 200 <= self.status < 300

    def parsed(self) -> Union[_Element, Any, str]:
        """
        The decoded body.  An empty body gives an empty string.

        Raises:
            MalformedError: The content type promised JSON or XML, but
                the body could not be decoded as such
        """
        if not self._raw:
            return ""
        content_type = self.content_type
        if "json" in content_type:
            try:
                return json.loads(self.raw)
            except ValueError as e:
                raise error.MalformedError(
                    reason=f"body declared as {content_type} is not JSON: {e}"
                ) from e
        if "xml" in content_type:
            try:
                return etree.XML(
                    self._raw,
                    parser=etree.XMLParser(
                        remove_blank_text=True, huge_tree=self.huge_tree
                    ),
                )
            except etree.XMLSyntaxError as e:
                log.debug("Expected valid XML from the server, got: \n%s", self.raw)
                raise error.MalformedError(
                    reason=f"body declared as {content_type} is not XML: {e}"
                ) from e
        return self.raw


class DAVClient:
    """
    Basic client for webdav, uses the requests lib; gives access to
    low-level operations towards the groupware server.

    All requests are made one after another on a single session.  Use
    the client as a context manager to get the session closed.
    """

    url: str = None
    huge_tree: bool = False

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        auth: Optional[AuthBase] = None,
        auth_type: Optional[str] = None,
        timeout: Optional[int] = None,
        ssl_verify_cert: Union[bool, str] = True,
        ssl_cert: Union[str, Tuple[str, str], None] = None,
        headers: Mapping[str, str] = None,
        huge_tree: bool = False,
        calendar_home: Optional[str] = None,
        addressbook_home: Optional[str] = None,
    ) -> None:
        """
        Sets up a session towards the server in the url.

        Args:
          url: The server root, ``scheme://[user:pass@]hostname[:port][/prefix]``
          username, password: Credentials.  With Nextcloud, the password
            should be an app token.  May also be given in the url.
          auth: A requests.auth.AuthBase object, may be passed instead
            of username/password.
          auth_type: ``basic`` (default) or ``digest``
          timeout and ssl_verify_cert are passed to requests.request.
            ssl_verify_cert can be the path of a CA-bundle or False.
          huge_tree: enable XMLParser huge_tree to handle big responses,
            beware of security issues
          calendar_home, addressbook_home: path templates of the
            principal's calendar and address book collections,
            ``{username}`` is substituted.  Defaults to the Nextcloud layout.
        """
        self.session = requests.Session()

        parsed = urlparse(url)
        if parsed.username is not None:
            username = username or unquote(parsed.username)
            password = password or unquote(parsed.password or "")
            ## strip the credentials off the url
            netloc = parsed.hostname
            if parsed.port:
                netloc = "%s:%i" % (netloc, parsed.port)
            parsed = parsed._replace(netloc=netloc)
        self.url = urlunparse(parsed)
        log.debug("url: " + self.url)

        self.username = username
        self.password = password
        self.huge_tree = huge_tree
        self.timeout = timeout
        self.ssl_verify_cert = ssl_verify_cert
        self.ssl_cert = ssl_cert

        self.headers = CaseInsensitiveDict(
            {
                "User-Agent": "groupdav/" + __version__,
                "Content-Type": 'application/xml; charset="utf-8"',
                "Accept": "text/xml, application/xml, text/calendar, text/vcard, application/json",
            }
        )
        self.headers.update(headers or {})

        if auth and auth_type:
            log.error(
                "both auth object and auth_type sent to DAVClient.  The latter will be ignored."
            )
        self.auth = auth or self.build_auth_object(auth_type)

        self._calendar_home = calendar_home or DEFAULT_CALENDAR_HOME
        self._addressbook_home = addressbook_home or DEFAULT_ADDRESSBOOK_HOME

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: Optional[BaseException] = None,
        exc_value: Optional[BaseException] = None,
        traceback: Optional[TracebackType] = None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """
        Closes the DAVClient's session object
        """
        self.session.close()

    def build_auth_object(self, auth_type: Optional[str] = None) -> Optional[AuthBase]:
        if not self.username:
            return None
        auth_type = (auth_type or "basic").lower()
        if auth_type == "basic":
            return requests.auth.HTTPBasicAuth(self.username, self.password)
        if auth_type == "digest":
            return requests.auth.HTTPDigestAuth(self.username, self.password)
        raise error.InvalidInputError(
            reason=f"unsupported auth_type {auth_type!r}, use basic or digest"
        )

    @property
    def calendar_home(self) -> str:
        """Path of the collection holding the principal's calendars"""
        return self._calendar_home.format(username=self.username or "")

    @property
    def addressbook_home(self) -> str:
        """Path of the collection holding the principal's address books"""
        return self._addressbook_home.format(username=self.username or "")

    def perform_request(
        self,
        path: str,
        method: str = "GET",
        headers: Mapping[str, str] = None,
        body: Union[str, bytes, None] = None,
    ) -> Any:
        """
        Send one request and return the decoded body: python objects for
        JSON, an lxml element for XML, text for anything else.

        Raises:
            AuthorizationError: on 401 and 403
            TransportError: on any other non-2xx status, or if the
                server could not be reached at all
        """
        response = self.request(path, method, body, headers)
        return response.parsed()

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Union[str, bytes, None] = None,
        headers: Mapping[str, str] = None,
    ) -> DAVResponse:
        """
        Actually sends the request.  Non-2xx answers are raised as
        TransportError, carrying the status code and reason phrase.
        """
        combined_headers = self.headers.copy()
        combined_headers.update(headers or {})
        if not body and "Content-Type" in combined_headers:
            del combined_headers["Content-Type"]

        url = urllib.join(self.url, path)

        log.debug(
            "sending request - method={0}, url={1}, headers={2}\nbody:\n{3}".format(
                method, url, combined_headers, to_normal_str(body)
            )
        )

        try:
            r = self.session.request(
                method,
                url,
                data=to_wire(body) if body else None,
                headers=combined_headers,
                auth=self.auth,
                timeout=self.timeout,
                verify=self.ssl_verify_cert,
                cert=self.ssl_cert,
            )
        except requests.RequestException as e:
            raise error.TransportError(url=url, reason=f"{method} failed: {e}") from e

        log.debug("server responded with %i %s" % (r.status_code, r.reason))
        response = DAVResponse(r, huge_tree=self.huge_tree)

        if response.status in (
            requests.codes.forbidden,
            requests.codes.unauthorized,
        ):
            raise error.AuthorizationError(
                url=url, reason=response.reason or "None given", status=response.status
            )
        if not response.ok:
            raise error.TransportError(
                url=url, reason=response.reason, status=response.status
            )

        return response


def get_davclient(
    check_config_file: bool = True,
    config_file: str = None,
    config_section: str = None,
    environment: bool = True,
    **config_data,
) -> "DAVClient":
    """
    This function will yield a DAVClient object.  It will not try to
    connect.  It will read configuration from various sources, dependent
    on the parameters given, in this order:

    * Data from the parameters given
    * Environment variables prepended with ``GROUPDAV_``, like
      ``GROUPDAV_URL``, ``GROUPDAV_USERNAME``, ``GROUPDAV_PASSWORD``,
      or the ``NEXTCLOUD_URL``, ``NEXTCLOUD_USER``, ``NEXTCLOUD_TOKEN``
      aliases
    * Configuration file, given or found in the default locations

    The first source giving a url wins, sources are not merged.

    Raises:
        InvalidInputError: if no source gives a url, username and password
    """
    from groupdav import config

    conn_params = {k: v for k, v in config_data.items() if k in CONNKEYS}

    if not conn_params.get("url") and environment:
        conn_params = config.environment_params()
        if not config_file:
            config_file = os.environ.get("GROUPDAV_CONFIG_FILE")
        if not config_section:
            config_section = os.environ.get("GROUPDAV_CONFIG_SECTION")

    if not conn_params.get("url") and check_config_file:
        cfg = config.read_config(config_file)
        if cfg:
            section = config.config_section(cfg, config_section or "default")
            conn_params = config.section_params(section, CONNKEYS)

    missing = [
        key
        for key in ("url", "username", "password")
        if not conn_params.get(key) and not (key != "url" and conn_params.get("auth"))
    ]
    if missing:
        raise error.InvalidInputError(
            reason="no connection configured, missing %s.  Set GROUPDAV_URL, GROUPDAV_USERNAME and GROUPDAV_PASSWORD"
            % ", ".join(missing)
        )
    return DAVClient(**conn_params)
