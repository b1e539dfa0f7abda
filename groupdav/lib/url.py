#!/usr/bin/env python
from urllib.parse import quote
from urllib.parse import unquote
from urllib.parse import urlparse
from urllib.parse import urlunparse


def to_path(href: str) -> str:
    """
    Hrefs in a multistatus may be absolute paths or fully qualified
    URLs, depending on the server.  Callers always get the unquoted
    absolute path.
    """
    text = href or ""
    ## Some servers quote the user email twice
    if "%2540" in text:
        text = text.replace("%2540", "%40")
    path = unquote(text)
    if "://" in path:
        path = unquote(urlparse(text).path)
    return path


def join(base: str, path: str) -> str:
    """
    Assumes ``base`` is the server URL (scheme, host and maybe a path
    prefix).  Absolute paths replace the base path, relative paths are
    appended to it.  Fully qualified URLs pointing to another host are
    refused.
    """
    if not path:
        return base
    parsed_base = urlparse(base)
    parsed = urlparse(path)
    if parsed.netloc and parsed.netloc != parsed_base.netloc:
        raise ValueError("%s can't be joined with %s" % (base, path))
    if parsed.path.startswith("/"):
        ret_path = parsed.path
    else:
        sep = "" if parsed_base.path.endswith("/") else "/"
        ret_path = "%s%s%s" % (parsed_base.path, sep, parsed.path)
    ## the wire needs the path quoted exactly once
    ret_path = quote(unquote(ret_path.replace("//", "/")))
    return urlunparse(
        (
            parsed_base.scheme,
            parsed_base.netloc,
            ret_path,
            "",
            parsed.query,
            "",
        )
    )


def child(collection_href: str, name: str) -> str:
    """Href of a member resource ``name`` inside a collection"""
    if not collection_href.endswith("/"):
        collection_href += "/"
    return collection_href + name


def last_segment(href: str) -> str:
    parts = [p for p in to_path(href).split("/") if p]
    return parts[-1] if parts else ""
