"""URI (RFC 3986) helpers for Gemini navigation.

urllib does not know the Gemini scheme, so urljoin refuses to resolve
references against Gemini URLs; resolution is done here following section 5
of the RFC instead.
"""

import re
import urllib.parse
from typing import Optional, Tuple

from gemlink.errors import UrlJoinError


URI_RE = re.compile(
    "^"
    r"(?:(?P<scheme>[^:/?#]+):)?"
    r"(?://(?P<netloc>[^/?#]*))?"
    r"(?P<path>[^?#]*)"
    r"(?:\?(?P<query>[^#]*))?"
    r"(?:#(?P<fragment>.*))?"
)
HOST_PORT_RE = re.compile(
    r"^(?:\[(?P<ipv6>[^\]]+)\]|(?P<host>[^:\[\]]+))(?::(?P<port>\d*))?$"
)


def parse_url(url: str, absolute: bool =False,
              default_scheme: Optional[str] =None):
    """Return URL parts from this URL.

    The returned dict has the keys "scheme", "netloc", "path", "query" and
    "fragment". Components absent from the URL are None, except the path that
    is always a string, possibly empty.

    As this function can be used to process arbitrary user input, the URL is
    stripped of surrounding whitespaces. If "absolute" is True, consider that
    the URL is meant to be absolute even though it technically is not, e.g.
    "dece.space" misses the // delimiter but is probably a host name.
    """
    url = url.strip()
    parts = URI_RE.match(url).groupdict()
    if absolute and parts["netloc"] is None:
        parts = URI_RE.match("//" + url).groupdict()
    if parts["scheme"] is None and default_scheme:
        parts["scheme"] = default_scheme
    return parts


def unparse_url(parts) -> str:
    """Recompose an URL from parts as returned by parse_url."""
    url = ""
    if parts["scheme"] is not None:
        url += parts["scheme"] + ":"
    if parts["netloc"] is not None:
        url += "//" + parts["netloc"]
    url += parts["path"]
    if parts["query"] is not None:
        url += "?" + parts["query"]
    if parts["fragment"] is not None:
        url += "#" + parts["fragment"]
    return url


def sanitize_url(url: str) -> str:
    """Parse and unparse user input as an absolute Gemini URL."""
    return unparse_url(parse_url(url, absolute=True, default_scheme="gemini"))


def join_url(base_url: str, url: str) -> str:
    """Resolve an URL reference against a base URL (RFC 3986 5.2.2).

    Raises UrlJoinError if the base URL is not absolute.
    """
    base = parse_url(base_url)
    if base["scheme"] is None:
        raise UrlJoinError(f"Can't resolve {url} against {base_url}.")
    ref = parse_url(url)
    target = {"fragment": ref["fragment"]}
    if ref["scheme"] is not None:
        target["scheme"] = ref["scheme"]
        target["netloc"] = ref["netloc"]
        target["path"] = remove_dot_segments(ref["path"])
        target["query"] = ref["query"]
        return unparse_url(target)

    target["scheme"] = base["scheme"]
    if ref["netloc"] is not None:
        target["netloc"] = ref["netloc"]
        target["path"] = remove_dot_segments(ref["path"])
        target["query"] = ref["query"]
        return unparse_url(target)

    target["netloc"] = base["netloc"]
    if not ref["path"]:
        target["path"] = base["path"]
        if ref["query"] is not None:
            target["query"] = ref["query"]
        else:
            target["query"] = base["query"]
    else:
        if ref["path"].startswith("/"):
            target["path"] = remove_dot_segments(ref["path"])
        else:
            merged_path = merge_paths(base, ref["path"])
            target["path"] = remove_dot_segments(merged_path)
        target["query"] = ref["query"]
    return unparse_url(target)


def merge_paths(base: dict, path: str) -> str:
    """Merge a relative path with the path of a base URL (RFC 3986 5.2.3)."""
    if base["netloc"] is not None and not base["path"]:
        return "/" + path
    return base["path"][:base["path"].rfind("/") + 1] + path


def remove_dot_segments(path: str) -> str:
    """Remove "." and ".." segments from an URL path (RFC 3986 5.2.4)."""
    output = ""
    while path:
        if path.startswith("../"):
            path = path[3:]
        elif path.startswith("./"):
            path = path[2:]
        elif path.startswith("/./"):
            path = path[2:]
        elif path == "/.":
            path = "/"
        elif path.startswith("/../"):
            path = path[3:]
            output = remove_last_segment(output)
        elif path == "/..":
            path = "/"
            output = remove_last_segment(output)
        elif path in (".", ".."):
            path = ""
        else:
            segment, path = pop_first_segment(path)
            output += segment
    return output


def remove_last_segment(path: str) -> str:
    """Remove last path segment, including preceding "/" if any."""
    return path.rsplit("/", maxsplit=1)[0] if "/" in path else ""


def pop_first_segment(path: str) -> Tuple[str, str]:
    """Return first segment (with its leading "/" if any) and the rest."""
    if not path:
        return "", ""
    next_slash = path.find("/", 1 if path.startswith("/") else 0)
    if next_slash == -1:
        return path, ""
    return path[:next_slash], path[next_slash:]


def set_parameter(url: str, user_input: str) -> str:
    """Return a new URL with the escaped user input as query."""
    quoted_input = urllib.parse.quote(user_input)
    if "#" in url:
        url = url.split("#", maxsplit=1)[0]
    if "?" in url:
        url = url.split("?", maxsplit=1)[0]
    return url + "?" + quoted_input


def parse_host_and_port(netloc: str,
                        default_port: int) -> Optional[Tuple[str, int]]:
    """Return a (host, port) tuple from this netloc, or None if invalid.

    User info is ignored and IPv6 addresses are returned without brackets.
    """
    if "@" in netloc:
        netloc = netloc.rsplit("@", maxsplit=1)[1]
    match = HOST_PORT_RE.match(netloc)
    if not match:
        return None
    host = match.group("ipv6") or match.group("host")
    port = match.group("port")
    if not port:
        return host, default_port
    port = int(port)
    if not 0 < port < 65536:
        return None
    return host, port
