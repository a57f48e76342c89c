import re
import urllib.parse
from collections import defaultdict, namedtuple

from .exceptions import InvalidUrlError


CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")

Pattern = namedtuple("Pattern", "shape regex")
UrlShape = namedtuple(
    "UrlShape",
    [
        "uri",
        "uri_shape",
        "path",
        "query",
        "path_shape",
        "query_shape",
        "path_params",
        "query_params",
    ],
)


def compile_pattern(path_pattern):
    """
    :param path_pattern: A pattern like `/user/:userId/`. A trailing `*`
        matches anything below the prefix.
    :return: A `Pattern` which can be passed to `urlshape` later.
    """
    regex_parts = []
    for part in path_pattern.strip("/").split("/"):
        if not part:
            continue
        if part == "*":
            regex_parts.append("/.*")
        elif part.startswith(":"):
            regex_parts.append(r"/(?P<%s>[^/]+)" % part[1:])
        else:
            regex_parts.append("/" + re.escape(part))

    if path_pattern.endswith("/") and regex_parts:
        # An explicit trailing slash must be present in the path as well
        regex_parts.append("/")
    elif not path_pattern.endswith("*"):
        regex_parts.append("/?")

    regex = re.compile("^" + "".join(regex_parts) + "$")
    return Pattern(path_pattern, regex)


def urlshape(uri, patterns=(), query_params_filter=None):
    """
    :param uri: A request uri, either an absolute path (`/foo?bar=baz`) or an
        absolute url (`https://example.com/foo?bar=baz`).
    :param patterns: A list of `Pattern` to match against.
    :param query_params_filter: A set of the query parameters that will be included
        in the result. If `None` all params will be included, if empty set none
        will be included.
    :raises InvalidUrlError: If `uri` isn't a request uri.
    :returns: A UrlShape
    """
    parsed_uri = parse_request_uri(uri)

    path_params = {}
    for pattern in patterns:
        match = pattern.regex.match(parsed_uri.path)
        if not match:
            continue
        path_shape = pattern.shape
        path_params = match.groupdict()
        break
    else:
        path_shape = parsed_uri.path

    params = []
    query_params = defaultdict(list)
    for param, value in sorted(
        urllib.parse.parse_qsl(parsed_uri.query, keep_blank_values=True)
    ):
        if query_params_filter is None or param in query_params_filter:
            query_params[param].append(value)
        params.append(param)

    query_shape = "&".join("%s=?" % param for param in params)

    if query_shape:
        uri_shape = path_shape + "?" + query_shape
    else:
        uri_shape = path_shape

    return UrlShape(
        uri,
        uri_shape,
        parsed_uri.path,
        parsed_uri.query,
        path_shape,
        query_shape,
        path_params,
        dict(query_params),
    )


def parse_request_uri(uri):
    if not uri or CONTROL_CHARS_RE.search(uri):
        raise InvalidUrlError("Not a request uri: %r" % uri)

    try:
        if uri.startswith("/"):
            # Prefix a dummy scheme so that paths starting with // aren't
            # parsed as a network location
            return urllib.parse.urlsplit("s://" + uri)

        parsed_uri = urllib.parse.urlsplit(uri)
    except ValueError as err:
        raise InvalidUrlError("Not a request uri: %r" % uri) from err

    if not parsed_uri.scheme or not parsed_uri.netloc:
        raise InvalidUrlError("Not a request uri: %r" % uri)
    return parsed_uri
