import numbers

import orjson

from .exceptions import InvalidUrlError
from .urlshape import urlshape


def normalize_record(record, url_fields, path_patterns=(), query_params_filter=None):
    """
    Clean up a decoded record in place before it's sampled.

    :param record: A dictionary with the fields of a single input line.
    :param url_fields: Names of fields holding request uris that should be
        broken out into their components.
    :param path_patterns: A list of `.urlshape.Pattern` for known path patterns
        to parse.
    :param query_params_filter: Passed on to `.urlshape.urlshape`.
    """
    # Fields are added while we go, iterate over a snapshot
    for field, value in list(record.items()):
        if isinstance(value, list):
            # Lists of objects won't look pretty, but at least they're searchable
            value = stringify(value)
            record[field] = value

        # Only the first url field is ever considered. Existing consumers
        # depend on this, see DESIGN.md before changing it.
        if url_fields and field == url_fields[0]:
            enrich_url(record, field, stringify(value), path_patterns, query_params_filter)


def enrich_url(record, field, uri, path_patterns=(), query_params_filter=None):
    try:
        url_shape = urlshape(uri, path_patterns, query_params_filter)
    except InvalidUrlError:
        return

    derived = {
        field + ".path": url_shape.path,
        field + ".pathShape": url_shape.path_shape,
        field + ".query": url_shape.query,
        field + ".queryShape": url_shape.query_shape,
        field + ".uri": url_shape.uri,
    }
    for path_param, value in url_shape.path_params.items():
        derived[field + ".pathFields." + path_param] = value
    for query_param, values in url_shape.query_params.items():
        derived[field + ".queryFields." + query_param] = ",".join(values)

    for key, value in derived.items():
        record.setdefault(key, value)


def stringify(value):
    """
    Generic string form of a json value, used both when flattening lists and
    when building sampling keys.
    """
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, numbers.Integral):
        return str(value)
    if isinstance(value, numbers.Real):
        # json doesn't distinguish 2 from 2.0
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(item) for item in value)
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS).decode("utf-8")
