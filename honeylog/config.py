import json
import re
from collections import namedtuple

from .exceptions import ConfigurationError
from .urlshape import compile_pattern


DEFAULT_API_HOST = "https://api.honeycomb.io"
DEFAULT_SERVER_PORT = 8080
# The maximum size we expect a single log line to be
MAX_LINE_LENGTH = 65536
ADJUSTMENT_INTERVAL = 15

Config = namedtuple(
    "Config",
    [
        "writekey",
        "dataset",
        "api_host",
        "sampling_fields",
        "url_fields",
        "path_patterns",
        "query_params_filter",
        "goal_sample_rate",
        "max_line_length",
        "adjustment_interval",
        "server_port",
    ],
)


def load_config(environ):
    """
    Read the configuration from environment variables, failing early on
    invalid deployments.

    :param environ: A mapping like `os.environ`.
    :raises ConfigurationError: If a required variable is missing or invalid.
    """
    # Older deployments set HONEYCOMB_KEY instead
    writekey = environ.get("HONEYCOMB_API_KEY") or environ.get("HONEYCOMB_KEY")
    if not writekey:
        raise ConfigurationError("Missing environment variable HONEYCOMB_API_KEY")
    dataset = _require(environ, "HONEYCOMB_DATASET")

    sampling_fields = _csv(environ.get("HONEYCOMB_SAMPLING_FIELDS", ""))
    if not sampling_fields:
        raise ConfigurationError(
            "Missing environment variable HONEYCOMB_SAMPLING_FIELDS"
        )

    path_patterns = []
    for pattern in _json_list(environ, "URL_PATTERNS") or []:
        try:
            path_patterns.append(compile_pattern(pattern))
        except re.error as err:
            raise ConfigurationError("Invalid url pattern %r: %s" % (pattern, err)) from err

    query_params_filter = _json_list(environ, "QUERY_PARAM_FILTER")
    if query_params_filter is not None:
        query_params_filter = set(query_params_filter)

    server_port = environ.get("SERVER_PORT") or DEFAULT_SERVER_PORT
    try:
        server_port = int(server_port)
    except ValueError as err:
        raise ConfigurationError("Invalid SERVER_PORT %r" % server_port) from err

    return Config(
        writekey=writekey,
        dataset=dataset,
        api_host=environ.get("HONEYCOMB_API", DEFAULT_API_HOST),
        sampling_fields=sampling_fields,
        url_fields=_csv(environ.get("HONEYCOMB_URL_FIELDS", "")),
        path_patterns=path_patterns,
        query_params_filter=query_params_filter,
        goal_sample_rate=parse_sample_rate(environ.get("HONEYCOMB_SAMPLE_RATE")),
        max_line_length=MAX_LINE_LENGTH,
        adjustment_interval=ADJUSTMENT_INTERVAL,
        server_port=server_port,
    )


def parse_sample_rate(value):
    """Positive integers are used as is, anything else means no sampling."""
    try:
        rate = int(value)
    except (TypeError, ValueError):
        return 1
    return rate if rate >= 1 else 1


def _require(environ, name):
    value = environ.get(name)
    if not value:
        raise ConfigurationError("Missing environment variable %s" % name)
    return value


def _csv(value):
    return [item.strip() for item in value.split(",") if item.strip()]


def _json_list(environ, name):
    value = environ.get(name)
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except ValueError as err:
        raise ConfigurationError("%s is not valid json: %s" % (name, err)) from err
    if not isinstance(parsed, list):
        raise ConfigurationError("%s must be a json list" % name)
    return parsed
