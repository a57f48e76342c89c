# Lifted from flask-events
import numbers
import re


NEEDS_QUOTES_RE = re.compile(r'[\s="]')


def format(data):  # pylint: disable=redefined-builtin
    return " ".join(format_key_value_pair(key, val) for (key, val) in data.items())


def format_key_value_pair(key, value):
    if value is None:
        value = ""
    elif value is True:
        value = "true"
    elif value is False:
        value = "false"
    elif isinstance(value, numbers.Integral):
        value = str(value)
    elif isinstance(value, numbers.Real):
        value = "%.4f" % value
    elif isinstance(value, (list, tuple)):
        value = ",".join(str(item) for item in value)
    else:
        value = str(value)

    if NEEDS_QUOTES_RE.search(value):
        value = '"%s"' % value.replace("\\", "\\\\").replace('"', '\\"')

    return "%s=%s" % (key, value)
