class ConfigurationError(ValueError):
    """The service was started with missing or invalid configuration"""


class InvalidUrlError(ValueError):
    """The value could not be parsed as a request URI"""


class LineTooLongError(ValueError):
    """
    An input line exceeded the maximum accepted length. Only that line is
    rejected, the rest of the body is still processed.
    """


class SendError(Exception):
    """The event could not be handed over to libhoney"""
