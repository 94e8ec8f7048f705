"""
Logging configuration shared by the CLI and library callers.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class CurrentStderrHandler(logging.StreamHandler):
    """
    Writes to whatever sys.stderr is when a record is emitted.
    """
    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value):
        pass


def configure_logging(verbosity: int = 0, stream=None) -> logging.Logger:
    """
    Configures the `depwire` logger hierarchy. Calling it again replaces the handler.

    :param verbosity: 0 for warnings, 1 for info, 2 or more for debug.
    :param stream: Output stream, the current stderr by default.
    :return: The package root logger.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logger = logging.getLogger("depwire")
    for handler in list(logger.handlers):
        if getattr(handler, "_depwire", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream) if stream else CurrentStderrHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._depwire = True
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
