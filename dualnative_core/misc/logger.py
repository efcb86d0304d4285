"""
Dual-Native library containing logging helper functionality
"""

import logging


class NoDebugFilter(logging.Filter):
    """
    Logging filter that drops DEBUG records of the logger given as ``name``

    Records of other loggers pass unchanged, which allows attaching
    the filter to a handler to silence chatty third-party libraries.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if super().filter(record):
            return record.levelno > logging.DEBUG
        return True
