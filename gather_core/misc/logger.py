"""
Gather library containing logging helper functionality
"""

import logging


class NoDebugFilter(logging.Filter):
    """
    Logging filter dropping the DEBUG records of the configured logger name

    Records of other loggers pass unchanged. This is used to silence the
    rather chatty database connection pool while keeping the application's
    own debug output available.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not super().filter(record):
            return True
        return record.levelno > logging.DEBUG
