"""Exceptions raised by the timer engine and its persistence layer."""


class TimerError(Exception):
    """Base class for all studytimer errors."""


class InvalidSessionError(TimerError, ValueError):
    """Raised when ``start()`` is given a session it cannot track."""


class PersistenceError(TimerError):
    """Raised when the timer record cannot be written to or removed from its store."""
