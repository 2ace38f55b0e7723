"""
Error taxonomy for the mastery scheduler.

The engine never catches these; the service raises them and the HTTP layer
translates them into status codes.
"""


class MasteryError(Exception):
    """Base class for scheduler errors"""


class NotFound(MasteryError):
    """Unknown item id, or no mastery record for the requested key"""


class InvalidInput(MasteryError):
    """Missing or malformed answer fields"""


class ConcurrencyConflict(MasteryError):
    """An optimistic write lost a race against another writer"""
