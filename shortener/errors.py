"""Exceptions raised while allocating and storing short codes."""


class ShortenerError(Exception):
    """Base class for every failure the service reports as a server error."""


class StorageError(ShortenerError):
    """A storage read or write failed."""


class DuplicateCodeError(StorageError):
    """The insert hit the UNIQUE constraint on short_code."""


class DeadlineExceeded(StorageError):
    """The request ran out of time before storage answered."""


class AllocationError(ShortenerError):
    """No short code could be allocated."""


class CodeSpaceExhausted(AllocationError):
    """Every generated candidate was already taken."""
