"""
Error taxonomy surfaced by the feed engine.

Validation, forbidden and not-found errors are distinct caller-visible
kinds; execution failures collapse into FeedUnavailableError, which callers
may retry. Filter lookups never raise (they degrade to empty lists).
"""


class FeedError(Exception):
    """Base class for every error the engine raises."""


class FeedValidationError(FeedError):
    """Client input rejected before any query runs (cursor, page size, ...)."""


class FeedForbiddenError(FeedError):
    """The requester may not see the requested feed."""


class FeedNotFoundError(FeedError):
    """A feed or source identifier does not resolve."""


class FeedUnavailableError(FeedError):
    """The content store failed while executing the feed query."""
