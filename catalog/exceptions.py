"""
Errors raised by the book search aggregator.
"""


class CatalogError(RuntimeError):
    pass


class InvalidQueryError(CatalogError):
    """Raised before any external call when the search query is blank."""


class UpstreamUnavailableError(CatalogError):
    """Raised when every catalog search attempt failed."""
