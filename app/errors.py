# app/errors.py


class HomeWinError(Exception):
    """Base class for everything this package raises on purpose."""


class FetchError(HomeWinError):
    """ESPN schedule could not be fetched or decoded."""


class StoreError(HomeWinError):
    """A read or write against the SQLite store failed."""


class MailError(HomeWinError):
    """A single outbound email could not be delivered."""
