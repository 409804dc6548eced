"""Error taxonomy shared by the catalog and watch-state services."""

from __future__ import annotations


class EpisodicError(Exception):
    """Base class for errors surfaced by the service layer."""


class NotFoundError(EpisodicError):
    """A user, show, season, episode, movie or watch record is missing."""

    def __init__(self, resource: str, *identifiers: object):
        self.resource = resource
        self.identifiers = identifiers
        ident = "/".join(str(part) for part in identifiers)
        message = f"{resource} not found" if not ident else f"{resource} {ident} not found"
        super().__init__(message)


class SeasonNotFoundError(NotFoundError):
    def __init__(self, show_id: int, season_number: int):
        super().__init__("Season", show_id, season_number)
        self.show_id = show_id
        self.season_number = season_number


class AlreadyWatchedError(EpisodicError):
    """The requested watch mark already exists."""


class NothingToMarkError(EpisodicError):
    """A batch mark found no unwatched episodes."""


class SourceUnavailableError(EpisodicError):
    """The upstream content database could not serve a request."""

    def __init__(self, message: str, *, endpoint: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class ConfigurationError(EpisodicError):
    """A required credential or setting is missing."""


class ConflictError(EpisodicError):
    """A concurrent writer inserted the same catalog key first."""


class InvalidRequestError(EpisodicError):
    """A request parameter falls outside the accepted values."""
