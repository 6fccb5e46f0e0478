"""Exceptions raised by the league services.

Every error derives from ``ValueError`` so callers that only care about
"the operation was refused" can keep catching that.
"""
from __future__ import annotations


class LeagueError(ValueError):
    status_code = 400


class ValidationError(LeagueError):
    """Malformed or missing input. Nothing was changed."""

    status_code = 400


class AuthorizationError(LeagueError):
    status_code = 403


class NotFoundError(LeagueError):
    status_code = 404


class ConflictError(LeagueError):
    """The request contradicts the current state of the record."""

    status_code = 409


class UpstreamUnavailable(LeagueError):
    """An external collaborator failed. Local state is untouched."""

    status_code = 502
