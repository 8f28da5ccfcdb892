"""Exception taxonomy shared by the engine, the repository and the service."""

from __future__ import annotations


class RigCheckError(Exception):
    """Base class for every error raised by rigcheck."""


class ConfigurationError(RigCheckError):
    """A rule or attribute template cannot be evaluated as authored.

    Fatal to the single rule being evaluated, never to the whole run.
    """

    def __init__(self, message: str, *, rule_id: str | None = None, template_id: str | None = None):
        super().__init__(message)
        self.rule_id = rule_id
        self.template_id = template_id


class NotFoundError(RigCheckError, LookupError):
    """An id or slug does not exist in the snapshot handed to the engine."""


class SnapshotInconsistencyError(RigCheckError):
    """The build selection cannot be reconciled with the catalog snapshot."""
