"""
Error types raised by Versionic itself.

Failures coming from SQLAlchemy (constraint violations, connectivity) are
never wrapped; they reach the caller of ``Session.commit()`` unchanged.
"""

from __future__ import annotations


class VersioningError(Exception):
    """Base class for every error Versionic raises."""


class ConfigurationError(VersioningError):
    """A model was versioned incorrectly, or used before being versioned.

    Raised for an empty or unknown watched-field set, for configuring the
    same model twice and for deriving a history type of an unconfigured model.
    Not retryable: it is a programming error in the caller.
    """

    def __init__(self, message: str, *, model: type | None = None):
        super().__init__(message)
        self.model = model
