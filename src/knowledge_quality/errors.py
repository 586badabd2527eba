"""
errors.py — Error taxonomy for the quality engine.

Single-record operations raise these directly. Batch operations catch
them per item and report them instead of aborting.
"""

from typing import Optional


class QualityError(Exception):
    """Base class for every error raised by knowledge_quality."""


class NotFoundError(QualityError):
    """A referenced record no longer exists (e.g. deleted concurrently)."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class AlreadySupersededError(QualityError):
    """Resolution was asked to touch a record that has already lost."""

    def __init__(self, record_id: str, superseded_by: Optional[str] = None):
        self.record_id = record_id
        self.superseded_by = superseded_by
        super().__init__(
            f"Record {record_id} is already superseded by {superseded_by or 'unknown'}"
        )


class MalformedRecordError(QualityError):
    """A record is missing a required field or carries an invalid value."""


class InvalidOptionsError(QualityError, ValueError):
    """An option or config value is outside its documented range."""
