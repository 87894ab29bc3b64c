"""Exceptions raised by the match pipeline.

Filtering and ranking never raise; an empty batch is reported through
``SearchOutcome.no_candidates`` instead.
"""


class MatchError(Exception):
    """Base class for match pipeline failures."""


class MissingPhotoError(MatchError):
    """The source report has no usable photo, so a search cannot start."""

    def __init__(self, report_id: str) -> None:
        self.report_id = report_id
        super().__init__(f"Report '{report_id}' has no usable photo; add a photo first")


class ComparisonFailedError(MatchError):
    """The visual comparator failed or returned output we could not parse."""


class NotificationPersistError(MatchError):
    """Saving a single notification failed. Never fatal to a search."""

    def __init__(self, notification_id: str, cause: str) -> None:
        self.notification_id = notification_id
        super().__init__(f"Failed to save notification '{notification_id}': {cause}")
