"""Exceptions raised by peep."""


class PeepError(Exception):
    """Base class for peep errors."""


class SnapshotUnavailableError(PeepError):
    """The snapshot provider returned no data for this cycle."""

    def __init__(self, message: str = "no data available") -> None:
        super().__init__(message)


class SnapshotSchemaError(PeepError):
    """A snapshot payload uses a schema this version cannot read."""
