class DataError(Exception):
    """Data not in the expected format."""


class NotTrainedError(ValueError):
    """The forest was queried before it learned anything."""


class CorruptionError(Exception):
    """Internal state corruption detected. A forest's state is corrupted."""
