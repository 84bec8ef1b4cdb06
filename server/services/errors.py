"""Exceptions raised by the achievement pipelines."""


class GamificationError(Exception):
    """Base class for achievement processing errors."""
    pass


class CycleError(GamificationError):
    """
    A processing cycle failed as a whole.

    Raised when rounds cannot be fetched or the batch cannot be persisted.
    Nothing from the cycle has been written; the next tick starts again
    from the unchanged watermark.
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"Achievement cycle failed during {stage}: {cause}")
        self.stage = stage
        self.cause = cause


class BackfillError(GamificationError):
    """Historical backfill failed while querying or persisting a chunk."""
    pass


class BackfillRangeError(BackfillError):
    """Historical backfill was given an empty or inverted range."""
    pass
