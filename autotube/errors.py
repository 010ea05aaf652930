"""Exception taxonomy.

Only ValidationError reaches callers of the queue; StageError and
PublishError are converted into record fields by the pipeline and queue.
"""


class AutotubeError(Exception):
    """Base class for autotube errors."""


class ValidationError(AutotubeError):
    """Caller error: the request is rejected and no state is mutated."""


class StageError(AutotubeError):
    """A stage generator could not produce a real artifact."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class PublishError(AutotubeError):
    """The publishing transport rejected or failed an upload."""
