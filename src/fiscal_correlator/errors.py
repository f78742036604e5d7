"""Exceptions raised by the correlation pipeline."""


class CorrelationError(RuntimeError):
    """A pipeline stage failed; no partial correlation data is returned."""

    def __init__(self, stage: str, task: str, message: str = ""):
        self.stage = stage
        self.task = task
        detail = f": {message}" if message else ""
        super().__init__(f"stage {stage!r} failed in task {task!r}{detail}")
