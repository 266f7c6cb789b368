"""
Error taxonomy for a generation session.

Only AnalysisFailure, AllAnglesFailed, InvalidReferencePath and
InvalidGenerationRequest propagate to callers. RenderFailure is caught
per attempt and ends up in the angle's error message.
"""


class GenerationError(RuntimeError):
    """Base class for every error raised by the generation pipeline."""


class InvalidGenerationRequest(GenerationError, ValueError):
    """Request rejected before any external call."""


class InvalidReferencePath(GenerationError, ValueError):
    """Reference image path is malformed or outside the storage root."""


class AnalysisFailure(GenerationError):
    """Vision analysis errored or returned nothing usable. Fatal."""


class RenderFailure(GenerationError):
    """A single render attempt errored or returned no image. Retryable."""


class AllAnglesFailed(GenerationError):
    """Every requested angle exhausted its attempts."""

    def __init__(self, message: str, tasks: list | None = None):
        super().__init__(message)
        self.tasks = tasks or []
